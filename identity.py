from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from api import BackendClient, BackendError
from logger import get_logger
from notices import Notifier

log = get_logger(__name__)


class LocalState:
    """JSON file holding the session token and the locale selection."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as error:
            log.warning("Ignoring unreadable state file %s: %s", self.path, error)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def update(self, **values: Any) -> None:
        with self._lock:
            data = self.load()
            for key, value in values.items():
                if value is None:
                    data.pop(key, None)
                else:
                    data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)


class Identity:
    """Read-only view of who is signed in, decoded from the stored token."""

    def __init__(self, state: LocalState):
        self.state = state
        self._token: Optional[str] = state.get("token")

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def claims(self) -> Dict[str, Any]:
        if not self._token:
            return {}
        try:
            claims = jwt.get_unverified_claims(self._token)
        except JWTError:
            log.warning("Stored session token could not be decoded")
            return {}
        return claims if isinstance(claims, dict) else {}

    def is_authenticated(self) -> bool:
        claims = self.claims
        if not claims:
            return False
        expires = claims.get("exp")
        if isinstance(expires, (int, float)) and expires < time.time():
            return False
        return True

    def current_tenant(self) -> Optional[str]:
        if not self.is_authenticated():
            return None
        claims = self.claims
        tenant = claims.get("company") or claims.get("companyId")
        if isinstance(tenant, dict):
            tenant = tenant.get("name") or tenant.get("_id")
        return str(tenant) if tenant else None

    def user_name(self) -> Optional[str]:
        if not self.is_authenticated():
            return None
        claims = self.claims
        name = claims.get("username") or claims.get("name") or claims.get("email")
        return str(name) if name else None

    def sign_in(self, token: str) -> None:
        self._token = token
        self.state.update(token=token)

    def sign_out(self) -> None:
        self._token = None
        self.state.update(token=None)


class AuthService:
    """Login, signup and logout screens' actions."""

    def __init__(self, client: BackendClient, identity: Identity, notifier: Notifier):
        self.client = client
        self.identity = identity
        self.notifier = notifier
        self.busy = False

    def _server_error(self, error: BackendError, fallback_key: str) -> None:
        if error.server_message:
            self.notifier.message("error", error.server_message, key=fallback_key)
        else:
            self.notifier.error(fallback_key)

    def login(self, email: str, password: str) -> bool:
        email = (email or "").strip()
        if not email or not password:
            self.notifier.error("fillAllRequiredFields")
            return False
        self.busy = True
        try:
            data = self.client.login(email, password)
        except BackendError as error:
            self._server_error(error, "loginError")
            return False
        finally:
            self.busy = False
        if not isinstance(data, dict):
            log.warning("Unexpected login response: %r", data)
            data = {}
        token = data.get("token")
        if not token:
            message = data.get("message")
            if message:
                self.notifier.message("error", str(message), key="loginError")
            else:
                self.notifier.error("loginError")
            return False
        self.identity.sign_in(token)
        self.notifier.success("loginSuccess")
        return True

    def signup(self, username: str, email: str, password: str, confirm_password: str) -> bool:
        username = (username or "").strip()
        email = (email or "").strip()
        if not username or not email or not password:
            self.notifier.error("fillAllRequiredFields")
            return False
        if password != confirm_password:
            self.notifier.error("passwordsMismatch")
            return False
        self.busy = True
        try:
            data = self.client.signup(username, email, password)
        except BackendError as error:
            self._server_error(error, "signupError")
            return False
        finally:
            self.busy = False
        if not isinstance(data, dict):
            log.warning("Unexpected signup response: %r", data)
            data = {}
        if not data.get("success"):
            message = data.get("message")
            if message:
                self.notifier.message("error", str(message), key="signupError")
            else:
                self.notifier.error("signupError")
            return False
        self.notifier.success("signupSuccess")
        return True

    def logout(self) -> None:
        self.identity.sign_out()
        self.notifier.success("logoutSuccess")
