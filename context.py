"""Wires the services the front ends share."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from api import BackendClient
from catalog import Catalog, build_catalog
from circulation import CirculationSession
from identity import AuthService, Identity, LocalState
from logger import configure_logging
from notices import Notifier
from settings import Settings, get_settings
from translations import DEFAULT_LOCALE, SUPPORTED_LOCALES


@dataclass
class AppContext:
    settings: Settings
    state: LocalState
    identity: Identity
    notifier: Notifier
    client: BackendClient
    auth: AuthService
    catalog: Catalog
    circulation: CirculationSession

    def set_locale(self, locale: str) -> None:
        if locale not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale: {locale}")
        self.notifier.set_locale(locale)
        self.state.update(locale=locale)


def build_context(
    settings: Optional[Settings] = None,
    *,
    session: Optional[requests.Session] = None,
    auto_fetch: bool = True,
) -> AppContext:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    state = LocalState(settings.state_path)
    identity = Identity(state)
    notifier = Notifier(state.get("locale", DEFAULT_LOCALE))
    client = BackendClient(
        settings.backend_uri,
        session=session,
        timeout=settings.request_timeout,
        token_provider=lambda: identity.token,
    )
    catalog = build_catalog(
        client, identity, notifier, debounce=settings.search_debounce, auto_fetch=auto_fetch
    )
    circulation = CirculationSession(
        client, identity, notifier, debounce=settings.search_debounce, auto_fetch=auto_fetch
    )
    return AppContext(
        settings=settings,
        state=state,
        identity=identity,
        notifier=notifier,
        client=client,
        auth=AuthService(client, identity, notifier),
        catalog=catalog,
        circulation=circulation,
    )
