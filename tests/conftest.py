from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import requests
from jose import jwt

from api import BackendClient
from catalog import Catalog, build_catalog
from identity import Identity, LocalState
from notices import Notifier

BASE_URI = "http://backend.test"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")

    def json(self) -> Any:
        if not self.content:
            raise ValueError("empty body")
        return json.loads(self.content)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


@dataclass
class Call:
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class FakeSession:
    """Stands in for ``requests.Session``; routes are keyed by method and path.

    Each route holds a queue of replies; the last reply repeats once the
    queue is down to one. A reply may be a payload, a FakeResponse, an
    exception to raise, or a callable taking the Call.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Call] = []
        self.closed = False

    def add(self, method: str, path: str, *replies: Any) -> None:
        self.routes[(method.upper(), path)] = list(replies)

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = url[len(BASE_URI):] if url.startswith(BASE_URI) else url
        call = Call(method.upper(), path, dict(params) if params is not None else None, json, dict(headers or {}))
        self.calls.append(call)
        queue = self.routes.get((call.method, path))
        if not queue:
            return FakeResponse(404, {"message": f"No route for {call.method} {path}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply) and not isinstance(reply, FakeResponse):
            reply = reply(call)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, FakeResponse):
            return reply
        return FakeResponse(200, reply)

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [call for call in self.calls if call.method == method and call.path == path]

    def close(self) -> None:
        self.closed = True


def make_token(**claims: Any) -> str:
    claims.setdefault("exp", int(time.time()) + 3600)
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def book_summary(book_id: str, group_id: Optional[str], title: str, copies: int = 1, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "_id": book_id,
        "title": title,
        "author": "J. R. R. Tolkien",
        "editorial": "Allen & Unwin",
        "edition": "1st",
        "categories": ["Fantasy"],
        "coverType": "hard",
        "copiesCount": copies,
        "status": "available",
        "condition": "good",
        "location": "A-1",
        "company": "acme",
    }
    if group_id:
        payload["groupId"] = group_id
    payload.update(extra)
    return payload


def copy_payload(copy_id: str, group_id: Optional[str] = "g1", **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "_id": copy_id,
        "groupId": group_id,
        "invoiceCode": f"INV-{copy_id}",
        "code": f"CODE-{copy_id}",
        "location": "A-1",
        "cost": 12.5,
        "dateAcquired": "2023-04-01T00:00:00.000Z",
        "condition": "good",
        "status": "available",
        "observations": "",
    }
    payload.update(extra)
    return payload


def book_detail(book_id: str, group_id: Optional[str], title: str, copy_ids: List[str], **extra: Any) -> Dict[str, Any]:
    payload = book_summary(book_id, group_id, title, copies=len(copy_ids), **extra)
    payload["copies"] = [copy_payload(copy_id, group_id) for copy_id in copy_ids]
    return payload


def page(*books: Dict[str, Any], total_pages: int = 1, current_page: int = 1) -> Dict[str, Any]:
    return {"books": list(books), "totalPages": total_pages, "currentPage": current_page}


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def state(tmp_path: Path) -> LocalState:
    return LocalState(tmp_path / "state.json")


@pytest.fixture
def identity(state: LocalState) -> Identity:
    return Identity(state)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier("en")


@pytest.fixture
def client(session: FakeSession, identity: Identity) -> BackendClient:
    return BackendClient(BASE_URI, session=session, timeout=1, token_provider=lambda: identity.token)


@pytest.fixture
def make_catalog(client: BackendClient, identity: Identity, notifier: Notifier) -> Callable[..., Catalog]:
    def _make(**kwargs: Any) -> Catalog:
        kwargs.setdefault("debounce", 0)
        return build_catalog(client, identity, notifier, **kwargs)

    return _make


@pytest.fixture
def catalog(make_catalog: Callable[..., Catalog]) -> Catalog:
    return make_catalog()
