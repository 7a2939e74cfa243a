from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from logger import get_logger
from models import Book, BookPage, BorrowPage, BorrowRecord

log = get_logger(__name__)

ALL_COMPANIES = "all"

ModelT = TypeVar("ModelT", bound=BaseModel)


class BackendError(Exception):
    """A request to the backend failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, server_message: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class NotFoundError(BackendError):
    pass


@dataclass
class CatalogQuery:
    """Encapsulates one catalog list request."""

    page: int = 1
    search: str = ""
    categories: List[str] = field(default_factory=list)
    company: str = ALL_COMPANIES

    def to_params(self) -> Dict[str, str]:
        return {
            "page": str(self.page),
            "search": self.search,
            "categories": ",".join(self.categories),
            "company": self.company,
        }


def _server_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        return str(message) if message else None
    return None


def _rows(data: Any, *keys: str) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def _unwrap(data: Any, key: str) -> Any:
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as error:
        log.warning("Unexpected %s payload: %s", model.__name__, error)
        raise BackendError(f"Unexpected {model.__name__} payload from the backend") from error


class BackendClient:
    """Thin wrapper around the library backend's REST API."""

    def __init__(
        self,
        base_uri: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.base_uri = base_uri.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token_provider = token_provider

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        headers: Dict[str, str] = {}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = f"{self.base_uri}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as error:
            response = error.response
            status = response.status_code if response is not None else None
            message = _server_message(response) if response is not None else None
            log.warning("%s %s failed with status %s", method, path, status)
            if status == 404:
                raise NotFoundError(f"{method} {path} not found", status, message) from error
            raise BackendError(f"{method} {path} failed", status, message) from error
        except requests.RequestException as error:
            log.warning("%s %s could not reach the backend: %s", method, path, error)
            raise BackendError(f"Unable to reach the backend: {error}") from error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as error:
            raise BackendError(f"{method} {path} returned invalid JSON", response.status_code) from error

    # ------------------------------------------------------------------ #
    # Books
    # ------------------------------------------------------------------ #
    def list_books(self, params: Dict[str, Any]) -> BookPage:
        data = self._request("GET", "/api/books", params=params)
        if isinstance(data, list):
            return BookPage(books=[_parse(Book, item) for item in data])
        return _parse(BookPage, data or {})

    def get_book(self, book_id: str) -> Book:
        return _parse(Book, _unwrap(self._request("GET", f"/api/books/{book_id}"), "book"))

    def get_group(self, group_id: str) -> Book:
        return _parse(Book, _unwrap(self._request("GET", f"/api/books/group/{group_id}"), "book"))

    def create_book(self, payload: Dict[str, Any]) -> Book:
        return _parse(Book, _unwrap(self._request("POST", "/api/books", json=payload), "book"))

    def add_copy(self, book_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/api/books/{book_id}/copy", json=payload) or {}

    def update_general(self, group_id: str, payload: Dict[str, Any]) -> Book:
        data = self._request("PUT", f"/api/books/{group_id}/general", json=payload)
        return _parse(Book, _unwrap(data, "book"))

    def update_copy(self, copy_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/books/{copy_id}/copy", json=payload) or {}

    def decrease_copy(self, copy_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/books/{copy_id}/decrease-copy") or {}

    def delete_book(self, book_id: str) -> None:
        self._request("DELETE", f"/api/books/{book_id}")

    def list_categories(self) -> List[str]:
        data = self._request("GET", "/api/books/categories")
        return [str(item) for item in _rows(data, "categories")]

    def list_companies(self) -> List[str]:
        data = self._request("GET", "/api/books/companies")
        names: List[str] = []
        for item in _rows(data, "companies"):
            if isinstance(item, dict):
                item = item.get("name") or item.get("_id")
            if item:
                names.append(str(item))
        return names

    # ------------------------------------------------------------------ #
    # Circulation
    # ------------------------------------------------------------------ #
    def _borrow_page(self, path: str, params: Dict[str, Any]) -> BorrowPage:
        data = self._request("GET", path, params=params)
        records = [_parse(BorrowRecord, item) for item in _rows(data, "records", "borrows", "loans")]
        total_pages = data.get("totalPages", 1) if isinstance(data, dict) else 1
        current_page = data.get("currentPage", 1) if isinstance(data, dict) else 1
        return BorrowPage(records=records, totalPages=total_pages, currentPage=current_page)

    def active_borrows(self, params: Dict[str, Any]) -> BorrowPage:
        return self._borrow_page("/api/borrow/active", params)

    def borrow_history(self, params: Dict[str, Any]) -> BorrowPage:
        return self._borrow_page("/api/borrow/history", params)

    def borrower_names(self) -> List[str]:
        data = self._request("GET", "/api/borrow/borrower-names")
        return [str(name) for name in _rows(data, "names", "borrowerNames") if name]

    def borrow(self, payload: Dict[str, Any]) -> BorrowRecord:
        data = self._request("POST", "/api/borrow/borrow", json=payload)
        return _parse(BorrowRecord, _unwrap(data, "borrow"))

    def return_borrow(self, record_id: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("POST", f"/api/borrow/return/{record_id}", json=payload or {}) or {}

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #
    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/api/users/login", json={"email": email, "password": password}) or {}

    def signup(self, username: str, email: str, password: str) -> Dict[str, Any]:
        payload = {"username": username, "email": email, "password": password}
        return self._request("POST", "/api/users/signup", json=payload) or {}
