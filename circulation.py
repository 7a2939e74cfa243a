from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from api import ALL_COMPANIES, BackendClient, BackendError, CatalogQuery
from forms import BorrowForm, ValidationError, require_valid
from identity import Identity
from logger import get_logger
from models import Book, BookCopy, BorrowRecord, BorrowStatus
from notices import Notifier
from remote_list import PageResult, RemoteList

log = get_logger(__name__)

BORROW_STATUSES = [item.value for item in BorrowStatus]


def match_record_id(row: Any, key: str) -> bool:
    return bool(key) and getattr(row, "id", None) == key


class SearchQuery:
    """Search term, optional status filter and page over one remote list."""

    def __init__(
        self,
        fetch: Callable[[Dict[str, Any]], PageResult],
        identity: Identity,
        *,
        name: str,
        debounce: float = 0.3,
        auto_fetch: bool = True,
        matches: Callable[[Any, str], bool] = match_record_id,
    ):
        self.identity = identity
        self.auto_fetch = auto_fetch
        self.search_term = ""
        self.status = ""
        self.current_page = 1
        self.list: RemoteList = RemoteList(fetch, self.params, debounce=debounce, matches=matches, name=name)

    def params(self) -> Dict[str, str]:
        params = {
            "page": str(self.current_page),
            "search": self.search_term,
            "company": self.identity.current_tenant() or ALL_COMPANIES,
        }
        if self.status:
            params["status"] = self.status
        return params

    def _changed(self, *, debounced: bool = False) -> None:
        if self.auto_fetch:
            self.list.request_refresh(debounced=debounced)

    def set_search_term(self, value: str) -> None:
        self.search_term = value or ""
        self.current_page = 1
        self._changed(debounced=True)

    def set_status(self, value: str) -> bool:
        value = value or ""
        if value and value not in BORROW_STATUSES:
            raise ValueError(f"Unknown loan status: {value}")
        if value == self.status:
            return False
        self.status = value
        self.current_page = 1
        self._changed()
        return True

    def set_page(self, page: int) -> bool:
        page = max(1, min(int(page), self.list.total_pages))
        if page == self.current_page:
            return False
        self.current_page = page
        self._changed()
        return True

    def refresh(self) -> None:
        self.list.request_refresh()


class CirculationSession:
    """Lend, return and history views; independent of the catalog session."""

    def __init__(
        self,
        client: BackendClient,
        identity: Identity,
        notifier: Notifier,
        *,
        debounce: float = 0.3,
        auto_fetch: bool = True,
    ):
        self.client = client
        self.identity = identity
        self.notifier = notifier
        self.busy = False
        self.borrower_names: List[str] = []
        self.lend = SearchQuery(
            self._fetch_lendable,
            identity,
            name="lend",
            debounce=debounce,
            auto_fetch=auto_fetch,
            matches=lambda row, key: key in (row.group_id, row.id),
        )
        self.active = SearchQuery(
            self._fetch_active, identity, name="active-loans", debounce=debounce, auto_fetch=auto_fetch
        )
        self.history = SearchQuery(
            self._fetch_history, identity, name="loan-history", debounce=debounce, auto_fetch=auto_fetch
        )

    # ------------------------------------------------------------------ #
    # Fetchers
    # ------------------------------------------------------------------ #
    def _fetch_lendable(self, params: Dict[str, Any]) -> PageResult[Book]:
        query = CatalogQuery(
            page=int(params["page"]),
            search=params["search"],
            company=params["company"],
        )
        page = self.client.list_books(query.to_params())
        return PageResult(page.books, page.total_pages, page.current_page)

    def _fetch_active(self, params: Dict[str, Any]) -> PageResult[BorrowRecord]:
        page = self.client.active_borrows(params)
        return PageResult(page.records, page.total_pages, page.current_page)

    def _fetch_history(self, params: Dict[str, Any]) -> PageResult[BorrowRecord]:
        page = self.client.borrow_history(params)
        return PageResult(page.records, page.total_pages, page.current_page)

    # ------------------------------------------------------------------ #
    # Borrower autocomplete
    # ------------------------------------------------------------------ #
    def load_borrower_names(self) -> bool:
        try:
            names = self.client.borrower_names()
        except BackendError as error:
            log.warning("Could not load borrower names: %s", error)
            return False
        self.borrower_names = sorted(set(names), key=str.lower)
        return True

    def borrower_suggestions(self, prefix: str, limit: int = 10) -> List[str]:
        prefix = (prefix or "").strip().lower()
        if not prefix:
            return []
        return [name for name in self.borrower_names if name.lower().startswith(prefix)][:limit]

    def available_copies(self, book: Book) -> List[BookCopy]:
        try:
            full = self.client.get_group(book.group_id) if book.group_id else self.client.get_book(book.id)
        except BackendError as error:
            log.warning("Could not load copies for %s: %s", book.key, error)
            self.notifier.error("bookFetchError")
            return []
        return [copy for copy in full.copies if copy.is_available]

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #
    def borrow(self, form: BorrowForm) -> Optional[BorrowRecord]:
        try:
            payload = require_valid(form)
        except ValidationError:
            self.notifier.error("fixFormErrors")
            return None
        self.busy = True
        try:
            record = self.client.borrow(payload)
        except BackendError as error:
            log.warning("Borrowing copy %s failed: %s", form.copy_id, error)
            if error.server_message:
                self.notifier.message("error", error.server_message, key="borrowError")
            else:
                self.notifier.error("borrowError")
            return None
        finally:
            self.busy = False
        name = payload["borrowerName"]
        if name not in self.borrower_names:
            self.borrower_names = sorted(self.borrower_names + [name], key=str.lower)
        self.notifier.success("borrowSuccess")
        self.active.refresh()
        self.lend.refresh()
        return record

    def return_loan(self, record_id: str, comments: str = "") -> bool:
        payload = {"comments": comments.strip()} if comments and comments.strip() else {}
        self.busy = True
        try:
            self.client.return_borrow(record_id, payload)
        except BackendError as error:
            log.warning("Returning loan %s failed: %s", record_id, error)
            if error.server_message:
                self.notifier.message("error", error.server_message, key="returnError")
            else:
                self.notifier.error("returnError")
            return False
        finally:
            self.busy = False
        self.notifier.success("returnSuccess")
        self.active.refresh()
        return True
