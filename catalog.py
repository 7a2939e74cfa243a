from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from api import ALL_COMPANIES, BackendClient, BackendError, CatalogQuery
from details import BookDetailSession
from identity import Identity
from logger import get_logger
from models import Book
from notices import Notifier
from remote_list import ERRORED, IDLE, LOADING, PageResult, RemoteList
from translations import DEFAULT_LOCALE, translate

log = get_logger(__name__)


# --------------------------------------------------------------------------- #
# Query state
# --------------------------------------------------------------------------- #
class CatalogQueryState:
    """What the catalog should currently fetch and show."""

    def __init__(
        self,
        client: BackendClient,
        identity: Identity,
        *,
        debounce: float = 0.3,
        auto_fetch: bool = True,
    ):
        self.client = client
        self.identity = identity
        self.auto_fetch = auto_fetch
        self.search_term = ""
        self.selected_categories: List[str] = []
        self.selected_company = identity.current_tenant() or ALL_COMPANIES
        self.current_page = 1
        self.category_options: List[str] = []
        self.company_options: List[str] = []
        self.list: RemoteList[Book] = RemoteList(
            self._fetch_page, self.params, debounce=debounce, name="catalog"
        )

    def _fetch_page(self, params: Dict[str, Any]) -> PageResult[Book]:
        page = self.client.list_books(params)
        return PageResult(page.books, page.total_pages, page.current_page)

    def query(self) -> CatalogQuery:
        return CatalogQuery(
            page=self.current_page,
            search=self.search_term,
            categories=list(self.selected_categories),
            company=self.selected_company,
        )

    def params(self) -> Dict[str, str]:
        return self.query().to_params()

    @property
    def total_pages(self) -> int:
        return self.list.total_pages

    @property
    def company_locked(self) -> bool:
        return self.identity.is_authenticated()

    @property
    def browsing_all_tenants(self) -> bool:
        return self.selected_company == ALL_COMPANIES

    def _changed(self, *, debounced: bool = False) -> None:
        if self.auto_fetch:
            self.list.request_refresh(debounced=debounced)

    # ------------------------------------------------------------------ #
    # Intents
    # ------------------------------------------------------------------ #
    def set_search_term(self, value: str) -> None:
        self.search_term = value or ""
        self.current_page = 1
        self._changed(debounced=True)

    def add_category(self, category: str) -> bool:
        category = (category or "").strip()
        if not category or category in self.selected_categories:
            return False
        self.selected_categories.append(category)
        self.current_page = 1
        self._changed()
        return True

    def remove_category(self, category: str) -> bool:
        if category not in self.selected_categories:
            return False
        self.selected_categories.remove(category)
        self.current_page = 1
        self._changed()
        return True

    def set_company(self, value: Optional[str]) -> bool:
        if self.company_locked:
            log.debug("Company filter is fixed to the signed-in tenant")
            return False
        value = value or ALL_COMPANIES
        if value == self.selected_company:
            return False
        self.selected_company = value
        self.current_page = 1
        self._changed()
        return True

    def set_page(self, page: int) -> bool:
        page = max(1, min(int(page), self.total_pages))
        if page == self.current_page:
            return False
        self.current_page = page
        self._changed()
        return True

    def refresh(self) -> None:
        self.list.request_refresh()

    def sync_identity(self, *, fetch: bool = True) -> None:
        """Re-scope after login or logout."""
        self.selected_company = self.identity.current_tenant() or ALL_COMPANIES
        self.current_page = 1
        if fetch:
            self._changed()

    def load_facets(self) -> bool:
        try:
            categories = self.client.list_categories()
            companies = self.client.list_companies()
        except BackendError as error:
            log.warning("Could not load catalog facets: %s", error)
            return False
        self.category_options = sorted(set(categories), key=str.lower)
        self.company_options = companies
        return True


# --------------------------------------------------------------------------- #
# List view
# --------------------------------------------------------------------------- #
@dataclass
class BookCard:
    key: str
    title: str
    author: str
    edition_line: str
    location: str
    categories: List[str]
    copies_count: int
    available: bool
    condition: str
    company: Optional[str]
    image_url: Optional[str]
    book: Book = field(repr=False)

    @classmethod
    def from_book(cls, book: Book, *, show_company: bool) -> "BookCard":
        edition_line = " · ".join(part for part in (book.editorial, book.edition) if part)
        return cls(
            key=book.key,
            title=book.title or "Untitled",
            author=book.author or "",
            edition_line=edition_line,
            location=book.location or "",
            categories=list(book.categories),
            copies_count=book.copies_count,
            available=book.is_available,
            condition=book.condition or "",
            company=book.company if show_company else None,
            image_url=book.image_url,
            book=book,
        )


@dataclass
class ListViewState:
    kind: str
    cards: List[BookCard] = field(default_factory=list)
    current_page: int = 1
    total_pages: int = 1
    message: str = ""


def describe_card(card: BookCard, index: int, locale: str = DEFAULT_LOCALE) -> str:
    """Return a printable description for a catalog card."""

    def t(key: str, **params: Any) -> str:
        return translate(key, locale, **params)

    availability = t("available") if card.available else t("unavailable")
    lines = [f"{index}. {card.title}"]
    if card.author:
        lines.append(f"   {t('author')}: {card.author}")
    if card.edition_line:
        lines.append(f"   {t('editorial')}: {card.edition_line}")
    if card.location:
        lines.append(f"   {t('location')}: {card.location}")
    if card.categories:
        lines.append(f"   {t('categories')}: {', '.join(card.categories)}")
    badges = [availability, t("copiesCount", count=card.copies_count)]
    if card.condition:
        badges.append(card.condition)
    lines.append(f"   [{'] ['.join(badges)}]")
    if card.company:
        lines.append(f"   {t('company')}: {card.company}")
    return "\n".join(lines)


class CatalogListView:
    """Folds the query's result set into cards and pagination."""

    def __init__(self, query: CatalogQueryState, notifier: Notifier):
        self.query = query
        self.notifier = notifier
        self.details: Optional[BookDetailSession] = None

    @property
    def books(self) -> List[Book]:
        return self.query.list.rows

    def render(self) -> ListViewState:
        remote = self.query.list
        page = self.query.current_page
        total = remote.total_pages
        if remote.status in (LOADING, IDLE):
            return ListViewState(LOADING, current_page=page, total_pages=total, message=self.notifier.t("loading"))
        if remote.status == ERRORED:
            return ListViewState("error", current_page=page, total_pages=total, message=self.notifier.t("booksFetchError"))
        if not remote.rows:
            return ListViewState("empty", current_page=page, total_pages=total, message=self.notifier.t("noBooksFound"))
        show_company = self.query.browsing_all_tenants
        cards = [BookCard.from_book(book, show_company=show_company) for book in remote.rows]
        return ListViewState("results", cards, page, total)

    def page_links(self) -> List[int]:
        return list(range(1, self.query.list.total_pages + 1))

    def open_card(self, target: Union[int, Book, BookCard]) -> bool:
        if self.details is None:
            raise RuntimeError("No detail session attached to the catalog view")
        if isinstance(target, int):
            rows = self.books
            if not 0 <= target < len(rows):
                return False
            book = rows[target]
        elif isinstance(target, BookCard):
            book = target.book
        else:
            book = target
        return self.details.open(book)

    # ------------------------------------------------------------------ #
    # Reconciliation
    # ------------------------------------------------------------------ #
    def apply_copies_count(self, key: str, count: int) -> int:
        return self.query.list.patch_rows(key, copies_count=count)

    def remove_entry(self, key: str) -> int:
        return self.query.list.remove_rows(key)


@dataclass
class Catalog:
    query: CatalogQueryState
    view: CatalogListView
    details: BookDetailSession


def build_catalog(
    client: BackendClient,
    identity: Identity,
    notifier: Notifier,
    *,
    debounce: float = 0.3,
    auto_fetch: bool = True,
) -> Catalog:
    query = CatalogQueryState(client, identity, debounce=debounce, auto_fetch=auto_fetch)
    view = CatalogListView(query, notifier)
    details = BookDetailSession(client, notifier, listing=view)
    view.details = details
    return Catalog(query, view, details)
