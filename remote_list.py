"""Server-backed, filterable, paginated list shared by the catalog and circulation views."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from api import BackendError
from logger import get_logger

log = get_logger(__name__)

IDLE = "idle"
LOADING = "loading"
READY = "ready"
ERRORED = "errored"

RowT = TypeVar("RowT", bound=BaseModel)


@dataclass
class PageResult(Generic[RowT]):
    rows: List[RowT] = field(default_factory=list)
    total_pages: int = 1
    current_page: int = 1


def match_book_key(row: Any, key: str) -> bool:
    """Summaries are matched by groupId, falling back to _id."""
    return bool(key) and key in (getattr(row, "group_id", None), getattr(row, "id", None))


class Debouncer:
    """Run ``callback`` once ``delay`` seconds after the last ``trigger()``."""

    def __init__(self, delay: float, callback: Callable[[], Any]):
        self.delay = delay
        self.callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        if self.delay <= 0:
            self.cancel()
            self.callback()
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, lambda: self._fire(timer))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, timer: threading.Timer) -> None:
        with self._lock:
            # A newer trigger() replaced this timer while it was starting.
            if self._timer is not timer:
                return
            self._timer = None
        self.callback()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> None:
        """Run a pending callback now instead of waiting for the quiet period."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            self.callback()


class RemoteList(Generic[RowT]):
    """Fetch-on-intent list state: Idle -> Loading -> Ready | Errored.

    Each refresh takes a generation number; a response is applied only if no
    newer refresh has started since, so overlapping requests cannot clobber
    the current query's results.
    """

    def __init__(
        self,
        fetch: Callable[[Dict[str, Any]], PageResult[RowT]],
        params: Callable[[], Dict[str, Any]],
        *,
        debounce: float = 0.0,
        matches: Callable[[RowT, str], bool] = match_book_key,
        name: str = "list",
    ):
        self._fetch = fetch
        self._params = params
        self._matches = matches
        self.name = name
        self.status = IDLE
        self.rows: List[RowT] = []
        self.total_pages = 1
        self.current_page = 1
        self.error: Optional[str] = None
        self._generation = 0
        self._lock = threading.RLock()
        self._listeners: List[Callable[["RemoteList[RowT]"], None]] = []
        self._debouncer = Debouncer(debounce, self.refresh)

    # ------------------------------------------------------------------ #
    # Observers
    # ------------------------------------------------------------------ #
    def subscribe(self, callback: Callable[["RemoteList[RowT]"], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[["RemoteList[RowT]"], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    @property
    def loading(self) -> bool:
        return self.status == LOADING

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #
    def request_refresh(self, *, debounced: bool = False) -> None:
        if debounced:
            self._debouncer.trigger()
            return
        self._debouncer.cancel()
        self.refresh()

    def flush(self) -> None:
        self._debouncer.flush()

    def cancel_pending(self) -> None:
        self._debouncer.cancel()

    def refresh(self) -> bool:
        """Fetch with the current params. Returns True if the result was applied."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            params = dict(self._params())
            self.status = LOADING
            self.error = None
        self._emit()

        try:
            result = self._fetch(params)
        except BackendError as error:
            with self._lock:
                if generation != self._generation:
                    log.debug("Discarding stale %s error for %s", self.name, params)
                    return False
                self.status = ERRORED
                self.error = error.server_message or str(error)
                self.rows = []
                self.total_pages = 1
            self._emit()
            return False

        with self._lock:
            if generation != self._generation:
                log.debug("Discarding stale %s response for %s", self.name, params)
                return False
            self.rows = list(result.rows)
            self.total_pages = max(1, int(result.total_pages or 1))
            self.current_page = max(1, int(result.current_page or 1))
            self.status = READY
        self._emit()
        return True

    # ------------------------------------------------------------------ #
    # Reconciliation
    # ------------------------------------------------------------------ #
    def find(self, key: str) -> Optional[RowT]:
        with self._lock:
            for row in self.rows:
                if self._matches(row, key):
                    return row
        return None

    def patch_rows(self, key: str, **fields: Any) -> int:
        """Update ``fields`` on cached rows matching ``key``; returns rows touched."""
        touched = 0
        with self._lock:
            for index, row in enumerate(self.rows):
                if self._matches(row, key):
                    self.rows[index] = row.model_copy(update=fields)
                    touched += 1
        if touched:
            self._emit()
        return touched

    def remove_rows(self, key: str) -> int:
        with self._lock:
            before = len(self.rows)
            self.rows = [row for row in self.rows if not self._matches(row, key)]
            removed = before - len(self.rows)
        if removed:
            self._emit()
        return removed
