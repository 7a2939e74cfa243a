from __future__ import annotations

import dataclasses
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PayloadError

from api import BackendClient, BackendError, NotFoundError
from forms import BookForm, CopyForm, GeneralForm, ValidationError, require_valid
from logger import get_logger
from models import Book, BookCopy
from notices import Notifier

log = get_logger(__name__)

COPIES_PER_PAGE = 10


@dataclass(frozen=True)
class PendingDelete:
    kind: str  # "copy" or "book"
    target_id: str


def _copies_count(data: Any) -> Optional[int]:
    """Pull the server's remaining-copies figure out of a mutation response."""
    if not isinstance(data, dict):
        return None
    for source in (data, data.get("book"), data.get("group")):
        if isinstance(source, dict):
            for key in ("copiesCount", "remainingCopies"):
                value = source.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    return int(value)
    return None


def _form_with(form: Any, fields: Mapping[str, Any]) -> Any:
    known = {item.name for item in dataclasses.fields(form)}
    unknown = set(fields) - known
    if unknown:
        raise TypeError(f"Unknown form fields: {', '.join(sorted(unknown))}")
    return dataclasses.replace(form, **dict(fields))


class BookDetailSession:
    """The currently open book and every mutation that touches it.

    ``listing`` is the catalog list view; it is told about count changes and
    removed groups so the cached page can be patched instead of refetched.
    """

    def __init__(self, client: BackendClient, notifier: Notifier, listing: Optional[Any] = None):
        self.client = client
        self.notifier = notifier
        self.listing = listing
        self.selected_book: Optional[Book] = None
        self.is_open = False
        self.busy = False
        self.pending_delete: Optional[PendingDelete] = None
        self.form_errors: Dict[str, str] = {}
        self.copy_page = 1
        self._lock = threading.RLock()
        self._listeners: List[Callable[["BookDetailSession"], None]] = []

    def subscribe(self, callback: Callable[["BookDetailSession"], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[["BookDetailSession"], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    # ------------------------------------------------------------------ #
    # Open / close
    # ------------------------------------------------------------------ #
    def _fetch_full(self, book: Book) -> Book:
        if book.group_id:
            return self.client.get_group(book.group_id)
        return self.client.get_book(book.id)

    def open(self, book: Book) -> bool:
        self.busy = True
        try:
            full = self._fetch_full(book)
        except BackendError as error:
            log.warning("Could not open book %s: %s", book.key, error)
            self.notifier.error("bookFetchError")
            return False
        finally:
            self.busy = False
        with self._lock:
            self.selected_book = full
            self.is_open = True
            self.copy_page = 1
            self.pending_delete = None
            self.form_errors = {}
        self._emit()
        return True

    def close(self) -> None:
        with self._lock:
            self.selected_book = None
            self.is_open = False
            self.pending_delete = None
            self.form_errors = {}
            self.copy_page = 1
        self._emit()

    # ------------------------------------------------------------------ #
    # Copies tab paging
    # ------------------------------------------------------------------ #
    @property
    def copy_pages(self) -> int:
        if not self.selected_book:
            return 1
        return max(1, math.ceil(len(self.selected_book.copies) / COPIES_PER_PAGE))

    def set_copy_page(self, page: int) -> None:
        self.copy_page = max(1, min(int(page), self.copy_pages))
        self._emit()

    def visible_copies(self) -> List[BookCopy]:
        if not self.selected_book:
            return []
        start = (self.copy_page - 1) * COPIES_PER_PAGE
        return self.selected_book.copies[start : start + COPIES_PER_PAGE]

    # ------------------------------------------------------------------ #
    # Reconciliation with the list view
    # ------------------------------------------------------------------ #
    @staticmethod
    def _keys(book: Book) -> List[str]:
        return [key for key in dict.fromkeys((book.group_id, book.id)) if key]

    def _reconcile_count(self, book: Book, count: int) -> None:
        if self.listing is None:
            return
        for key in self._keys(book):
            if self.listing.apply_copies_count(key, count):
                return

    def _reconcile_removal(self, book: Book) -> None:
        if self.listing is None:
            return
        for key in self._keys(book):
            if self.listing.remove_entry(key):
                return

    # ------------------------------------------------------------------ #
    # Deletes
    # ------------------------------------------------------------------ #
    def request_delete_copy(self, copy_id: str) -> None:
        self.pending_delete = PendingDelete("copy", copy_id)
        self._emit()

    def request_delete_book(self, book_id: str) -> None:
        self.pending_delete = PendingDelete("book", book_id)
        self._emit()

    def cancel_delete(self) -> None:
        self.pending_delete = None
        self._emit()

    def confirm_delete(self) -> bool:
        pending = self.pending_delete
        if pending is None:
            return False
        if pending.kind == "copy":
            return self.delete_copy(pending.target_id)
        return self.delete_book(pending.target_id)

    def _take_confirmation(self, kind: str, target_id: str) -> bool:
        pending = self.pending_delete
        if pending is None or pending != PendingDelete(kind, target_id):
            log.warning("Refusing unconfirmed %s delete for %s", kind, target_id)
            return False
        self.pending_delete = None
        return True

    def delete_copy(self, copy_id: str) -> bool:
        book = self.selected_book
        if book is None or not self._take_confirmation("copy", copy_id):
            return False

        self.busy = True
        try:
            data = self.client.decrease_copy(copy_id)
        except NotFoundError:
            self.busy = False
            self.close()
            self.notifier.warning("copyNotFound")
            return False
        except BackendError as error:
            self.busy = False
            log.warning("Deleting copy %s failed: %s", copy_id, error)
            self.notifier.error("copyDeleteError")
            self._emit()
            return False

        try:
            remaining = _copies_count(data)
            refreshed: Optional[Book] = None
            if remaining is None or remaining > 0:
                try:
                    refreshed = self._fetch_full(book)
                except NotFoundError:
                    remaining = 0
                except BackendError as error:
                    log.warning("Refreshing group %s after delete failed: %s", book.key, error)
                if refreshed is not None and remaining is None:
                    remaining = refreshed.copies_count

            if remaining is None or remaining > 0:
                if refreshed is None:
                    # Deletion went through but the refetch did not; drop the copy we know is gone.
                    update: Dict[str, Any] = {"copies": [copy for copy in book.copies if copy.id != copy_id]}
                    if remaining is not None:
                        update["copies_count"] = remaining
                    refreshed = book.model_copy(update=update)
                with self._lock:
                    self.selected_book = refreshed
                    self.copy_page = min(self.copy_page, self.copy_pages)
                if remaining is not None:
                    self._reconcile_count(book, remaining)
                self._emit()
            else:
                self.close()
                self._reconcile_removal(book)
        finally:
            self.busy = False

        self.notifier.success("copyDeletedSuccess")
        return True

    def delete_book(self, book_id: str) -> bool:
        book = self.selected_book
        if book is None or not self._take_confirmation("book", book_id):
            return False
        self.busy = True
        try:
            self.client.delete_book(book_id)
        except BackendError as error:
            log.warning("Deleting book %s failed: %s", book_id, error)
            self.notifier.error("bookDeleteError")
            return False
        finally:
            self.busy = False
        self.close()
        self._reconcile_removal(book)
        self.notifier.success("bookDeletedSuccess")
        return True

    # ------------------------------------------------------------------ #
    # Updates
    # ------------------------------------------------------------------ #
    def _validated(self, form: Any) -> Optional[Dict[str, Any]]:
        try:
            payload = require_valid(form)
        except ValidationError as error:
            self.form_errors = dict(error.errors)
            self.notifier.error("fixFormErrors")
            self._emit()
            return None
        self.form_errors = form.errors()
        return payload

    def update_general(self, fields: Union[GeneralForm, Mapping[str, Any]]) -> bool:
        book = self.selected_book
        if book is None:
            return False
        form = fields if isinstance(fields, GeneralForm) else _form_with(GeneralForm.from_book(book), fields)
        payload = self._validated(form)
        if payload is None:
            return False

        self.busy = True
        try:
            updated = self.client.update_general(book.group_id or book.id, payload)
        except BackendError as error:
            log.warning("Updating group %s failed: %s", book.key, error)
            self.notifier.error("bookUpdateError")
            return False
        finally:
            self.busy = False

        # Shared fields come from the server; each copy keeps its own fields.
        keep: Dict[str, Any] = {"copies": book.copies}
        if "copies_count" not in updated.model_fields_set:
            keep["copies_count"] = book.copies_count
        if not updated.group_id:
            keep["group_id"] = book.group_id
        with self._lock:
            self.selected_book = updated.model_copy(update=keep)
        self.notifier.success("bookUpdatedSuccess")
        self._emit()
        return True

    def update_copy(self, copy_id: str, fields: Union[CopyForm, Mapping[str, Any]]) -> bool:
        book = self.selected_book
        current = book.find_copy(copy_id) if book else None
        if book is None or current is None:
            self.notifier.error("copyNotFound")
            return False
        form = fields if isinstance(fields, CopyForm) else _form_with(CopyForm.from_copy(current), fields)
        payload = self._validated(form)
        if payload is None:
            return False

        self.busy = True
        try:
            data = self.client.update_copy(copy_id, payload)
        except BackendError as error:
            log.warning("Updating copy %s failed: %s", copy_id, error)
            self.notifier.error("copyUpdateError")
            return False
        finally:
            self.busy = False

        replacement = self._copy_from_response(data, copy_id)
        if replacement is None:
            replacement = BookCopy.model_validate({**current.to_wire(), **payload})
        with self._lock:
            # The book may have been refreshed meanwhile; patch whatever is open now.
            latest = self.selected_book or book
            copies = [replacement if copy.id == copy_id else copy for copy in latest.copies]
            self.selected_book = latest.model_copy(update={"copies": copies})
        self.notifier.success("copyUpdatedSuccess")
        self._emit()
        return True

    @staticmethod
    def _copy_from_response(data: Any, copy_id: str) -> Optional[BookCopy]:
        if not isinstance(data, dict):
            return None
        try:
            if isinstance(data.get("copies"), list):
                return Book.model_validate(data).find_copy(copy_id)
            source = data.get("copy") if isinstance(data.get("copy"), dict) else data
            if source.get("_id") == copy_id:
                return BookCopy.model_validate(source)
        except PayloadError as error:
            log.warning("Unexpected copy update payload: %s", error)
        return None

    def add_copy(self, fields: Union[CopyForm, Mapping[str, Any]]) -> bool:
        """Clone the open book's bibliographic fields into a new copy."""
        book = self.selected_book
        if book is None:
            return False
        form = fields if isinstance(fields, CopyForm) else _form_with(CopyForm(), fields)
        copy_payload = self._validated(form)
        if copy_payload is None:
            return False
        payload = GeneralForm.from_book(book).payload()
        payload.update(copy_payload)
        if book.group_id:
            payload["groupId"] = book.group_id
        if book.company:
            payload["company"] = book.company

        self.busy = True
        try:
            data = self.client.add_copy(book.id, payload)
        except BackendError as error:
            log.warning("Adding a copy to %s failed: %s", book.key, error)
            self.notifier.error("copyAddError")
            return False
        finally:
            self.busy = False

        count = _copies_count(data)
        try:
            refreshed = self._fetch_full(book)
        except BackendError as error:
            log.warning("Refreshing group %s after adding a copy failed: %s", book.key, error)
            refreshed = None
        if refreshed is not None:
            if count is None:
                count = refreshed.copies_count
            with self._lock:
                self.selected_book = refreshed
        if count is not None:
            self._reconcile_count(book, count)
        self.notifier.success("copyAddedSuccess")
        self._emit()
        return True


def create_book(client: BackendClient, notifier: Notifier, form: BookForm) -> Optional[Book]:
    """Validate the create form and post it; the first copy is implied."""
    try:
        payload = require_valid(form)
    except ValidationError:
        notifier.error("fixFormErrors")
        return None
    try:
        book = client.create_book(payload)
    except BackendError as error:
        log.warning("Creating book failed: %s", error)
        if error.server_message:
            notifier.message("error", error.server_message, key="bookCreateError")
        else:
            notifier.error("bookCreateError")
        return None
    notifier.success("bookCreatedSuccess")
    return book
