"""Form state and client-side validation for the create/edit/borrow screens."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from models import Book, BookCopy, Condition, CopyStatus, CoverType, date_only

COST_PATTERN = re.compile(r"^\d*(\.\d{0,2})?$")
NON_COST_CHARS = re.compile(r"[^0-9.]")

COVER_TYPES = [item.value for item in CoverType]
CONDITIONS = [item.value for item in Condition]
COPY_STATUSES = [item.value for item in CopyStatus]


class ValidationError(Exception):
    """Raised before any request when a form has blocking errors."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__(", ".join(f"{name}: {key}" for name, key in errors.items()))
        self.errors = errors


# --------------------------------------------------------------------------- #
# Field helpers
# --------------------------------------------------------------------------- #
def filter_cost_input(previous: str, typed: str) -> str:
    """Keystroke filter: digits, one decimal point, at most two decimals.

    Anything else keeps the previous value, so it never reaches form state.
    """
    cleaned = NON_COST_CHARS.sub("", typed or "")
    if COST_PATTERN.match(cleaned):
        return cleaned
    return previous


def normalize_cost(value: str) -> str:
    """Blur handler: ``"12"`` becomes ``"12.00"``; unparseable text is left alone."""
    text = (value or "").strip()
    if not text:
        return text
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return value
    return f"{amount:.2f}"


def is_valid_cost(value: str) -> bool:
    """A non-negative amount in plain decimal notation with at most two decimals."""
    text = (value or "").strip()
    if not text or not COST_PATTERN.match(text):
        return False
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return False
    return amount.is_finite() and amount >= 0


def validate_image_url(value: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Syntactic check only; blank means "no image" and is fine."""
    text = (value or "").strip()
    if not text:
        return True, None
    if any(char.isspace() for char in text):
        return False, "invalidImageUrl"
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False, "invalidImageUrl"
    return True, None


def parse_date(value: Optional[str]) -> Optional[date]:
    try:
        return date.fromisoformat(date_only(value))
    except (TypeError, ValueError):
        return None


def _missing(errors: Dict[str, str], values: Dict[str, Any]) -> None:
    for name, value in values.items():
        if isinstance(value, str):
            value = value.strip()
        if value in (None, "", []):
            errors.setdefault(name, "fieldRequired")


# --------------------------------------------------------------------------- #
# Book forms
# --------------------------------------------------------------------------- #
@dataclass
class GeneralForm:
    """Bibliographic fields shared by every copy of a group."""

    title: str = ""
    author: str = ""
    editorial: str = ""
    edition: str = ""
    categories: List[str] = field(default_factory=list)
    cover_type: str = CoverType.SOFT.value
    image_url: str = ""
    description: str = ""

    @classmethod
    def from_book(cls, book: Book) -> "GeneralForm":
        return cls(
            title=book.title,
            author=book.author,
            editorial=book.editorial,
            edition=book.edition,
            categories=list(book.categories),
            cover_type=book.cover_type or CoverType.SOFT.value,
            image_url=book.image_url or "",
            description=book.description or "",
        )

    @property
    def image_error(self) -> Optional[str]:
        return validate_image_url(self.image_url)[1]

    @property
    def preview_url(self) -> Optional[str]:
        ok, _ = validate_image_url(self.image_url)
        text = self.image_url.strip()
        return text if ok and text else None

    def errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        _missing(
            errors,
            {
                "title": self.title,
                "author": self.author,
                "editorial": self.editorial,
                "edition": self.edition,
            },
        )
        if self.cover_type not in COVER_TYPES:
            errors["coverType"] = "invalidChoice"
        if self.image_error:
            errors["imageUrl"] = self.image_error
        return errors

    def blocking_errors(self) -> Dict[str, str]:
        # A bad image URL is reported inline but does not block the other fields.
        return {name: key for name, key in self.errors().items() if name != "imageUrl"}

    def payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": self.title.strip(),
            "author": self.author.strip(),
            "editorial": self.editorial.strip(),
            "edition": self.edition.strip(),
            "categories": [item.strip() for item in self.categories if item.strip()],
            "coverType": self.cover_type,
        }
        if self.description.strip():
            payload["description"] = self.description.strip()
        if not self.image_error:
            payload["imageUrl"] = self.image_url.strip()
        return payload


@dataclass
class CopyForm:
    """Fields that belong to one physical copy."""

    invoice_code: str = ""
    code: str = ""
    location: str = ""
    cost: str = ""
    date_acquired: str = field(default_factory=lambda: date.today().isoformat())
    condition: str = Condition.NEW.value
    status: str = CopyStatus.AVAILABLE.value
    observations: str = ""

    @classmethod
    def from_copy(cls, copy: BookCopy) -> "CopyForm":
        return cls(
            invoice_code=copy.invoice_code,
            code=copy.code,
            location=copy.location,
            cost=f"{copy.cost:.2f}",
            date_acquired=date_only(copy.date_acquired),
            condition=copy.condition,
            status=copy.status,
            observations=copy.observations,
        )

    def type_cost(self, typed: str) -> str:
        self.cost = filter_cost_input(self.cost, typed)
        return self.cost

    def blur_cost(self) -> str:
        self.cost = normalize_cost(self.cost)
        return self.cost

    def errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        _missing(
            errors,
            {
                "invoiceCode": self.invoice_code,
                "location": self.location,
                "cost": self.cost,
                "dateAcquired": self.date_acquired,
            },
        )
        if "cost" not in errors and not is_valid_cost(self.cost):
            errors["cost"] = "invalidCost"
        if "dateAcquired" not in errors and parse_date(self.date_acquired) is None:
            errors["dateAcquired"] = "invalidDate"
        if self.condition not in CONDITIONS:
            errors["condition"] = "invalidChoice"
        if self.status not in COPY_STATUSES:
            errors["status"] = "invalidChoice"
        return errors

    def blocking_errors(self) -> Dict[str, str]:
        return self.errors()

    def payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "invoiceCode": self.invoice_code.strip(),
            "location": self.location.strip(),
            "cost": float(Decimal(normalize_cost(self.cost))),
            "dateAcquired": self.date_acquired,
            "condition": self.condition,
            "status": self.status,
            "observations": self.observations.strip(),
        }
        if self.code.strip():
            payload["code"] = self.code.strip()
        return payload


@dataclass
class BookForm:
    """Create form: a new group together with its first copy."""

    general: GeneralForm = field(default_factory=GeneralForm)
    copy: CopyForm = field(default_factory=CopyForm)

    def errors(self) -> Dict[str, str]:
        errors = self.general.errors()
        if not [item for item in self.general.categories if item.strip()]:
            errors["categories"] = "fieldRequired"
        errors.update(self.copy.errors())
        return errors

    def blocking_errors(self) -> Dict[str, str]:
        return {name: key for name, key in self.errors().items() if name != "imageUrl"}

    def payload(self) -> Dict[str, Any]:
        payload = self.general.payload()
        payload.update(self.copy.payload())
        return payload


def require_valid(form: Any) -> Dict[str, Any]:
    """Return the form payload or raise ValidationError on blocking errors."""
    errors = form.blocking_errors()
    if errors:
        raise ValidationError(errors)
    return form.payload()


# --------------------------------------------------------------------------- #
# Borrow form
# --------------------------------------------------------------------------- #
@dataclass
class BorrowForm:
    book_id: str = ""
    copy_id: str = ""
    borrower_name: str = ""
    borrow_date: str = field(default_factory=lambda: date.today().isoformat())
    expected_return_date: str = ""
    comments: str = ""

    def errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        _missing(
            errors,
            {
                "book": self.book_id,
                "copy": self.copy_id,
                "borrowerName": self.borrower_name,
                "borrowDate": self.borrow_date,
                "expectedReturnDate": self.expected_return_date,
            },
        )
        borrowed = parse_date(self.borrow_date)
        expected = parse_date(self.expected_return_date)
        if "borrowDate" not in errors and borrowed is None:
            errors["borrowDate"] = "invalidDate"
        if "expectedReturnDate" not in errors and expected is None:
            errors["expectedReturnDate"] = "invalidDate"
        if borrowed and expected and expected < borrowed:
            errors["expectedReturnDate"] = "returnBeforeBorrow"
        return errors

    def blocking_errors(self) -> Dict[str, str]:
        return self.errors()

    def payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "bookId": self.book_id,
            "copyId": self.copy_id,
            "borrowerName": self.borrower_name.strip(),
            "borrowDate": self.borrow_date,
            "expectedReturnDate": self.expected_return_date,
        }
        if self.comments.strip():
            payload["comments"] = self.comments.strip()
        return payload
