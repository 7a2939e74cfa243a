from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CoverType(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class Condition(str, Enum):
    NEW = "new"
    GOOD = "good"
    REGULAR = "regular"
    BAD = "bad"


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    UNAVAILABLE = "unavailable"


class BorrowStatus(str, Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"


def date_only(value: Optional[str]) -> str:
    """Return the YYYY-MM-DD part of an ISO timestamp."""
    if not value:
        return ""
    return str(value).split("T", 1)[0]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BookCopy(WireModel):
    id: str = Field(alias="_id")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    invoice_code: str = Field(default="", alias="invoiceCode")
    code: str = ""
    location: str = ""
    cost: float = 0.0
    date_acquired: Optional[str] = Field(default=None, alias="dateAcquired")
    condition: str = Condition.GOOD.value
    status: str = CopyStatus.AVAILABLE.value
    observations: str = ""

    @property
    def is_available(self) -> bool:
        return self.status == CopyStatus.AVAILABLE.value


class Book(WireModel):
    id: str = Field(alias="_id")
    title: str = ""
    author: str = ""
    editorial: str = ""
    edition: str = ""
    categories: List[str] = Field(default_factory=list)
    cover_type: Optional[str] = Field(default=None, alias="coverType")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    copies_count: int = Field(default=0, alias="copiesCount")
    # Representative copy fields, for list cards only.
    status: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    code: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    copies: List[BookCopy] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_categories(cls, data: Any) -> Any:
        if isinstance(data, dict):
            categories = data.get("categories")
            if isinstance(categories, str):
                data = dict(data)
                data["categories"] = [
                    item.strip() for item in categories.split(",") if item.strip()
                ]
            company = data.get("company")
            if isinstance(company, dict):
                data = dict(data)
                data["company"] = company.get("name") or company.get("_id")
        return data

    @property
    def key(self) -> str:
        """Stable identifier shared by list summaries and detail records."""
        return self.group_id or self.id

    @property
    def is_available(self) -> bool:
        if self.copies:
            return any(copy.is_available for copy in self.copies)
        return (self.status or CopyStatus.AVAILABLE.value) == CopyStatus.AVAILABLE.value

    def find_copy(self, copy_id: str) -> Optional[BookCopy]:
        for copy in self.copies:
            if copy.id == copy_id:
                return copy
        return None


class BookPage(WireModel):
    books: List[Book] = Field(default_factory=list)
    total_pages: int = Field(default=1, alias="totalPages")
    current_page: int = Field(default=1, alias="currentPage")


class BorrowRecord(WireModel):
    id: str = Field(alias="_id")
    book_id: Optional[str] = Field(default=None, alias="bookId")
    book_title: str = Field(default="", alias="bookTitle")
    copy_id: Optional[str] = Field(default=None, alias="copyId")
    copy_code: str = Field(default="", alias="copyCode")
    borrower_name: str = Field(default="", alias="borrowerName")
    borrow_date: Optional[str] = Field(default=None, alias="borrowDate")
    expected_return_date: Optional[str] = Field(default=None, alias="expectedReturnDate")
    return_date: Optional[str] = Field(default=None, alias="returnDate")
    status: str = BorrowStatus.BORROWED.value
    comments: str = ""
    borrowed_by: Optional[str] = Field(default=None, alias="borrowedBy")
    returned_by: Optional[str] = Field(default=None, alias="returnedBy")
    company: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_references(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        book = data.get("book")
        if isinstance(book, dict):
            data.setdefault("bookId", book.get("_id"))
            data.setdefault("bookTitle", book.get("title", ""))
        elif isinstance(book, str):
            data.setdefault("bookId", book)
        copy = data.get("copy") or data.get("bookCopy")
        if isinstance(copy, dict):
            data.setdefault("copyId", copy.get("_id"))
            data.setdefault("copyCode", copy.get("code", ""))
        elif isinstance(copy, str):
            data.setdefault("copyId", copy)
        for audit in ("borrowedBy", "returnedBy"):
            value = data.get(audit)
            if isinstance(value, dict):
                data[audit] = value.get("username") or value.get("name") or value.get("_id")
        return data

    @property
    def is_open(self) -> bool:
        return self.status != BorrowStatus.RETURNED.value


class BorrowPage(WireModel):
    records: List[BorrowRecord] = Field(default_factory=list)
    total_pages: int = Field(default=1, alias="totalPages")
    current_page: int = Field(default=1, alias="currentPage")
