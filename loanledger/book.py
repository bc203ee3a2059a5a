from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from loanledger.errors import StoreError
from loanledger.fields import as_int, as_text, format_datetime, parse_datetime

AVAILABLE = "available"
BORROWED = "borrowed"


def availability_for(available_copies: int) -> str:
    return AVAILABLE if available_copies > 0 else BORROWED


class Book:
    """A catalog entry with a fixed total copy count and a variable available count."""

    def __init__(self, id: str, title: str, author: str, isbn: str, category: str,
                 total_copies: int, available_copies: int,
                 created_at: datetime | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.category = category.strip()
        self.total_copies = total_copies
        self.available_copies = available_copies
        self.created_at = created_at

    @property
    def availability_status(self) -> str:
        return availability_for(self.available_copies)

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "availability_status": self.availability_status,
            "created_at": format_datetime(self.created_at),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Book":
        total = as_int(data, "total_copies", "book")
        available = as_int(data, "available_copies", "book")
        if not 0 <= available <= total:
            raise StoreError(
                f"Malformed book record: available_copies={available} outside 0..{total}."
            )
        return Book(
            id=as_text(data, "id", "book"),
            title=as_text(data, "title", "book"),
            author=as_text(data, "author", "book"),
            isbn=as_text(data, "isbn", "book", default=""),
            category=as_text(data, "category", "book", default=""),
            total_copies=total,
            available_copies=available,
            created_at=parse_datetime(data.get("created_at")),
        )
