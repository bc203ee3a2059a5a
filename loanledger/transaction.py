from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from loanledger.clock import utc
from loanledger.errors import StoreError
from loanledger.fields import as_datetime, as_text, format_datetime, parse_datetime


class TransactionStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"


class Transaction:
    """One loan of a book to a member; active until returned, then terminal."""

    def __init__(self, id: str, book_id: str, member_id: str, issue_date: datetime,
                 due_date: datetime, status: TransactionStatus = TransactionStatus.ACTIVE,
                 return_date: datetime | None = None, created_at: datetime | None = None,
                 book: Optional[Dict[str, Any]] = None,
                 member: Optional[Dict[str, Any]] = None) -> None:
        self.id = id
        self.book_id = book_id
        self.member_id = member_id
        self.issue_date = utc(issue_date)
        self.due_date = utc(due_date)
        self.status = status
        self.return_date = utc(return_date) if return_date is not None else None
        self.created_at = utc(created_at) if created_at is not None else None
        # Joined detail, present only on listing reads
        self.book = book
        self.member = member

    @property
    def is_active(self) -> bool:
        return self.status == TransactionStatus.ACTIVE

    def is_overdue(self, now: datetime) -> bool:
        return self.is_active and utc(now) > self.due_date

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "book_id": self.book_id,
            "member_id": self.member_id,
            "issue_date": format_datetime(self.issue_date),
            "due_date": format_datetime(self.due_date),
            "return_date": format_datetime(self.return_date),
            "status": self.status.value,
            "created_at": format_datetime(self.created_at),
        }
        if self.book is not None:
            data["book"] = dict(self.book)
        if self.member is not None:
            data["member"] = dict(self.member)
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Transaction":
        raw_status = as_text(data, "status", "transaction")
        try:
            status = TransactionStatus(raw_status)
        except ValueError as exc:
            raise StoreError(f"Malformed transaction record: unknown status {raw_status!r}.") from exc

        return_date = parse_datetime(data.get("return_date"))
        if (status == TransactionStatus.RETURNED) != (return_date is not None):
            raise StoreError(
                "Malformed transaction record: status and return_date disagree "
                f"(status={status.value}, return_date={data.get('return_date')!r})."
            )

        book = data.get("book")
        member = data.get("member")
        return Transaction(
            id=as_text(data, "id", "transaction"),
            book_id=as_text(data, "book_id", "transaction"),
            member_id=as_text(data, "member_id", "transaction"),
            issue_date=as_datetime(data, "issue_date", "transaction"),
            due_date=as_datetime(data, "due_date", "transaction"),
            status=status,
            return_date=return_date,
            created_at=parse_datetime(data.get("created_at")),
            book=dict(book) if isinstance(book, Mapping) else None,
            member=dict(member) if isinstance(member, Mapping) else None,
        )
