from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from loanledger.fields import as_datetime, as_text, format_datetime, parse_datetime


class Member:
    """A registered borrower."""

    def __init__(self, id: str, member_id: str, name: str, email: str, phone: str,
                 membership_date: datetime, address: str | None = None,
                 created_at: datetime | None = None) -> None:
        self.id = id
        self.member_id = member_id.strip()
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone.strip()
        self.address = address.strip() if address else None
        self.membership_date = membership_date
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} ({self.member_id})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "membership_date": format_datetime(self.membership_date),
            "created_at": format_datetime(self.created_at),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Member":
        return Member(
            id=as_text(data, "id", "member"),
            member_id=as_text(data, "member_id", "member"),
            name=as_text(data, "name", "member"),
            email=as_text(data, "email", "member", default=""),
            phone=as_text(data, "phone", "member", default=""),
            address=data.get("address") or None,
            membership_date=as_datetime(data, "membership_date", "member"),
            created_at=parse_datetime(data.get("created_at")),
        )
