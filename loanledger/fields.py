"""Coercion helpers for mapping untyped store rows onto record classes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from loanledger.clock import utc
from loanledger.errors import StoreError


def require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    value = data.get(key)
    if value is None:
        raise StoreError(f"Malformed {kind} record: missing field {key!r}.")
    return value


def as_text(data: Mapping[str, Any], key: str, kind: str, default: Optional[str] = None) -> str:
    value = data.get(key, default)
    if value is None:
        if default is None:
            raise StoreError(f"Malformed {kind} record: missing field {key!r}.")
        return default
    return str(value).strip()


def as_int(data: Mapping[str, Any], key: str, kind: str) -> int:
    value = require(data, key, kind)
    # bool is an int subclass; a boolean copy count is never valid
    if isinstance(value, bool):
        raise StoreError(f"Malformed {kind} record: {key!r} is not an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise StoreError(f"Malformed {kind} record: {key!r} is not an integer.")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings (including a trailing 'Z') into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return utc(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise StoreError(f"Invalid timestamp {value!r}.") from exc
    raise StoreError(f"Invalid timestamp {value!r}.")


def as_datetime(data: Mapping[str, Any], key: str, kind: str) -> datetime:
    parsed = parse_datetime(data.get(key))
    if parsed is None:
        raise StoreError(f"Malformed {kind} record: missing field {key!r}.")
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return utc(value).isoformat(timespec="microseconds")
