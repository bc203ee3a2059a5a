from typing import Optional


class LedgerError(Exception):
    """Base class for every error raised by the loan ledger and its stores."""


class NotFound(LedgerError, LookupError):
    """A referenced book, member or transaction does not exist."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"{table} record {record_id!r} not found.")
        self.table = table
        self.record_id = record_id


class ValidationError(LedgerError, ValueError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ConstraintViolation(LedgerError):
    pass


class InvalidState(LedgerError):
    pass


class StoreError(LedgerError):
    """The underlying data store call failed (I/O, network, malformed row)."""
