from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from loanledger import database
from loanledger.clock import Clock, SystemClock
from loanledger.database import TABLE_COLUMNS, get_db_connection, initialize_database
from loanledger.errors import ConstraintViolation, NotFound, StoreError
from loanledger.fields import format_datetime

logger = logging.getLogger(__name__)

OPERATORS = {"eq": "=", "gt": ">", "lt": "<"}

BOOK_DETAIL_COLUMNS = ("title", "author", "isbn")
MEMBER_DETAIL_COLUMNS = ("member_id", "name")


class Filter(NamedTuple):
    column: str
    op: str
    value: Any


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def to_store_value(value: Any) -> Any:
    """Normalise Python values (datetimes, enums) to what the store persists."""
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, Enum):
        return value.value
    return value


def new_record_id() -> str:
    return uuid.uuid4().hex


def check_columns(table: str, columns: Iterable[str]) -> None:
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise StoreError(f"Unknown table {table!r}.")
    for column in columns:
        if column not in allowed:
            raise StoreError(f"Unknown column {column!r} for table {table!r}.")


def check_filters(table: str, filters: Sequence[Filter]) -> None:
    check_columns(table, [f.column for f in filters])
    for f in filters:
        if f.op not in OPERATORS:
            raise StoreError(f"Unsupported filter operator {f.op!r}.")


class DataStore:
    """Record store contract used by the ledger and the CRUD layer.

    Rows go in and come out as plain dicts; mapping to ``Book``/``Member``/
    ``Transaction`` happens in the caller. Every method is a single round trip
    with no transaction spanning calls.
    """

    def find(self, table: str, record_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def insert(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete(self, table: str, record_id: str) -> None:
        raise NotImplementedError

    def query(self, table: str, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
              descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        raise NotImplementedError

    def query_transactions(self, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
                           descending: bool = False,
                           limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Transactions joined with ``book`` (title, author, isbn) and ``member`` (member_id, name)."""
        raise NotImplementedError

    def close(self) -> None:
        return None


class SQLiteStore(DataStore):
    """DataStore over a local SQLite file, one connection per call."""

    def __init__(self, db_file: Optional[str] = None, clock: Optional[Clock] = None) -> None:
        self.db_file = database.resolve_database_file(db_file)
        self.clock = clock or SystemClock()
        initialize_database(self.db_file)

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_db_connection(self.db_file)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open database {self.db_file}: {exc}") from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc
        finally:
            conn.close()

    def _write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one statement in its own commit and return the affected row count."""
        conn = self._connect()
        try:
            cursor = conn.execute(sql, tuple(params))
            conn.commit()
            return cursor.rowcount
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolation(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _where(filters: Sequence[Filter], prefix: str = "") -> tuple[str, list]:
        if not filters:
            return "", []
        clauses = [f"{prefix}{f.column} {OPERATORS[f.op]} ?" for f in filters]
        return " WHERE " + " AND ".join(clauses), [to_store_value(f.value) for f in filters]

    @staticmethod
    def _order(order_by: Optional[str], descending: bool, prefix: str = "") -> str:
        if not order_by:
            return f" ORDER BY {prefix}rowid"
        direction = "DESC" if descending else "ASC"
        # rowid breaks ties between rows written within the same timestamp
        return f" ORDER BY {prefix}{order_by} {direction}, {prefix}rowid {direction}"

    def find(self, table: str, record_id: str) -> Dict[str, Any]:
        check_columns(table, ["id"])
        rows = self._execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,))
        if not rows:
            raise NotFound(table, record_id)
        return dict(rows[0])

    def insert(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = {k: to_store_value(v) for k, v in fields.items()}
        record.setdefault("id", new_record_id())
        record.setdefault("created_at", format_datetime(self.clock.now()))
        check_columns(table, record)
        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        self._write(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            list(record.values()),
        )
        logger.debug("inserted %s %s", table, record["id"])
        return self.find(table, record["id"])

    def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields:
            return self.find(table, record_id)
        check_columns(table, fields)
        if "id" in fields:
            raise StoreError("Record id cannot be updated.")
        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [to_store_value(v) for v in fields.values()] + [record_id]
        if self._write(f"UPDATE {table} SET {assignments} WHERE id = ?", params) == 0:
            raise NotFound(table, record_id)
        logger.debug("updated %s %s: %s", table, record_id, sorted(fields))
        return self.find(table, record_id)

    def delete(self, table: str, record_id: str) -> None:
        check_columns(table, ["id"])
        if self._write(f"DELETE FROM {table} WHERE id = ?", (record_id,)) == 0:
            raise NotFound(table, record_id)
        logger.debug("deleted %s %s", table, record_id)

    def query(self, table: str, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
              descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        check_filters(table, filters)
        if order_by:
            check_columns(table, [order_by])
        where, params = self._where(filters)
        sql = f"SELECT * FROM {table}{where}{self._order(order_by, descending)}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [dict(row) for row in self._execute(sql, params)]

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        check_filters(table, filters)
        where, params = self._where(filters)
        rows = self._execute(f"SELECT COUNT(*) FROM {table}{where}", params)
        return int(rows[0][0])

    def query_transactions(self, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
                           descending: bool = False,
                           limit: Optional[int] = None) -> List[Dict[str, Any]]:
        check_filters("transactions", filters)
        if order_by:
            check_columns("transactions", [order_by])
        book_cols = ", ".join(f"b.{c} AS book_{c}" for c in BOOK_DETAIL_COLUMNS)
        member_cols = ", ".join(f"m.{c} AS member_{c}" for c in MEMBER_DETAIL_COLUMNS)
        where, params = self._where(filters, prefix="t.")
        sql = (
            f"SELECT t.*, b.id AS book_ref, {book_cols}, m.id AS member_ref, {member_cols} "
            "FROM transactions t "
            "LEFT JOIN books b ON b.id = t.book_id "
            "LEFT JOIN members m ON m.id = t.member_id"
            f"{where}{self._order(order_by, descending, prefix='t.')}"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        results = []
        for row in self._execute(sql, params):
            raw = dict(row)
            record = {c: raw[c] for c in TABLE_COLUMNS["transactions"]}
            record["book"] = (
                {c: raw[f"book_{c}"] for c in BOOK_DETAIL_COLUMNS}
                if raw["book_ref"] is not None else None
            )
            record["member"] = (
                {c: raw[f"member_{c}"] for c in MEMBER_DETAIL_COLUMNS}
                if raw["member_ref"] is not None else None
            )
            results.append(record)
        return results
