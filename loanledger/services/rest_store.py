"""DataStore over a PostgREST (Supabase-style) HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from loanledger.errors import ConstraintViolation, NotFound, StoreError
from loanledger.services.http_client import StoreHTTPClient
from loanledger.store import (
    BOOK_DETAIL_COLUMNS,
    MEMBER_DETAIL_COLUMNS,
    DataStore,
    Filter,
    check_columns,
    check_filters,
    to_store_value,
)

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"
RETURN_REPRESENTATION = {"Prefer": "return=representation"}

TRANSACTION_SELECT = (
    "*,"
    f"book:books({','.join(BOOK_DETAIL_COLUMNS)}),"
    f"member:members({','.join(MEMBER_DETAIL_COLUMNS)})"
)


def _filter_params(filters: Sequence[Filter]) -> List[Tuple[str, str]]:
    params = []
    for f in filters:
        value = to_store_value(f.value)
        if value is None:
            params.append((f.column, "is.null"))
        elif isinstance(value, bool):
            params.append((f.column, f"{f.op}.{str(value).lower()}"))
        else:
            params.append((f.column, f"{f.op}.{value}"))
    return params


def _content_range_total(header: Optional[str]) -> int:
    # "0-9/42" or "*/0"
    if not header or "/" not in header:
        raise StoreError(f"Store did not report a row count (Content-Range={header!r}).")
    total = header.rsplit("/", 1)[1]
    if not total.isdigit():
        raise StoreError(f"Store reported an unknown row count (Content-Range={header!r}).")
    return int(total)


class RestStore(DataStore):
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 read_retries: int = 1, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not base_url:
            raise StoreError("STORE_URL must be set to use the REST store.")
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self.http = StoreHTTPClient(
            base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            read_retries=read_retries,
            transport=transport,
        )

    # ------------------------- HTTP plumbing ------------------------- #
    def _send(self, method: str, table: str, **kwargs) -> httpx.Response:
        url = f"{REST_PREFIX}/{table}"
        try:
            response = getattr(self.http, method)(url, **kwargs)
        except httpx.RequestError as exc:
            raise StoreError(f"Store unreachable ({method.upper()} {table}): {exc}") from exc
        if response.status_code >= 400:
            self._raise_for_error(method, table, response)
        return response

    @staticmethod
    def _raise_for_error(method: str, table: str, response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = str(body.get("code", "")) if isinstance(body, dict) else ""
        message = body.get("message") if isinstance(body, dict) else None
        detail = message or response.text or response.reason_phrase
        # Postgres class 23 = integrity constraint violation
        if response.status_code == 409 or code.startswith("23"):
            raise ConstraintViolation(detail)
        logger.error("store %s %s failed: HTTP %s %s", method.upper(), table, response.status_code, detail)
        raise StoreError(f"Store request failed with HTTP {response.status_code}: {detail}")

    @staticmethod
    def _rows(response: httpx.Response) -> List[Dict[str, Any]]:
        try:
            data = response.json()
        except ValueError as exc:
            raise StoreError("Store returned a non-JSON response.") from exc
        if not isinstance(data, list):
            raise StoreError("Store returned an unexpected payload shape.")
        return data

    # ------------------------- DataStore ------------------------- #
    def find(self, table: str, record_id: str) -> Dict[str, Any]:
        check_columns(table, ["id"])
        rows = self._rows(self._send("get", table, params={"id": f"eq.{record_id}", "select": "*"}))
        if not rows:
            raise NotFound(table, record_id)
        return rows[0]

    def insert(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        check_columns(table, fields)
        record = {k: to_store_value(v) for k, v in fields.items()}
        rows = self._rows(self._send("post", table, json=record, headers=RETURN_REPRESENTATION))
        if not rows:
            raise StoreError(f"Store did not return the inserted {table} row.")
        return rows[0]

    def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields:
            return self.find(table, record_id)
        check_columns(table, fields)
        record = {k: to_store_value(v) for k, v in fields.items()}
        rows = self._rows(self._send(
            "patch", table, params={"id": f"eq.{record_id}"}, json=record,
            headers=RETURN_REPRESENTATION,
        ))
        if not rows:
            raise NotFound(table, record_id)
        return rows[0]

    def delete(self, table: str, record_id: str) -> None:
        check_columns(table, ["id"])
        rows = self._rows(self._send(
            "delete", table, params={"id": f"eq.{record_id}"}, headers=RETURN_REPRESENTATION,
        ))
        if not rows:
            raise NotFound(table, record_id)

    def _list(self, table: str, select: str, filters: Sequence[Filter], order_by: Optional[str],
              descending: bool, limit: Optional[int]) -> List[Dict[str, Any]]:
        check_filters(table, filters)
        params = [("select", select)] + _filter_params(filters)
        if order_by:
            check_columns(table, [order_by])
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return self._rows(self._send("get", table, params=params))

    def query(self, table: str, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
              descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._list(table, "*", filters, order_by, descending, limit)

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        check_filters(table, filters)
        params = [("select", "id"), ("limit", "1")] + _filter_params(filters)
        response = self._send("get", table, params=params, headers={"Prefer": "count=exact"})
        return _content_range_total(response.headers.get("Content-Range"))

    def query_transactions(self, filters: Sequence[Filter] = (), order_by: Optional[str] = None,
                           descending: bool = False,
                           limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._list("transactions", TRANSACTION_SELECT, filters, order_by, descending, limit)

    def close(self) -> None:
        self.http.close()
