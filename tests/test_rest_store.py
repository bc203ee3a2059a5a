import json

import httpx
import pytest

from loanledger.errors import ConstraintViolation, NotFound, StoreError
from loanledger.services import http_client
from loanledger.services.rest_store import TRANSACTION_SELECT, RestStore
from loanledger.store import eq, lt
from loanledger.transaction import TransactionStatus

BOOK = {
    "id": "b1", "title": "Dune", "author": "Frank Herbert", "isbn": "", "category": "",
    "total_copies": 2, "available_copies": 2, "availability_status": "available",
    "created_at": "2025-03-01T09:00:00+00:00",
}


class Recorder:
    """MockTransport handler that replays queued responses and keeps the requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_store(*responses, **kwargs):
    recorder = Recorder(*responses)
    store = RestStore("https://db.example.test/", api_key="secret",
                      transport=httpx.MockTransport(recorder), **kwargs)
    return store, recorder


def test_requires_base_url():
    with pytest.raises(StoreError):
        RestStore("")


def test_find_sends_auth_and_id_filter():
    store, recorder = make_store(httpx.Response(200, json=[BOOK]))

    assert store.find("books", "b1") == BOOK

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/books"
    assert request.url.params["id"] == "eq.b1"
    assert request.headers["apikey"] == "secret"
    assert request.headers["authorization"] == "Bearer secret"


def test_find_missing_row():
    store, _ = make_store(httpx.Response(200, json=[]))
    with pytest.raises(NotFound):
        store.find("books", "nope")


def test_insert_asks_for_representation():
    store, recorder = make_store(httpx.Response(201, json=[BOOK]))

    row = store.insert("books", {"title": "Dune", "total_copies": 2})

    request = recorder.requests[0]
    assert row["id"] == "b1"
    assert request.method == "POST"
    assert request.headers["prefer"] == "return=representation"
    assert json.loads(request.content) == {"title": "Dune", "total_copies": 2}


def test_update_serialises_values_and_detects_missing_rows():
    store, recorder = make_store(httpx.Response(200, json=[BOOK]), httpx.Response(200, json=[]))

    store.update("transactions", "t1", {"status": TransactionStatus.RETURNED})
    assert recorder.requests[0].method == "PATCH"
    assert recorder.requests[0].url.params["id"] == "eq.t1"
    assert json.loads(recorder.requests[0].content) == {"status": "returned"}

    with pytest.raises(NotFound):
        store.update("books", "gone", {"available_copies": 1})


def test_delete_missing_row():
    store, recorder = make_store(httpx.Response(200, json=[]))
    with pytest.raises(NotFound):
        store.delete("books", "gone")
    assert recorder.requests[0].method == "DELETE"


def test_query_builds_postgrest_params():
    store, recorder = make_store(httpx.Response(200, json=[]))

    store.query_transactions([eq("status", "active"), lt("due_date", "2025-03-10")],
                             order_by="due_date", descending=True, limit=5)

    params = recorder.requests[0].url.params
    assert params["select"] == TRANSACTION_SELECT
    assert params["status"] == "eq.active"
    assert params["due_date"] == "lt.2025-03-10"
    assert params["order"] == "due_date.desc"
    assert params["limit"] == "5"


def test_null_filter():
    store, recorder = make_store(httpx.Response(200, json=[]))
    store.query("transactions", [eq("return_date", None)])
    assert recorder.requests[0].url.params["return_date"] == "is.null"


def test_count_reads_content_range():
    store, recorder = make_store(httpx.Response(200, json=[{"id": "b1"}],
                                                headers={"Content-Range": "0-0/42"}))

    assert store.count("books") == 42
    assert recorder.requests[0].headers["prefer"] == "count=exact"


def test_count_without_content_range():
    store, _ = make_store(httpx.Response(200, json=[]))
    with pytest.raises(StoreError):
        store.count("books")


@pytest.mark.parametrize("response", [
    httpx.Response(409, json={"code": "23505", "message": "duplicate key"}),
    httpx.Response(400, json={"code": "23514", "message": "check constraint"}),
])
def test_integrity_errors_map_to_constraint_violation(response):
    store, _ = make_store(response)
    with pytest.raises(ConstraintViolation):
        store.insert("members", {"member_id": "M-1"})


def test_server_errors_map_to_store_error():
    store, _ = make_store(httpx.Response(503, text="upstream down"))
    with pytest.raises(StoreError, match="503"):
        store.query("books")


def test_non_list_payload_is_rejected():
    store, _ = make_store(httpx.Response(200, json={"id": "b1"}))
    with pytest.raises(StoreError):
        store.query("books")


def test_unknown_column_is_rejected_before_sending():
    store, recorder = make_store()
    with pytest.raises(StoreError):
        store.query("books", [eq("pages", 1)])
    assert recorder.requests == []


def test_reads_are_retried(monkeypatch):
    monkeypatch.setattr(http_client.time, "sleep", lambda seconds: None)
    store, recorder = make_store(
        httpx.ConnectError("connection refused"),
        httpx.Response(200, json=[BOOK]),
        read_retries=2,
    )

    assert store.find("books", "b1")["title"] == "Dune"
    assert len(recorder.requests) == 2


def test_writes_are_not_retried(monkeypatch):
    monkeypatch.setattr(http_client.time, "sleep", lambda seconds: None)
    store, recorder = make_store(
        httpx.ConnectError("connection refused"),
        httpx.Response(201, json=[BOOK]),
        read_retries=3,
    )

    with pytest.raises(StoreError, match="unreachable"):
        store.insert("books", {"title": "Dune"})
    assert len(recorder.requests) == 1
