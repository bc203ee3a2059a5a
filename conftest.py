import os
import tempfile
from datetime import datetime, timezone

import pytest

# Keep module-level Library() instances (api.py) away from the working directory.
os.environ.setdefault(
    "LIBRARY_DB_FILE",
    os.path.join(tempfile.gettempdir(), f"loanledger_test_{os.getpid()}.db"),
)

from loanledger.clock import FixedClock
from loanledger.library import Library
from loanledger.store import SQLiteStore

START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store(tmp_path, request, clock):
    # Each test gets its own database file
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    return SQLiteStore(db_file, clock=clock)


@pytest.fixture
def lib(store, clock):
    lib = Library(store=store, clock=clock)
    yield lib
    lib.close()


@pytest.fixture
def member(lib):
    return lib.add_member("M-001", "Ada Reader", "ada.reader@gmail.com", "03001234567")


@pytest.fixture
def book(lib):
    return lib.add_book("Dune", "Frank Herbert", isbn="9780441172719", category="Science Fiction",
                        total_copies=2)
