import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from loanledger import main
from loanledger.errors import StoreError
from loanledger.main import LibraryManager, app
from loanledger.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_lib(lib, monkeypatch):
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    LibraryManager.reset(lib)
    yield lib
    LibraryManager._instance = None


def test_list_no_books():
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_book_and_list(cli_lib):
    result = runner.invoke(app, ["add-book", "Dune", "Frank Herbert", "--copies", "2", "-c", "Science Fiction"])
    assert result.exit_code == 0
    assert "Dune by Frank Herbert (2 copies)" in result.stdout

    book = cli_lib.list_books()[0]
    result = runner.invoke(app, ["books"])
    assert f"{book.id} | Dune | Frank Herbert | Science Fiction | 2 | 2" in result.stdout


def test_add_book_validation_error():
    result = runner.invoke(app, ["add-book", "Dune", "Frank Herbert", "--copies", "0"])
    assert result.exit_code == 1
    assert "Error: total_copies must be a positive whole number." in result.stdout


def test_find_book(book):
    result = runner.invoke(app, ["find-book", book.id])
    assert result.exit_code == 0
    assert "Title: Dune" in result.stdout
    assert "Copies: 2/2 (available)" in result.stdout


def test_find_book_not_found():
    result = runner.invoke(app, ["find-book", "missing"])
    assert result.exit_code == 1
    assert "Book missing not found." in result.stdout


def test_remove_book(book):
    result = runner.invoke(app, ["remove-book", book.id])
    assert result.exit_code == 0
    assert f"Book {book.id} has been removed." in result.stdout

    result = runner.invoke(app, ["remove-book", book.id])
    assert result.exit_code == 1
    assert f"Book {book.id} not found." in result.stdout


def test_remove_book_with_loans(book, member, cli_lib):
    cli_lib.issue_book(book.id, member.id, 7)
    result = runner.invoke(app, ["remove-book", book.id])
    assert result.exit_code == 1
    assert "Cannot delete a book that has loan transactions." in result.stdout


def test_search_books_and_members(book, member):
    result = runner.invoke(app, ["search", "herbert"])
    assert "Dune" in result.stdout

    result = runner.invoke(app, ["search", "nobody"])
    assert "No matching books." in result.stdout

    result = runner.invoke(app, ["search", "ada", "--members"])
    assert "M-001" in result.stdout


def test_add_member_and_list():
    result = runner.invoke(app, ["add-member", "M-007", "Bo Reader", "bo@gmail.com", "03007654321",
                                 "--address", "12 Elm St"])
    assert result.exit_code == 0
    assert "Bo Reader (M-007)" in result.stdout

    result = runner.invoke(app, ["members"])
    assert "M-007 | Bo Reader | bo@gmail.com | 03007654321" in result.stdout


def test_add_member_rejects_bad_phone():
    result = runner.invoke(app, ["add-member", "M-007", "Bo", "bo@gmail.com", "123"])
    assert result.exit_code == 1
    assert "Phone number must be exactly 11 digits." in result.stdout


def test_remove_member(member):
    result = runner.invoke(app, ["remove-member", member.id])
    assert result.exit_code == 0
    assert f"Member {member.id} has been removed." in result.stdout


def test_issue_and_return(book, member, cli_lib):
    result = runner.invoke(app, ["issue", book.id, member.id, "--days", "7"])
    assert result.exit_code == 0
    assert "due 2025-03-08" in result.stdout

    transaction = cli_lib.list_transactions()[0]
    result = runner.invoke(app, ["loans"])
    assert "Dune | Ada Reader | 2025-03-01 | 2025-03-08 | - | Active" in result.stdout

    result = runner.invoke(app, ["return", transaction.id])
    assert result.exit_code == 0
    assert f"Returned transaction {transaction.id}" in result.stdout

    result = runner.invoke(app, ["return", transaction.id])
    assert result.exit_code == 1
    assert "has already been returned" in result.stdout


def test_issue_rejects_long_loans(book, member):
    result = runner.invoke(app, ["issue", book.id, member.id, "-d", "120"])
    assert result.exit_code == 1
    assert "due_days must be between 1 and 90." in result.stdout


def test_overdue_loans(book, member, cli_lib, clock):
    cli_lib.issue_book(book.id, member.id, 3)
    clock.advance(days=4)

    result = runner.invoke(app, ["loans", "--overdue"])
    assert "| Overdue" in result.stdout

    result = runner.invoke(app, ["loans", "--status", "returned"])
    assert "No transactions found." in result.stdout


def test_stats():
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total Books: 0" in result.stdout
    assert "Overdue Count: 0" in result.stdout


def test_report(book, member, cli_lib, clock):
    cli_lib.issue_book(book.id, member.id, 1)
    clock.advance(days=2)

    result = runner.invoke(app, ["report"])
    assert result.exit_code == 0
    assert "Borrowed Books: 1" in result.stdout
    assert "Science Fiction | 2" in result.stdout
    assert "| Overdue" in result.stdout


def test_json_output(book):
    result = runner.invoke(app, ["--output", "json", "books"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert rows[0]["id"] == book.id
    assert rows[0]["availability_status"] == "available"


def test_store_errors_exit_nonzero(cli_lib, monkeypatch):
    monkeypatch.setattr(cli_lib, "list_books", MagicMock(side_effect=StoreError("disk full")))
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 1
    assert "Error: disk full" in result.stdout


def test_serve_runs_uvicorn(monkeypatch):
    run = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run)

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "9000"])
    assert result.exit_code == 0
    assert "Starting API on http://0.0.0.0:9000/" in result.stdout
    args = run.call_args[0][0]
    assert args[1:] == ["-m", "uvicorn", "loanledger.api:app", "--host", "0.0.0.0", "--port", "9000"]
