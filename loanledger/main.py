import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from loanledger.config import configure_logging, settings
from loanledger.errors import LedgerError
from loanledger.library import Library
from loanledger.transaction import TransactionStatus
from loanledger.ui_helpers import (
    BOOK_COLUMNS,
    MEMBER_COLUMNS,
    TRANSACTION_COLUMNS,
    print_rows,
    print_stats_result,
    set_output_mode,
    transaction_row,
)

console = Console(stderr=True)


class LibraryManager:
    """Lazily built Library shared by every command in one process."""
    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = Library()
        return cls._instance

    @classmethod
    def reset(cls, instance: Optional[Library] = None) -> None:
        if cls._instance is not None and cls._instance is not instance:
            cls._instance.close()
        cls._instance = instance


def _fail(exc: Exception) -> None:
    print(f"Error: {exc}")
    raise typer.Exit(code=1)


app = typer.Typer(help="Library loan ledger CLI")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Global options for every command."""
    if output:
        set_output_mode(output)
    configure_logging(log_level or "WARNING")


# --- Books ---
@app.command("books")
def cli_books(
    available: bool = typer.Option(False, "--available", "-a", help="Only books with copies on the shelf"),
):
    """List all books, newest first."""
    lib = LibraryManager.get_instance()
    try:
        books = lib.list_available_books() if available else lib.list_books()
    except LedgerError as e:
        _fail(e)
    print_rows([b.to_dict() for b in books], BOOK_COLUMNS, "Books", "No books in library.")


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    isbn: str = typer.Option("", "--isbn", help="ISBN-10 or ISBN-13"),
    category: str = typer.Option("", "--category", "-c"),
    copies: int = typer.Option(1, "--copies", "-n", help="Total copies"),
):
    """Add a book to the catalog."""
    try:
        book = LibraryManager.get_instance().add_book(
            title, author, isbn=isbn, category=category, total_copies=copies,
        )
    except LedgerError as e:
        _fail(e)
    print(f"Added book {book.id}: {book.title} by {book.author} ({book.total_copies} copies)")


@app.command("remove-book")
def cli_remove_book(book_id: str):
    """Delete a book by id."""
    try:
        removed = LibraryManager.get_instance().remove_book(book_id)
    except LedgerError as e:
        _fail(e)
    if removed:
        print(f"Book {book_id} has been removed.")
    else:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)


@app.command("find-book")
def cli_find_book(book_id: str):
    """Show one book."""
    try:
        book = LibraryManager.get_instance().find_book(book_id)
    except LedgerError as e:
        _fail(e)
    if book is None:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"ISBN: {book.isbn}")
    print(f"Category: {book.category}")
    print(f"Copies: {book.available_copies}/{book.total_copies} ({book.availability_status})")


@app.command("search")
def cli_search(
    query: str = typer.Argument(..., help="Search text"),
    members: bool = typer.Option(False, "--members", "-m", help="Search members instead of books"),
):
    """Search books (title, author, ISBN, category) or members (name, member ID, email)."""
    lib = LibraryManager.get_instance()
    try:
        if members:
            rows = [m.to_dict() for m in lib.search_members(query)]
            print_rows(rows, MEMBER_COLUMNS, "Members", "No matching members.")
        else:
            rows = [b.to_dict() for b in lib.search_books(query)]
            print_rows(rows, BOOK_COLUMNS, "Books", "No matching books.")
    except LedgerError as e:
        _fail(e)


# --- Members ---
@app.command("members")
def cli_members():
    """List all members, newest first."""
    try:
        members = LibraryManager.get_instance().list_members()
    except LedgerError as e:
        _fail(e)
    print_rows([m.to_dict() for m in members], MEMBER_COLUMNS, "Members", "No members registered.")


@app.command("add-member")
def cli_add_member(
    member_id: str,
    name: str,
    email: str,
    phone: str,
    address: Optional[str] = typer.Option(None, "--address"),
):
    """Register a member."""
    try:
        member = LibraryManager.get_instance().add_member(member_id, name, email, phone, address=address)
    except LedgerError as e:
        _fail(e)
    print(f"Added member {member.id}: {member.name} ({member.member_id})")


@app.command("remove-member")
def cli_remove_member(member_pk: str):
    """Delete a member by id."""
    try:
        removed = LibraryManager.get_instance().remove_member(member_pk)
    except LedgerError as e:
        _fail(e)
    if removed:
        print(f"Member {member_pk} has been removed.")
    else:
        print(f"Member {member_pk} not found.")
        raise typer.Exit(code=1)


# --- Loans ---
@app.command("issue")
def cli_issue(
    book_id: str,
    member_pk: str,
    days: int = typer.Option(settings.default_due_days, "--days", "-d", help="Loan period in days (1-90)"),
):
    """Issue a book to a member."""
    try:
        transaction = LibraryManager.get_instance().issue_book(book_id, member_pk, days)
    except LedgerError as e:
        _fail(e)
    print(f"Issued transaction {transaction.id}, due {transaction.due_date.date().isoformat()}")


@app.command("return")
def cli_return(transaction_id: str):
    """Return a borrowed book."""
    try:
        transaction = LibraryManager.get_instance().return_book(transaction_id)
    except LedgerError as e:
        _fail(e)
    print(f"Returned transaction {transaction.id}")


@app.command("loans")
def cli_loans(
    status: Optional[TransactionStatus] = typer.Option(None, "--status", "-s", help="active | returned"),
    overdue: bool = typer.Option(False, "--overdue", help="Only overdue loans"),
):
    """List loan transactions, newest first."""
    lib = LibraryManager.get_instance()
    try:
        transactions = lib.list_overdue() if overdue else lib.list_transactions(status)
    except LedgerError as e:
        _fail(e)
    rows = [transaction_row(t, lib.is_overdue(t)) for t in transactions]
    print_rows(rows, TRANSACTION_COLUMNS, "Transactions", "No transactions found.")


# --- Reports ---
@app.command("stats")
def cli_stats():
    """Dashboard counters."""
    try:
        stats = LibraryManager.get_instance().get_statistics()
    except LedgerError as e:
        _fail(e)
    print_stats_result(stats, title="Dashboard")


@app.command("report")
def cli_report():
    """Copy totals, category breakdown and overdue loans."""
    lib = LibraryManager.get_instance()
    try:
        report = lib.get_report()
    except LedgerError as e:
        _fail(e)
    print_stats_result(report["stats"], title="Library Report")
    print_rows(report["categories"], (("category", "Category"), ("count", "Copies")),
               "Books by Category", "No categories.")
    overdue = [transaction_row(t, True) for t in report["overdue"]]
    print_rows(overdue, TRANSACTION_COLUMNS, "Overdue", "No overdue books.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "loanledger.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
