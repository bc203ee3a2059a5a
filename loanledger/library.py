from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from loanledger import reports
from loanledger.book import Book, availability_for
from loanledger.clock import Clock, SystemClock
from loanledger.config import settings
from loanledger.errors import ConstraintViolation, NotFound
from loanledger.ledger import LoanLedger
from loanledger.member import Member
from loanledger.store import DataStore, SQLiteStore, eq, gt
from loanledger.transaction import Transaction, TransactionStatus
from loanledger.validators import BookValidator, MemberValidator

logger = logging.getLogger(__name__)


def create_store(db_file: Optional[str] = None, clock: Optional[Clock] = None) -> DataStore:
    """Build the configured store: SQLite by default, PostgREST when LIBRARY_STORE=rest."""
    if settings.store_backend == "rest" and not db_file:
        from loanledger.services.rest_store import RestStore

        return RestStore(
            settings.store_url or "",
            api_key=settings.store_api_key,
            timeout=settings.store_timeout,
            read_retries=settings.store_read_retries,
        )
    return SQLiteStore(db_file, clock=clock)


class Library:
    """Books, members and loans over a single data store."""

    def __init__(self, store: Optional[DataStore] = None, db_file: Optional[str] = None,
                 clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self.store = store or create_store(db_file, self.clock)
        self.ledger = LoanLedger(self.store, self.clock, max_due_days=settings.max_due_days)
        self.member_validator = MemberValidator(
            email_domain=settings.member_email_domain,
            phone_digits=settings.member_phone_digits,
        )

    # ------------------------- Books ------------------------- #
    def add_book(self, title: str, author: str, isbn: str = "", category: str = "",
                 total_copies: int = 1) -> Book:
        """Add a catalog entry; every copy starts on the shelf."""
        total_copies = BookValidator.validate_total_copies(total_copies)
        row = self.store.insert("books", {
            "title": BookValidator.validate_text(title, "title"),
            "author": BookValidator.validate_text(author, "author"),
            "isbn": BookValidator.validate_isbn(isbn),
            "category": (category or "").strip(),
            "total_copies": total_copies,
            "available_copies": total_copies,
            "availability_status": availability_for(total_copies),
        })
        book = Book.from_dict(row)
        logger.info("added book %s (%s, %d copies)", book.id, book.title, book.total_copies)
        return book

    def find_book(self, book_id: str) -> Optional[Book]:
        try:
            return Book.from_dict(self.store.find("books", book_id))
        except NotFound:
            return None

    def get_book(self, book_id: str) -> Book:
        return Book.from_dict(self.store.find("books", book_id))

    def list_books(self) -> List[Book]:
        rows = self.store.query("books", order_by="created_at", descending=True)
        return [Book.from_dict(r) for r in rows]

    def list_available_books(self) -> List[Book]:
        rows = self.store.query("books", [gt("available_copies", 0)], order_by="title")
        return [Book.from_dict(r) for r in rows]

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive match over title, author, ISBN and category."""
        text = (query or "").strip().lower()
        books = self.list_books()
        if not text:
            return books
        return [
            b for b in books
            if text in b.title.lower()
            or text in b.author.lower()
            or text in b.isbn.lower()
            or text in b.category.lower()
        ]

    def update_book(self, book_id: str, *, title: Optional[str] = None, author: Optional[str] = None,
                    isbn: Optional[str] = None, category: Optional[str] = None,
                    total_copies: Optional[int] = None) -> Book:
        """Edit a book. Changing ``total_copies`` moves ``available_copies`` by the same amount."""
        book = self.get_book(book_id)
        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = BookValidator.validate_text(title, "title")
        if author is not None:
            fields["author"] = BookValidator.validate_text(author, "author")
        if isbn is not None:
            fields["isbn"] = BookValidator.validate_isbn(isbn)
        if category is not None:
            fields["category"] = category.strip()
        if total_copies is not None and total_copies != book.total_copies:
            total_copies = BookValidator.validate_total_copies(total_copies)
            available = book.available_copies + (total_copies - book.total_copies)
            if available < 0:
                raise ConstraintViolation(
                    f"Cannot reduce total copies to {total_copies}: "
                    f"{book.copies_on_loan} copies are on loan."
                )
            fields.update({
                "total_copies": total_copies,
                "available_copies": available,
                "availability_status": availability_for(available),
            })
        return Book.from_dict(self.store.update("books", book_id, fields))

    def remove_book(self, book_id: str) -> bool:
        """Delete a book with no loan history. Returns False when it does not exist."""
        if self.find_book(book_id) is None:
            return False
        if self.store.count("transactions", [eq("book_id", book_id)]):
            raise ConstraintViolation("Cannot delete a book that has loan transactions.")
        try:
            self.store.delete("books", book_id)
        except NotFound:
            return False
        return True

    # ------------------------- Members ------------------------- #
    def add_member(self, member_id: str, name: str, email: str, phone: str,
                   address: Optional[str] = None) -> Member:
        self.member_validator.ensure_valid(member_id, name, email, phone)
        row = self.store.insert("members", {
            "member_id": member_id.strip(),
            "name": name.strip(),
            "email": email.strip(),
            "phone": phone.strip(),
            "address": address.strip() if address and address.strip() else None,
            "membership_date": self.clock.now(),
        })
        member = Member.from_dict(row)
        logger.info("added member %s (%s)", member.id, member.member_id)
        return member

    def find_member(self, member_pk: str) -> Optional[Member]:
        try:
            return Member.from_dict(self.store.find("members", member_pk))
        except NotFound:
            return None

    def get_member(self, member_pk: str) -> Member:
        return Member.from_dict(self.store.find("members", member_pk))

    def list_members(self) -> List[Member]:
        rows = self.store.query("members", order_by="created_at", descending=True)
        return [Member.from_dict(r) for r in rows]

    def search_members(self, query: str) -> List[Member]:
        """Case-insensitive match over name, member code and email."""
        text = (query or "").strip().lower()
        members = self.list_members()
        if not text:
            return members
        return [
            m for m in members
            if text in m.name.lower() or text in m.member_id.lower() or text in m.email.lower()
        ]

    def update_member(self, member_pk: str, *, member_id: Optional[str] = None,
                      name: Optional[str] = None, email: Optional[str] = None,
                      phone: Optional[str] = None, address: Optional[str] = None) -> Member:
        """Edit a member; the result is re-validated as a whole. membership_date never changes."""
        current = self.get_member(member_pk)
        merged = {
            "member_id": member_id if member_id is not None else current.member_id,
            "name": name if name is not None else current.name,
            "email": email if email is not None else current.email,
            "phone": phone if phone is not None else current.phone,
        }
        self.member_validator.ensure_valid(**merged)
        fields: Dict[str, Any] = {k: v.strip() for k, v in merged.items()}
        if address is not None:
            fields["address"] = address.strip() or None
        return Member.from_dict(self.store.update("members", member_pk, fields))

    def remove_member(self, member_pk: str) -> bool:
        if self.find_member(member_pk) is None:
            return False
        if self.store.count("transactions", [eq("member_id", member_pk)]):
            raise ConstraintViolation("Cannot delete a member that has loan transactions.")
        try:
            self.store.delete("members", member_pk)
        except NotFound:
            return False
        return True

    # ------------------------- Loans ------------------------- #
    def issue_book(self, book_id: str, member_pk: str, due_days: Optional[int] = None) -> Transaction:
        if due_days is None:
            due_days = settings.default_due_days
        return self.ledger.issue(book_id, member_pk, due_days)

    def return_book(self, transaction_id: str) -> Transaction:
        return self.ledger.return_transaction(transaction_id)

    def get_transaction(self, transaction_id: str) -> Transaction:
        return Transaction.from_dict(self.store.find("transactions", transaction_id))

    def list_transactions(self, status: Optional[TransactionStatus] = None) -> List[Transaction]:
        """Transactions with book and member detail, newest first."""
        filters = [eq("status", status)] if status is not None else []
        rows = self.store.query_transactions(filters, order_by="created_at", descending=True)
        return [Transaction.from_dict(r) for r in rows]

    def list_overdue(self) -> List[Transaction]:
        return reports.overdue_transactions(self.store, self.clock.now())

    def is_overdue(self, transaction: Transaction) -> bool:
        return self.ledger.is_overdue(transaction)

    # ------------------------- Reports ------------------------- #
    def get_statistics(self) -> Dict[str, int]:
        return reports.dashboard_stats(self.store, self.clock.now())

    def get_report(self) -> Dict[str, Any]:
        now = self.clock.now()
        return {
            "stats": reports.library_report(self.store, now),
            "categories": reports.category_breakdown(self.store),
            "overdue": reports.overdue_transactions(self.store, now),
            "recent": reports.recent_transactions(self.store),
        }

    def close(self) -> None:
        self.store.close()
