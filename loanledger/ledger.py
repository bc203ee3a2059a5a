"""Issue and return books while keeping copy counters in step with open loans.

For every book, the number of ``active`` transactions referencing it equals
``total_copies - available_copies``. Issue and Return each make two separate
store writes (transaction row, then book row) with no rollback: a failure on the
second write leaves the first in place and the error is re-raised.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from loanledger.book import Book, availability_for
from loanledger.clock import Clock, SystemClock
from loanledger.errors import ConstraintViolation, InvalidState, LedgerError
from loanledger.member import Member
from loanledger.store import DataStore
from loanledger.transaction import Transaction, TransactionStatus
from loanledger.validators import validate_due_days

logger = logging.getLogger(__name__)

MAX_DUE_DAYS = 90


def is_overdue(transaction: Transaction, now: datetime) -> bool:
    """An active transaction is overdue once ``now`` is past its due date."""
    return transaction.is_overdue(now)


class LoanLedger:
    def __init__(self, store: DataStore, clock: Optional[Clock] = None,
                 max_due_days: int = MAX_DUE_DAYS) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        # Configuration may tighten the loan period but never extend it past MAX_DUE_DAYS
        self.max_due_days = min(max_due_days, MAX_DUE_DAYS)

    def now(self) -> datetime:
        return self.clock.now()

    def is_overdue(self, transaction: Transaction) -> bool:
        return is_overdue(transaction, self.now())

    def issue(self, book_id: str, member_id: str, due_days: int) -> Transaction:
        """Lend one copy of ``book_id`` to ``member_id`` for ``due_days`` days.

        The availability check reads the book and the decrement writes back the
        value read; two concurrent issues of the last copy can both pass the check.
        """
        validate_due_days(due_days, self.max_due_days)
        Member.from_dict(self.store.find("members", member_id))
        book = Book.from_dict(self.store.find("books", book_id))
        if book.available_copies <= 0:
            raise ConstraintViolation(f"No copies of '{book.title}' are available.")

        now = self.now()
        transaction = Transaction.from_dict(self.store.insert("transactions", {
            "book_id": book.id,
            "member_id": member_id,
            "issue_date": now,
            "due_date": now + timedelta(days=due_days),
            "return_date": None,
            "status": TransactionStatus.ACTIVE,
        }))

        remaining = book.available_copies - 1
        try:
            self.store.update("books", book.id, {
                "available_copies": remaining,
                "availability_status": availability_for(remaining),
            })
        except LedgerError:
            logger.error(
                "transaction %s inserted but book %s was not decremented; counters are out of step",
                transaction.id, book.id,
            )
            raise

        logger.info("issued book %s to member %s as transaction %s (due %s)",
                    book.id, member_id, transaction.id, transaction.due_date.date())
        return transaction

    def return_transaction(self, transaction_id: str) -> Transaction:
        """Close an active transaction and put its copy back on the shelf."""
        transaction = Transaction.from_dict(self.store.find("transactions", transaction_id))
        if transaction.status == TransactionStatus.RETURNED:
            raise InvalidState(f"Transaction {transaction_id} has already been returned.")

        returned = Transaction.from_dict(self.store.update("transactions", transaction_id, {
            "return_date": self.now(),
            "status": TransactionStatus.RETURNED,
        }))

        try:
            book = Book.from_dict(self.store.find("books", transaction.book_id))
        except LookupError:
            logger.warning("transaction %s returned but book %s no longer exists",
                           transaction_id, transaction.book_id)
            return returned

        restored = min(book.available_copies + 1, book.total_copies)
        try:
            self.store.update("books", book.id, {
                "available_copies": restored,
                "availability_status": availability_for(restored),
            })
        except LedgerError:
            logger.error(
                "transaction %s marked returned but book %s was not incremented; counters are out of step",
                transaction_id, book.id,
            )
            raise

        logger.info("returned transaction %s for book %s", transaction_id, book.id)
        return returned
