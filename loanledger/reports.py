"""Read-side aggregates for the dashboard and the reports view.

Overdue counts are always computed from ``due_date`` against the supplied
``now``; nothing here writes to the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from loanledger.book import Book
from loanledger.store import DataStore, eq, lt
from loanledger.transaction import Transaction, TransactionStatus

RECENT_LIMIT = 10


def _active(store: DataStore) -> List[Transaction]:
    rows = store.query("transactions", [eq("status", TransactionStatus.ACTIVE)])
    return [Transaction.from_dict(r) for r in rows]


def dashboard_stats(store: DataStore, now: datetime) -> Dict[str, int]:
    active = _active(store)
    return {
        "total_books": store.count("books"),
        "total_members": store.count("members"),
        "active_transactions": len(active),
        "overdue_count": sum(1 for t in active if t.is_overdue(now)),
    }


def library_report(store: DataStore, now: datetime) -> Dict[str, int]:
    """Copy-level totals; ``total_books`` and ``available_books`` sum copies, not titles."""
    books = [Book.from_dict(r) for r in store.query("books")]
    transactions = [Transaction.from_dict(r) for r in store.query("transactions")]
    active = [t for t in transactions if t.is_active]

    total_copies = sum(b.total_copies for b in books)
    available_copies = sum(b.available_copies for b in books)
    return {
        "total_books": total_copies,
        "available_books": available_copies,
        "borrowed_books": total_copies - available_copies,
        "total_members": store.count("members"),
        "total_transactions": len(transactions),
        "active_loans": len(active),
        "returned_books": sum(1 for t in transactions if t.status == TransactionStatus.RETURNED),
        "overdue_books": sum(1 for t in active if t.is_overdue(now)),
    }


def category_breakdown(store: DataStore) -> List[Dict[str, Any]]:
    """Copies per category, in first-seen order."""
    counts: Dict[str, int] = {}
    for row in store.query("books", order_by="created_at"):
        book = Book.from_dict(row)
        category = book.category or "Uncategorized"
        counts[category] = counts.get(category, 0) + book.total_copies
    return [{"category": category, "count": count} for category, count in counts.items()]


def overdue_transactions(store: DataStore, now: datetime) -> List[Transaction]:
    # due_date < now narrows the fetch; is_overdue makes the final call
    rows = store.query_transactions(
        [eq("status", TransactionStatus.ACTIVE), lt("due_date", now)],
        order_by="due_date",
    )
    return [t for t in (Transaction.from_dict(r) for r in rows) if t.is_overdue(now)]


def recent_transactions(store: DataStore, limit: int = RECENT_LIMIT) -> List[Transaction]:
    rows = store.query_transactions(order_by="created_at", descending=True, limit=limit)
    return [Transaction.from_dict(r) for r in rows]
