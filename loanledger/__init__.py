"""Library loan ledger.

Modules:
- Loan ledger: issue/return and overdue checks (ledger.py)
- CRUD facade over books, members and loans (library.py)
- Dashboard and report aggregates (reports.py)
- Records mapped from store rows (book.py, member.py, transaction.py)
- Data store contract and SQLite backend (store.py, database.py)
- HTTP API (api.py) and CLI (main.py)
"""

__version__ = "1.0.0"
