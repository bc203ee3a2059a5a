import os
import sqlite3
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

# Make sure .env values are loaded before LIBRARY_DB_FILE is read below.
load_dotenv()

from loanledger.config import settings

# Column sets per table; store calls naming anything else are rejected.
TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "books": (
        "id", "title", "author", "isbn", "category", "total_copies",
        "available_copies", "availability_status", "created_at",
    ),
    "members": (
        "id", "member_id", "name", "email", "phone", "address",
        "membership_date", "created_at",
    ),
    "transactions": (
        "id", "book_id", "member_id", "issue_date", "due_date", "return_date",
        "status", "created_at",
    ),
}


def resolve_database_file(db_file: Optional[str] = None) -> str:
    """Pick the SQLite file: explicit argument, then LIBRARY_DB_FILE, then settings."""
    return db_file or os.environ.get("LIBRARY_DB_FILE") or settings.data_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database with row access by column name."""
    conn = sqlite3.connect(resolve_database_file(db_file))
    conn.row_factory = sqlite3.Row
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the books, members and transactions tables if they do not exist."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL DEFAULT '',
                category TEXT NOT NULL DEFAULT '',
                total_copies INTEGER NOT NULL CHECK(total_copies > 0),
                available_copies INTEGER NOT NULL
                    CHECK(available_copies >= 0 AND available_copies <= total_copies),
                availability_status TEXT NOT NULL DEFAULT 'available'
                    CHECK(availability_status IN ('available', 'borrowed')),
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                member_id TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                phone TEXT NOT NULL,
                address TEXT,
                membership_date TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                issue_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK(status IN ('active', 'returned')),
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_available ON books(available_copies)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_members_created_at ON members(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_book_id ON transactions(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_member_id ON transactions(member_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON transactions(created_at DESC)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialise the database, creating the tables when needed."""
    create_tables(db_file)
