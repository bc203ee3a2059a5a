import json
import os
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRARY_CLI_OUTPUT"

_console = Console()

BOOK_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("title", "Title"), ("author", "Author"), ("category", "Category"),
    ("available_copies", "Available"), ("total_copies", "Total"),
)
MEMBER_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("member_id", "Member ID"), ("name", "Name"), ("email", "Email"), ("phone", "Phone"),
)
TRANSACTION_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("book", "Book"), ("member", "Member"), ("issue_date", "Issued"),
    ("due_date", "Due"), ("return_date", "Returned"), ("state", "Status"),
)


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def transaction_row(transaction, overdue: bool) -> Dict[str, Any]:
    """Flatten a joined transaction for display; state is Returned, Overdue or Active."""
    data = transaction.to_dict()
    book = transaction.book or {}
    member = transaction.member or {}
    data["book"] = book.get("title") or transaction.book_id
    data["member"] = member.get("name") or transaction.member_id
    for key in ("issue_date", "due_date", "return_date"):
        if data[key]:
            data[key] = data[key][:10]
    if not transaction.is_active:
        data["state"] = "Returned"
    elif overdue:
        data["state"] = "Overdue"
    else:
        data["state"] = "Active"
    data["overdue"] = overdue
    return data


def print_rows(rows: List[Dict[str, Any]], columns: Sequence[Tuple[str, str]],
               title: str, empty_message: str) -> None:
    """Print records in the current output mode.
    - plain: one ' | '-separated line per record
    - json: JSON array of the full records
    - rich: Rich table
    """
    mode = get_output_mode()

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*[str(row.get(key) if row.get(key) is not None else "-") for key, _ in columns])
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(str(row.get(key) if row.get(key) is not None else "-") for key, _ in columns))


def print_stats_result(stats: Dict[str, Any], title: str = "Stats") -> None:
    """Print a flat mapping of counters in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{_label(k)}:[/] {v}" for k, v in stats.items())
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{_label(key)}: {value}")


def _label(key: str) -> str:
    return key.replace("_", " ").title()
