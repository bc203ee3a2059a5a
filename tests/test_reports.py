from loanledger import reports


def test_empty_library(store, clock):
    assert reports.dashboard_stats(store, clock.now()) == {
        "total_books": 0, "total_members": 0, "active_transactions": 0, "overdue_count": 0,
    }
    assert reports.library_report(store, clock.now())["total_books"] == 0
    assert reports.category_breakdown(store) == []
    assert reports.recent_transactions(store) == []


def test_dashboard_and_report_counts(lib, store, clock, book, member):
    lib.add_book("Solaris", "Stanislaw Lem", category="Science Fiction", total_copies=3)
    lib.add_book("Emma", "Jane Austen", total_copies=1)
    late = lib.issue_book(book.id, member.id, 2)
    lib.issue_book(book.id, member.id, 20)
    clock.advance(days=3)
    done = lib.issue_book(lib.search_books("emma")[0].id, member.id, 1)
    lib.return_book(done.id)
    clock.advance(days=5)

    stats = reports.dashboard_stats(store, clock.now())
    assert stats == {
        "total_books": 3, "total_members": 1, "active_transactions": 2, "overdue_count": 1,
    }

    report = reports.library_report(store, clock.now())
    assert report == {
        "total_books": 6,
        "available_books": 4,
        "borrowed_books": 2,
        "total_members": 1,
        "total_transactions": 3,
        "active_loans": 2,
        "returned_books": 1,
        "overdue_books": 1,
    }
    assert [t.id for t in reports.overdue_transactions(store, clock.now())] == [late.id]


def test_category_breakdown_sums_copies(lib, store, book):
    lib.add_book("Solaris", "Stanislaw Lem", category="Science Fiction", total_copies=3)
    lib.add_book("Emma", "Jane Austen", total_copies=1)

    assert reports.category_breakdown(store) == [
        {"category": "Science Fiction", "count": 5},
        {"category": "Uncategorized", "count": 1},
    ]


def test_overdue_ordered_by_due_date(lib, store, clock, book, member):
    later = lib.issue_book(book.id, member.id, 5)
    sooner = lib.issue_book(book.id, member.id, 2)
    clock.advance(days=10)

    overdue = reports.overdue_transactions(store, clock.now())
    assert [t.id for t in overdue] == [sooner.id, later.id]
    assert overdue[0].book["title"] == "Dune"


def test_recent_transactions_limit(lib, store, clock, book, member):
    issued = []
    for _ in range(3):
        transaction = lib.issue_book(book.id, member.id, 7)
        lib.return_book(transaction.id)
        issued.append(transaction.id)
        clock.advance(minutes=1)

    recent = reports.recent_transactions(store, limit=2)
    assert [t.id for t in recent] == [issued[2], issued[1]]


def test_library_report_bundle(lib, book):
    report = lib.get_report()
    assert set(report) == {"stats", "categories", "overdue", "recent"}
    assert report["stats"]["total_books"] == 2
