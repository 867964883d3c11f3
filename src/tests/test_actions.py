import logging
from datetime import date
from decimal import Decimal

from lending.actions import (
    approve_request,
    calculate_fine,
    create_request,
    delete_book,
    deny_request,
    extend_loan,
    issue_loan,
    library_stats,
    list_books,
    list_loans,
    mark_lost,
    refresh_loans,
    register_book,
    register_user,
    reserve_book,
    return_loan,
    update_book,
)
from lending.seed import seed_demo_data

def _mk_book_and_user(lib, *, copies=1):
    r = register_book(lib, book_id="B1", title="Clean Code", author="Robert C. Martin", total_copies=copies)
    assert r["ok"] is True
    r2 = register_user(lib, user_id="U1", name="Alice Reader", email="alice@example.com", username="alice")
    assert r2["ok"] is True
    return r["data"]["book_id"], r2["data"]["user_id"]

def test_register_and_list_books(library):
    r0 = list_books(library)
    assert r0["ok"] is True
    assert r0["data"]["items"] == []

    book_id, _ = _mk_book_and_user(library, copies=2)
    r1 = list_books(library)
    items = r1["data"]["items"]
    assert len(items) == 1
    it = items[0]
    assert it["book_id"] == book_id
    assert it["copies_total"] == 2
    assert it["copies_available"] == 2

    assert list_books(library, q="martin")["data"]["items"][0]["book_id"] == "B1"
    assert list_books(library, q="tolkien")["data"]["items"] == []

def test_issue_success_and_unavailable(library):
    book_id, user_id = _mk_book_and_user(library)
    r = issue_loan(library, user_id=user_id, book_id=book_id)
    assert r["ok"] is True
    assert r["data"]["loan_id"] == "L001"
    assert r["data"]["status"] == "ACTIVE"

    register_user(library, user_id="U2", name="Bob", email="bob@example.com")
    r2 = issue_loan(library, user_id="U2", book_id=book_id)
    assert r2["ok"] is False
    assert r2["code"] == "UNAVAILABLE"

    r3 = issue_loan(library, user_id="U404", book_id=book_id)
    assert r3["code"] == "NOT_FOUND"

def test_refusals_are_logged_as_warnings(library, caplog):
    with caplog.at_level(logging.WARNING, logger="lending.actions"):
        r = delete_book(library, book_id="B404")
    assert r["ok"] is False
    assert r["code"] == "NOT_FOUND"
    assert any("delete_book" in rec.getMessage() for rec in caplog.records)

def test_late_return_reports_fine(library, clock):
    book_id, user_id = _mk_book_and_user(library)
    issue_loan(library, user_id=user_id, book_id=book_id)
    clock.advance(days=18)

    r = calculate_fine(library, loan_id="L001")
    assert r["data"]["fine_amount"] == Decimal("2.00")
    assert refresh_loans(library)["data"]["changed"] == 1

    r2 = return_loan(library, loan_id="L001")
    assert r2["ok"] is True
    assert r2["data"]["status"] == "RETURNED"
    assert "$2.00" in r2["message"]

    r3 = return_loan(library, loan_id="L001")
    assert r3["ok"] is False
    assert r3["code"] == "ALREADY_CLOSED"

def test_extend_and_lost(library):
    book_id, user_id = _mk_book_and_user(library)
    issue_loan(library, user_id=user_id, book_id=book_id)

    assert extend_loan(library, loan_id="L001", days=0)["code"] == "NOT_EXTENDED"
    assert extend_loan(library, loan_id="L001", days=7)["ok"] is True

    r = mark_lost(library, loan_id="L001", fine=Decimal("30"))
    assert r["ok"] is True
    assert r["data"]["status"] == "LOST"
    assert mark_lost(library, loan_id="L001", fine=Decimal("30"))["code"] == "ALREADY_CLOSED"
    assert mark_lost(library, loan_id="L001", fine=Decimal("-5"))["code"] == "VALIDATION_ERROR"

def test_update_book_refusal_code(library):
    book_id, user_id = _mk_book_and_user(library)
    issue_loan(library, user_id=user_id, book_id=book_id)
    r = update_book(library, book_id=book_id, fields={"total_copies": 0})
    assert r["ok"] is False
    assert r["code"] == "VALIDATION_ERROR"
    assert delete_book(library, book_id=book_id)["code"] == "CONFLICT"

def test_reserve_requires_known_user(library):
    book_id, user_id = _mk_book_and_user(library)
    assert reserve_book(library, book_id=book_id, user_id="U404")["code"] == "NOT_FOUND"
    assert reserve_book(library, book_id=book_id, user_id=user_id)["data"]["changed"] is True
    assert reserve_book(library, book_id=book_id, user_id=user_id, cancel=True)["data"]["changed"] is True

def test_request_flow(library):
    book_id, _ = _mk_book_and_user(library)
    r = create_request(library, username="alice", book_id=book_id, desired_return_date=date(2024, 1, 24))
    assert r["ok"] is True
    request_id = r["data"]["request_id"]

    r2 = approve_request(library, request_id=request_id, admin_id="A1")
    assert r2["ok"] is True
    assert r2["data"]["loan_id"] == "L001"
    assert "L001" in r2["message"]

    assert deny_request(library, request_id=request_id, admin_id="A1")["code"] == "INVALID_STATE"
    r3 = create_request(library, username="nobody", book_id=book_id, desired_return_date=date(2024, 1, 24))
    assert r3["code"] == "UNRESOLVED_USER"

def test_list_loans_search_and_bad_status(library):
    book_id, user_id = _mk_book_and_user(library, copies=2)
    issue_loan(library, user_id=user_id, book_id=book_id)
    assert [it["loan_id"] for it in list_loans(library, q="alice")["data"]["items"]] == ["L001"]
    assert [it["loan_id"] for it in list_loans(library, q="clean code")["data"]["items"]] == ["L001"]
    assert list_loans(library, status="returned")["data"]["items"] == []
    assert list_loans(library, status="borrowed")["code"] == "VALIDATION_ERROR"

def test_seeded_stats(library):
    assert seed_demo_data(library) is True
    assert seed_demo_data(library) is False

    d = library_stats(library)["data"]
    assert d["books"] == 3
    assert d["total_copies"] == 9
    assert d["available_copies"] == 8
    assert d["users"] == 4
    assert d["active_loans"] == 1
    assert d["overdue_loans"] == 0
    assert d["pending_requests"] == 1
    assert d["total_fines"] == Decimal("0.00")
    assert library.integrity_violations() == []
