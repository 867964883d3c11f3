from datetime import date, datetime, timedelta

import pytest

from lending.errors import (
    BorrowLimitError, InvalidStateError, NotFoundError, UnavailableError,
    UnresolvedUserError, ValidationError,
)
from lending.models import Book, LoanStatus, RequestStatus, Role, User

def _setup(lib, copies=1):
    lib.catalog.add_book(Book(id="B1", title="The Great Gatsby", author="F. Scott Fitzgerald", total_copies=copies))
    lib.directory.register(User(id="U1", name="John Doe", email="john.doe@email.com", username="jdoe"))
    lib.directory.register(User(id="U2", name="Jane Smith", email="jane.smith@email.com", username="jsmith"))
    lib.directory.register(User(id="A1", name="Ava Admin", email="admin@email.com", role=Role.ADMIN))

def test_approve_creates_loan_due_end_of_desired_day(library):
    _setup(library)
    req = library.requests.create_request("jdoe", "B1", date(2024, 1, 20))
    assert req.id == "R001"
    assert req.status == RequestStatus.PENDING
    assert req.user_id == "U1"
    assert req.request_date == date(2024, 1, 10)

    approved = library.requests.approve("R001", "A1")
    assert approved.status == RequestStatus.APPROVED
    assert approved.decided_by == "A1"
    assert approved.loan_id == "L001"

    loan = library.ledger.get_loan("L001")
    assert loan.user_id == "U1"
    assert loan.status == LoanStatus.ACTIVE
    assert loan.due_date == datetime(2024, 1, 20, 23, 59)
    assert "R001" in loan.notes
    assert library.catalog.get_book("B1").available_copies == 0
    assert library.integrity_violations() == []

def test_approve_without_copies_keeps_request_pending(library):
    _setup(library)
    library.ledger.issue_loan("L1", "U2", "B1")
    library.requests.create_request("jdoe", "B1", date(2024, 1, 20))

    with pytest.raises(UnavailableError):
        library.requests.approve("R001", "A1")
    assert library.requests.get_request("R001").status == RequestStatus.PENDING
    assert [l.id for l in library.ledger.list_loans()] == ["L1"]
    assert library.directory.get_user("U1").borrowed_count == 0

def test_approve_at_borrow_limit_keeps_request_pending(library):
    _setup(library, copies=3)
    library.directory.update("U1", {"borrow_limit": 0})
    library.requests.create_request("jdoe", "B1", date(2024, 1, 20))
    with pytest.raises(BorrowLimitError):
        library.requests.approve("R001", "A1")
    assert library.requests.pending()[0].id == "R001"
    assert library.catalog.get_book("B1").available_copies == 3

def test_desired_return_date_must_be_after_tomorrow(library, clock):
    _setup(library)
    today = clock().date()
    with pytest.raises(ValidationError):
        library.requests.create_request("jdoe", "B1", today)
    with pytest.raises(ValidationError):
        library.requests.create_request("jdoe", "B1", today + timedelta(days=1))
    req = library.requests.create_request("jdoe", "B1", today + timedelta(days=2))
    assert req.desired_return_date == today + timedelta(days=2)

def test_create_request_checks_book_and_user(library):
    _setup(library)
    with pytest.raises(ValidationError):
        library.requests.create_request("  ", "B1", date(2024, 2, 1))
    with pytest.raises(NotFoundError):
        library.requests.create_request("jdoe", "B9", date(2024, 2, 1))
    with pytest.raises(UnresolvedUserError):
        library.requests.create_request("ghost", "B1", date(2024, 2, 1))
    assert library.requests.list_requests() == []

def test_requester_resolved_by_email_or_name(library):
    _setup(library)
    by_email = library.requests.create_request("Jane.Smith@email.com", "B1", date(2024, 2, 1))
    by_name = library.requests.create_request("john doe", "B1", date(2024, 2, 1))
    assert by_email.user_id == "U2"
    assert by_name.user_id == "U1"

def test_ambiguous_name_is_not_guessed(library):
    _setup(library)
    library.directory.register(User(id="U3", name="John Doe", email="other.john@email.com"))
    with pytest.raises(UnresolvedUserError):
        library.requests.create_request("John Doe", "B1", date(2024, 2, 1))
    # usernames stay unique, so they always resolve
    assert library.requests.create_request("jdoe", "B1", date(2024, 2, 1)).user_id == "U1"

def test_decided_requests_are_final(library):
    _setup(library, copies=2)
    library.requests.create_request("jdoe", "B1", date(2024, 1, 20))
    library.requests.approve("R001", "A1")

    with pytest.raises(InvalidStateError):
        library.requests.approve("R001", "A1")
    with pytest.raises(InvalidStateError):
        library.requests.deny("R001", "A1")
    assert len(library.ledger.list_loans()) == 1
    assert library.catalog.get_book("B1").available_copies == 1

def test_deny_records_reason_without_loan(library, clock):
    _setup(library)
    library.requests.create_request("jsmith", "B1", date(2024, 1, 25))
    denied = library.requests.deny("R001", "A1", "  damaged copy  ")
    assert denied.status == RequestStatus.DENIED
    assert denied.notes == "damaged copy"
    assert denied.decided_at == clock()
    assert denied.loan_id is None
    assert library.ledger.list_loans() == []

    with pytest.raises(NotFoundError):
        library.requests.deny("R404", "A1")

def test_list_requests_filters(library):
    _setup(library, copies=2)
    library.requests.create_request("jdoe", "B1", date(2024, 1, 20))
    library.requests.create_request("jsmith", "B1", date(2024, 1, 20))
    library.requests.deny("R002", "A1")

    assert [r.id for r in library.requests.pending()] == ["R001"]
    assert [r.id for r in library.requests.list_requests(username="JSMITH")] == ["R002"]
    assert [r.id for r in library.requests.list_requests(status=RequestStatus.DENIED)] == ["R002"]
