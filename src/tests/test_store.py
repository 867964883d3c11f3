from datetime import date, timedelta
from decimal import Decimal

import pytest

from lending.core.library import Library
from lending.models import Book, LoanStatus, RequestStatus, User
from lending.store import BOOKS, MemoryStore

@pytest.fixture(params=["memory", "sql"])
def store(request, sql_store):
    return MemoryStore() if request.param == "memory" else sql_store

def test_put_get_patch_delete(store):
    store.put(BOOKS, {"id": "B1", "title": "Dune", "total_copies": 2})
    store.put(BOOKS, {"id": "B2", "title": "Emma", "total_copies": 1})

    assert store.get(BOOKS, "B1")["title"] == "Dune"
    assert store.get(BOOKS, "B9") is None
    assert [r["id"] for r in store.get_all(BOOKS, {"total_copies": 1})] == ["B2"]

    store.patch(BOOKS, "B1", {"total_copies": 3})
    assert store.get(BOOKS, "B1") == {"id": "B1", "title": "Dune", "total_copies": 3}
    with pytest.raises(KeyError):
        store.patch(BOOKS, "B9", {"title": "x"})

    assert store.delete(BOOKS, "B1") is True
    assert store.delete(BOOKS, "B1") is False
    assert store.get_all("loans") == []

def test_memory_store_hands_out_copies():
    store = MemoryStore()
    record = {"id": "B1", "reservations": []}
    store.put(BOOKS, record)
    record["reservations"].append("U1")
    store.get(BOOKS, "B1")["reservations"].append("U2")
    assert store.get(BOOKS, "B1")["reservations"] == []

def _populate(lib):
    lib.catalog.add_book(Book(id="B1", title="1984", author="George Orwell", total_copies=3, category="Fiction"))
    lib.directory.register(User(id="U1", name="John Doe", email="john.doe@email.com", username="jdoe"))
    lib.directory.register(User(id="U2", name="Jane Smith", email="jane.smith@email.com", username="jsmith"))
    lib.ledger.issue_loan("L001", "U1", "B1")
    lib.ledger.issue_loan("L002", "U2", "B1")
    lib.catalog.reserve("B1", "U2")
    lib.requests.create_request("jsmith", "B1", lib.policy.now().date() + timedelta(days=5))

def test_library_reloads_from_sql_store(sql_library, sql_store, policy, clock):
    _populate(sql_library)
    clock.advance(days=20)
    sql_library.ledger.return_loan("L002")

    again = Library.from_store(sql_store, policy)
    book = again.catalog.get_book("B1")
    assert book.available_copies == 2
    assert set(book.active_loans) == {"L001"}
    assert book.reservations == {"U2"}
    assert again.ledger.get_loan("L002").status == LoanStatus.RETURNED
    assert again.ledger.get_loan("L002").fine_amount == Decimal("3.00")
    assert again.directory.get_user("U1").borrowed_book_ids == ["B1"]
    assert again.requests.get_request("R001").status == RequestStatus.PENDING
    assert again.integrity_violations() == []

    # the reloaded book shares the ledger's loan objects
    again.ledger.return_loan("L001")
    assert again.catalog.get_book("B1").available_copies == 3
    assert again.integrity_violations() == []

def test_reloaded_library_continues_id_sequence(library):
    _populate(library)
    again = Library.from_store(library.store, library.policy)
    assert again.ledger.next_loan_id() == "L003"
    req = again.requests.create_request("jdoe", "B1", date(2024, 2, 1))
    assert req.id == "R002"
