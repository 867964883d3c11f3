from __future__ import annotations
import threading
from typing import Any, Dict, List, Optional

from lending.core.board import RequestBoard
from lending.core.catalog import Catalog
from lending.core.directory import Directory
from lending.core.ledger import LoanLedger
from lending.core.policy import LendingPolicy
from lending.models import Loan, LoanStatus
from lending.store import MemoryStore, Store

class Library:
    """
    Wires the four components to one store, one policy and one lock, and
    offers the queries that span more than one of them.
    """

    def __init__(self, store: Optional[Store] = None, policy: Optional[LendingPolicy] = None) -> None:
        self.store = store if store is not None else MemoryStore()
        self.policy = policy or LendingPolicy()
        # single lock for all aggregates; compound operations nest freely
        self.lock = threading.RLock()

        self.directory = Directory(self.store, self.policy, self.lock)
        self.catalog = Catalog(self.store, self.policy, self.lock)
        self.ledger = LoanLedger(self.store, self.policy, self.catalog, self.directory, self.lock)
        self.requests = RequestBoard(
            self.store, self.policy, self.catalog, self.directory, self.ledger, self.lock
        )

    @classmethod
    def from_store(cls, store: Store, policy: Optional[LendingPolicy] = None) -> "Library":
        lib = cls(store, policy)
        lib.reload()
        return lib

    def reload(self) -> None:
        with self.lock:
            self.directory.load()
            self.ledger.load()
            self.catalog.load(self.ledger.live_loans())
            self.requests.load()

    # ---- cross-component queries
    def search_loans(self, text: str = "", status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans whose id, borrower name or book title contains ``text``."""
        t = (text or "").lower().strip()
        with self.lock:
            names = {u.id: u.name.lower() for u in self.directory.list_users()}
            titles = {b.id: b.title.lower() for b in self.catalog.list_books()}
            return [
                loan for loan in self.ledger.list_loans(status=status)
                if not t
                or t in loan.id.lower()
                or t in names.get(loan.user_id, "")
                or t in titles.get(loan.book_id, "")
            ]

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            books = self.catalog.list_books()
            return {
                "books": len(books),
                "total_copies": sum(b.total_copies for b in books),
                "available_copies": sum(b.available_copies for b in books),
                "users": len(self.directory.list_users()),
                "active_loans": len(self.ledger.list_active()),
                "overdue_loans": len(self.ledger.list_overdue()),
                "pending_requests": len(self.requests.pending()),
                "total_fines": self.ledger.total_fines(),
            }

    def integrity_violations(self) -> List[str]:
        """Human-readable breaches of copy conservation and loan/user links."""
        problems: List[str] = []
        with self.lock:
            users = {u.id: u for u in self.directory.list_users()}
            for book in self.catalog.list_books():
                if not book.conserves_copies():
                    problems.append(
                        f"book {book.id}: {book.available_copies} available + "
                        f"{book.active_loan_count} on loan != {book.total_copies} total"
                    )
            for loan in self.ledger.list_active():
                book = self.catalog.get_book(loan.book_id) if self.catalog.exists(loan.book_id) else None
                if book is None or loan.id not in book.active_loans:
                    problems.append(f"loan {loan.id}: missing from book {loan.book_id} active loans")
                user = users.get(loan.user_id)
                if user is None or loan.book_id not in user.borrowed_book_ids:
                    problems.append(f"loan {loan.id}: not counted for user {loan.user_id}")
        return problems
