from __future__ import annotations
import threading
from dataclasses import fields
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from lending.core.catalog import Catalog
from lending.core.directory import Directory
from lending.core.policy import LendingPolicy, local_naive, money
from lending.errors import (
    BorrowLimitError, DuplicateIdError, NotFoundError, ValidationError,
)
from lending.models import Loan, LoanStatus, next_id
from lending.store import LOANS, Store

def _restore(loan: Loan, saved: Loan) -> None:
    # in place: the catalog holds the same Loan object in its active map
    for f in fields(Loan):
        setattr(loan, f.name, getattr(saved, f.name))

class LoanLedger:
    """Owns Loan records and drives their state machine.

    ACTIVE <-> OVERDUE are derived from (status, due date, now) and refreshed
    only by ``refresh_status``/``refresh_all`` and by calls that recompute the
    fine. RETURNED and LOST are terminal, and their fine is frozen.

    Issue, return and loss touch the Catalog and the Directory too; each runs
    under the shared lock and either completes on all three or leaves all
    three as they were.
    """

    def __init__(
        self,
        store: Store,
        policy: LendingPolicy,
        catalog: Catalog,
        directory: Directory,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.store = store
        self.policy = policy
        self.catalog = catalog
        self.directory = directory
        self._lock = lock or threading.RLock()
        self._loans: Dict[str, Loan] = {}

    def load(self) -> None:
        with self._lock:
            self._loans = {r["id"]: Loan.from_record(r) for r in self.store.get_all(LOANS)}

    def live_loans(self) -> Mapping[str, Loan]:
        """The ledger's own Loan objects, for re-linking book active maps on load."""
        return self._loans

    def _loan(self, loan_id: str) -> Loan:
        loan = self._loans.get(loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    def _save(self, loan: Loan) -> None:
        self.store.put(LOANS, loan.to_record())

    def next_loan_id(self) -> str:
        with self._lock:
            return next_id("L", self._loans)

    # ---- lifecycle
    def issue_loan(
        self,
        loan_id: str,
        user_id: str,
        book_id: str,
        due_date: Optional[datetime] = None,
        notes: str = "",
    ) -> Loan:
        with self._lock:
            if not (loan_id or "").strip():
                raise ValidationError("Loan id is required.")
            if loan_id in self._loans:
                raise DuplicateIdError("Loan", loan_id)
            if not self.catalog.exists(book_id):
                raise NotFoundError("Book", book_id)
            if not self.directory.can_borrow_more(user_id):
                raise BorrowLimitError(f"User {user_id!r} cannot borrow more books.")

            now = self.policy.now()
            loan = Loan(
                id=loan_id,
                user_id=user_id,
                book_id=book_id,
                loan_date=now,
                due_date=local_naive(due_date) if due_date else now + timedelta(days=self.policy.default_loan_days),
                notes=(notes or "").strip(),
            )
            # loan row first, so a stored book never names a loan the store lacks
            self._save(loan)
            borrowed = False
            try:
                self.catalog.borrow_copy(book_id, loan)
                borrowed = True
                self.directory.record_borrow(user_id, book_id)
            except Exception:
                if borrowed:
                    self.catalog.return_copy(book_id, loan.id)
                self.store.delete(LOANS, loan.id)
                raise
            self._loans[loan.id] = loan
            return loan.snapshot()

    def _require_parties(self, loan: Loan) -> None:
        # checked up front so the three-way update below cannot fail halfway
        if not self.catalog.exists(loan.book_id):
            raise NotFoundError("Book", loan.book_id)
        if not self.directory.exists(loan.user_id):
            raise NotFoundError("User", loan.user_id)

    def return_loan(self, loan_id: str) -> bool:
        with self._lock:
            loan = self._loan(loan_id)
            if loan.is_terminal:
                return False
            self._require_parties(loan)
            saved = loan.snapshot()
            loan.return_book(self.policy.now(), self.policy.fine_per_day)
            released = False
            try:
                released = self.catalog.return_copy(loan.book_id, loan.id)
                self.directory.record_return(loan.user_id, loan.book_id)
            except Exception:
                _restore(loan, saved)
                if released:
                    self.catalog.borrow_copy(loan.book_id, loan)
                raise
            self._save(loan)
            return True

    def mark_lost(self, loan_id: str, replacement_fine) -> bool:
        with self._lock:
            fine = money(replacement_fine)
            if fine < 0:
                raise ValidationError("Replacement fine cannot be negative.")
            loan = self._loan(loan_id)
            if loan.is_terminal:
                return False
            self._require_parties(loan)
            loan.mark_as_lost(fine, self.policy.now())
            self.catalog.write_off_copy(loan.book_id, loan.id)
            self.directory.record_return(loan.user_id, loan.book_id)
            self._save(loan)
            return True

    def extend_loan(self, loan_id: str, days: int) -> bool:
        with self._lock:
            loan = self._loan(loan_id)
            if not loan.extend_due_date(days, self.policy.now(), self.policy.fine_per_day):
                return False
            self._save(loan)
            return True

    def calculate_fine(self, loan_id: str) -> Decimal:
        """Current fine; recomputed (and stored) while open, frozen once closed."""
        with self._lock:
            loan = self._loan(loan_id)
            if loan.is_terminal:
                return loan.fine_amount
            fine = loan.calculate_fine(self.policy.now(), self.policy.fine_per_day)
            self._save(loan)
            return fine

    def refresh_status(self, loan_id: str) -> Loan:
        with self._lock:
            loan = self._loan(loan_id)
            if not loan.is_terminal:
                loan.refresh_status(self.policy.now(), self.policy.fine_per_day)
                self._save(loan)
            return loan.snapshot()

    def refresh_all(self) -> int:
        """Refresh every open loan; returns how many changed status."""
        with self._lock:
            now = self.policy.now()
            changed = 0
            for loan in self._loans.values():
                if loan.is_terminal:
                    continue
                before = (loan.status, loan.fine_amount)
                if loan.refresh_status(now, self.policy.fine_per_day) != before[0]:
                    changed += 1
                if (loan.status, loan.fine_amount) != before:
                    self._save(loan)
            return changed

    # ---- queries
    def exists(self, loan_id: str) -> bool:
        return loan_id in self._loans

    def get_loan(self, loan_id: str) -> Loan:
        with self._lock:
            return self._loan(loan_id).snapshot()

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        user_id: Optional[str] = None,
        book_id: Optional[str] = None,
    ) -> List[Loan]:
        with self._lock:
            return [
                loan.snapshot()
                for loan in sorted(self._loans.values(), key=lambda l: l.id)
                if (status is None or loan.status == status)
                and (user_id is None or loan.user_id == user_id)
                and (book_id is None or loan.book_id == book_id)
            ]

    def list_active(self, user_id: Optional[str] = None) -> List[Loan]:
        return [l for l in self.list_loans(user_id=user_id) if l.status.is_active]

    def list_overdue(self) -> List[Loan]:
        """Open loans past due right now, whether or not their status was refreshed."""
        now = self.policy.now()
        return [l for l in self.list_active() if l.is_overdue(now)]

    def total_fines(self) -> Decimal:
        with self._lock:
            return money(sum((l.fine_amount for l in self._loans.values()), Decimal("0")))
