from __future__ import annotations
import threading
from datetime import date, timedelta
from typing import Dict, List, Optional

from lending.core.catalog import Catalog
from lending.core.directory import Directory
from lending.core.ledger import LoanLedger
from lending.core.policy import LendingPolicy, end_of_day
from lending.errors import InvalidStateError, NotFoundError, UnavailableError, ValidationError
from lending.models import BorrowRequest, RequestStatus, next_id
from lending.store import REQUESTS, Store

class RequestBoard:
    """Borrow requests and the admin decision that turns one into a loan."""

    def __init__(
        self,
        store: Store,
        policy: LendingPolicy,
        catalog: Catalog,
        directory: Directory,
        ledger: LoanLedger,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.store = store
        self.policy = policy
        self.catalog = catalog
        self.directory = directory
        self.ledger = ledger
        self._lock = lock or threading.RLock()
        self._requests: Dict[str, BorrowRequest] = {}

    def load(self) -> None:
        with self._lock:
            self._requests = {r["id"]: BorrowRequest.from_record(r) for r in self.store.get_all(REQUESTS)}

    def _request(self, request_id: str) -> BorrowRequest:
        req = self._requests.get(request_id)
        if req is None:
            raise NotFoundError("Request", request_id)
        return req

    def _pending(self, request_id: str) -> BorrowRequest:
        req = self._request(request_id)
        if not req.is_pending:
            raise InvalidStateError(
                f"Request {request_id!r} is already {req.status.value}; only pending requests can be decided."
            )
        return req

    def create_request(self, username: str, book_id: str, desired_return_date: date) -> BorrowRequest:
        with self._lock:
            if not (username or "").strip():
                raise ValidationError("Username is required.")
            today = self.policy.now().date()
            tomorrow = today + timedelta(days=1)
            if desired_return_date is None or desired_return_date <= tomorrow:
                raise ValidationError(f"Desired return date must be after {tomorrow.isoformat()}.")
            if not self.catalog.exists(book_id):
                raise NotFoundError("Book", book_id)
            user_id = self.directory.resolve(username)

            req = BorrowRequest(
                id=next_id("R", self._requests),
                username=username.strip(),
                book_id=book_id,
                request_date=today,
                desired_return_date=desired_return_date,
                user_id=user_id,
            )
            self._requests[req.id] = req
            self.store.put(REQUESTS, req.to_record())
            return req.snapshot()

    def _requester(self, req: BorrowRequest) -> str:
        if req.user_id and self.directory.exists(req.user_id):
            return req.user_id
        return self.directory.resolve(req.username)

    def approve(self, request_id: str, admin_id: str) -> BorrowRequest:
        with self._lock:
            req = self._pending(request_id)
            if not self.catalog.has_available(req.book_id):
                raise UnavailableError(f"Book {req.book_id!r} has no available copies.")
            user_id = self._requester(req)

            # the request only changes once the loan exists
            loan = self.ledger.issue_loan(
                self.ledger.next_loan_id(),
                user_id,
                req.book_id,
                due_date=end_of_day(req.desired_return_date),
                notes=f"Approved from request {req.id} by {admin_id}",
            )
            req.status = RequestStatus.APPROVED
            req.user_id = user_id
            req.decided_by = admin_id
            req.decided_at = self.policy.now()
            req.loan_id = loan.id
            self.store.patch(REQUESTS, req.id, {
                "status": req.status.value,
                "user_id": req.user_id,
                "decided_by": req.decided_by,
                "decided_at": req.decided_at.isoformat(),
                "loan_id": req.loan_id,
            })
            return req.snapshot()

    def deny(self, request_id: str, admin_id: str, reason: Optional[str] = None) -> BorrowRequest:
        with self._lock:
            req = self._pending(request_id)
            req.status = RequestStatus.DENIED
            req.decided_by = admin_id
            req.decided_at = self.policy.now()
            req.notes = (reason or "").strip()
            self.store.patch(REQUESTS, req.id, {
                "status": req.status.value,
                "decided_by": req.decided_by,
                "decided_at": req.decided_at.isoformat(),
                "notes": req.notes,
            })
            return req.snapshot()

    # ---- queries
    def get_request(self, request_id: str) -> BorrowRequest:
        with self._lock:
            return self._request(request_id).snapshot()

    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        username: Optional[str] = None,
        book_id: Optional[str] = None,
    ) -> List[BorrowRequest]:
        with self._lock:
            return [
                r.snapshot()
                for r in sorted(self._requests.values(), key=lambda r: r.id)
                if (status is None or r.status == status)
                and (username is None or r.username.lower() == username.strip().lower())
                and (book_id is None or r.book_id == book_id)
            ]

    def pending(self) -> List[BorrowRequest]:
        return self.list_requests(status=RequestStatus.PENDING)
