from __future__ import annotations
import copy
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set

from lending.core.policy import money
from lending.errors import ValidationError

ZERO = Decimal("0.00")

class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"
    LOST = "LOST"

    @property
    def is_active(self) -> bool:
        return self in (LoanStatus.ACTIVE, LoanStatus.OVERDUE)

    @property
    def is_terminal(self) -> bool:
        return self in (LoanStatus.RETURNED, LoanStatus.LOST)

class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"

def next_id(prefix: str, taken: Mapping[str, Any]) -> str:
    """Sequential "L001"-style id, skipping any already in use."""
    n = len(taken) + 1
    while f"{prefix}{n:03d}" in taken:
        n += 1
    return f"{prefix}{n:03d}"

def _iso(v: Optional[date]) -> Optional[str]:
    return v.isoformat() if v is not None else None

def _dt(v: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(v) if v else None

def _d(v: Optional[str]) -> Optional[date]:
    return date.fromisoformat(v) if v else None

@dataclass
class Loan:
    id: str
    user_id: str
    book_id: str
    loan_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus = LoanStatus.ACTIVE
    fine_amount: Decimal = ZERO
    notes: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_overdue(self, now: datetime) -> bool:
        return not self.is_terminal and now > self.due_date

    def overdue_days(self, now: datetime) -> int:
        """Full days between the due date and the return date (or ``now``)."""
        reference = self.return_date or now
        return max(0, (reference - self.due_date).days)

    def days_until_due(self, now: datetime) -> int:
        return (self.due_date - now).days

    def days_borrowed(self, now: datetime) -> int:
        return ((self.return_date or now) - self.loan_date).days

    def calculate_fine(self, now: datetime, fine_per_day: Decimal) -> Decimal:
        # frozen once the loan is closed
        if self.is_terminal:
            return self.fine_amount
        self.fine_amount = money(self.overdue_days(now) * fine_per_day)
        return self.fine_amount

    def refresh_status(self, now: datetime, fine_per_day: Decimal) -> LoanStatus:
        if self.is_terminal:
            return self.status
        self.status = LoanStatus.OVERDUE if self.is_overdue(now) else LoanStatus.ACTIVE
        self.calculate_fine(now, fine_per_day)
        return self.status

    def return_book(self, now: datetime, fine_per_day: Decimal) -> bool:
        if self.is_terminal:
            return False
        self.return_date = now
        self.fine_amount = money(self.overdue_days(now) * fine_per_day)
        self.status = LoanStatus.RETURNED
        return True

    def mark_as_lost(self, replacement_fine: Decimal, now: datetime) -> bool:
        if self.is_terminal:
            return False
        self.return_date = now
        self.fine_amount = money(replacement_fine)
        self.status = LoanStatus.LOST
        return True

    def extend_due_date(self, days: int, now: datetime, fine_per_day: Decimal) -> bool:
        if self.is_terminal or days <= 0:
            return False
        try:
            due = self.due_date + timedelta(days=days)
        except OverflowError:
            raise ValidationError(f"Cannot extend by {days} days: date out of range.") from None
        self.due_date = due
        self.refresh_status(now, fine_per_day)
        return True

    def snapshot(self) -> "Loan":
        return copy.deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "loan_date": _iso(self.loan_date),
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "status": self.status.value,
            "fine_amount": str(self.fine_amount),
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Loan":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            book_id=data["book_id"],
            loan_date=_dt(data["loan_date"]),
            due_date=_dt(data["due_date"]),
            return_date=_dt(data.get("return_date")),
            status=LoanStatus(data.get("status", LoanStatus.ACTIVE.value)),
            fine_amount=money(data.get("fine_amount") or "0"),
            notes=data.get("notes") or "",
        )

@dataclass
class Book:
    id: str
    title: str
    author: str
    isbn: str = ""
    publication_year: Optional[int] = None
    category: Optional[str] = None
    total_copies: int = 1
    available_copies: Optional[int] = None
    active_loans: Dict[str, Loan] = field(default_factory=dict)
    reservations: Set[str] = field(default_factory=set)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def active_loan_count(self) -> int:
        return len(self.active_loans)

    @property
    def is_available(self) -> bool:
        return (self.available_copies or 0) > 0

    @property
    def category_name(self) -> str:
        return self.category or "Uncategorized"

    def conserves_copies(self) -> bool:
        return self.available_copies + self.active_loan_count == self.total_copies

    def snapshot(self) -> "Book":
        return copy.deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "category": self.category,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "active_loan_ids": sorted(self.active_loans),
            "reservations": sorted(self.reservations),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any], loans: Mapping[str, Loan]) -> "Book":
        return cls(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data.get("isbn") or "",
            publication_year=data.get("publication_year"),
            category=data.get("category"),
            total_copies=int(data["total_copies"]),
            available_copies=int(data["available_copies"]),
            active_loans={lid: loans[lid] for lid in data.get("active_loan_ids", []) if lid in loans},
            reservations=set(data.get("reservations", [])),
            created_at=_dt(data.get("created_at")),
            updated_at=_dt(data.get("updated_at")),
        )

@dataclass
class BorrowRequest:
    id: str
    username: str
    book_id: str
    request_date: date
    desired_return_date: date
    status: RequestStatus = RequestStatus.PENDING
    user_id: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    loan_id: Optional[str] = None
    notes: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def snapshot(self) -> "BorrowRequest":
        return copy.deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "book_id": self.book_id,
            "request_date": _iso(self.request_date),
            "desired_return_date": _iso(self.desired_return_date),
            "status": self.status.value,
            "user_id": self.user_id,
            "decided_by": self.decided_by,
            "decided_at": _iso(self.decided_at),
            "loan_id": self.loan_id,
            "notes": self.notes,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "BorrowRequest":
        return cls(
            id=data["id"],
            username=data["username"],
            book_id=data["book_id"],
            request_date=_d(data["request_date"]),
            desired_return_date=_d(data["desired_return_date"]),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
            user_id=data.get("user_id"),
            decided_by=data.get("decided_by"),
            decided_at=_dt(data.get("decided_at")),
            loan_id=data.get("loan_id"),
            notes=data.get("notes") or "",
        )

@dataclass
class User:
    id: str
    name: str
    email: str
    username: Optional[str] = None
    phone: Optional[str] = None
    role: Role = Role.MEMBER
    active: bool = True
    borrow_limit: Optional[int] = None
    # one entry per active loan, so a book borrowed twice appears twice
    borrowed_book_ids: List[str] = field(default_factory=list)
    total_loans: int = 0
    registered_at: Optional[datetime] = None

    @property
    def borrowed_count(self) -> int:
        return len(self.borrowed_book_ids)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_borrow_more(self) -> bool:
        return self.active and self.borrowed_count < (self.borrow_limit or 0)

    def snapshot(self) -> "User":
        return copy.deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "username": self.username,
            "phone": self.phone,
            "role": self.role.value,
            "active": self.active,
            "borrow_limit": self.borrow_limit,
            "borrowed_book_ids": list(self.borrowed_book_ids),
            "total_loans": self.total_loans,
            "registered_at": _iso(self.registered_at),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            username=data.get("username"),
            phone=data.get("phone"),
            role=Role(data.get("role", Role.MEMBER.value)),
            active=bool(data.get("active", True)),
            borrow_limit=data.get("borrow_limit"),
            borrowed_book_ids=list(data.get("borrowed_book_ids", [])),
            total_loans=int(data.get("total_loans", 0)),
            registered_at=_dt(data.get("registered_at")),
        )
