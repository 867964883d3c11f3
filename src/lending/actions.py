from __future__ import annotations
import logging
from typing import Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal

from lending.core.library import Library
from lending.errors import LendingError
from lending.models import (
    Book, BorrowRequest, Loan, LoanStatus, RequestStatus, Role, User
)

logger = logging.getLogger(__name__)

def _ok(msg: str, **data):    return {"ok": True,  "message": msg, **({"data": data} if data else {})}
def _err(msg: str, code="", **data): return {"ok": False, "message": msg, "code": code, **({"data": data} if data else {})}

def _refused(action: str, e: LendingError) -> Dict[str, Any]:
    logger.warning("[%s] refused: %s (%s)", action, e.message, e.code)
    return _err(e.message, code=e.code)

def book_data(b: Book) -> Dict[str, Any]:
    return {
        "book_id": b.id,
        "title": b.title,
        "author": b.author,
        "isbn": b.isbn,
        "publication_year": b.publication_year,
        "category": b.category,
        "copies_total": b.total_copies,
        "copies_available": b.available_copies,
        "active_loan_ids": sorted(b.active_loans),
        "reservations": sorted(b.reservations),
    }

def loan_data(l: Loan) -> Dict[str, Any]:
    return {
        "loan_id": l.id,
        "user_id": l.user_id,
        "book_id": l.book_id,
        "loan_date": l.loan_date,
        "due_date": l.due_date,
        "return_date": l.return_date,
        "status": l.status.value,
        "fine_amount": l.fine_amount,
        "notes": l.notes,
    }

def request_data(r: BorrowRequest) -> Dict[str, Any]:
    return {
        "request_id": r.id,
        "username": r.username,
        "user_id": r.user_id,
        "book_id": r.book_id,
        "request_date": r.request_date,
        "desired_return_date": r.desired_return_date,
        "status": r.status.value,
        "decided_by": r.decided_by,
        "decided_at": r.decided_at,
        "loan_id": r.loan_id,
        "notes": r.notes,
    }

def user_data(u: User) -> Dict[str, Any]:
    return {
        "user_id": u.id,
        "name": u.name,
        "email": u.email,
        "username": u.username,
        "phone": u.phone,
        "role": u.role.value,
        "active": u.active,
        "borrow_limit": u.borrow_limit,
        "borrowed_count": u.borrowed_count,
        "total_loans": u.total_loans,
    }

# ---- books
def list_books(lib: Library, *, q: Optional[str] = None, category: Optional[str] = None,
               available_only: bool = False) -> Dict[str, Any]:
    if q:
        books = lib.catalog.search(q)
    elif category:
        books = lib.catalog.list_by_category(category)
    else:
        books = lib.catalog.list_books()
    if available_only:
        books = [b for b in books if b.is_available]
    if not books:
        return _ok("No books found.", items=[])
    return _ok("Book list available.", items=[book_data(b) for b in books])

def register_book(lib: Library, *, book_id: str, title: str, author: str, isbn: str = "",
                  publication_year: Optional[int] = None, category: Optional[str] = None,
                  total_copies: int = 1, available_copies: Optional[int] = None) -> Dict[str, Any]:
    try:
        b = lib.catalog.add_book(Book(
            id=book_id, title=title, author=author, isbn=isbn or "",
            publication_year=publication_year, category=category,
            total_copies=total_copies, available_copies=available_copies,
        ))
    except LendingError as e:
        return _refused("register_book", e)
    logger.info("[register_book] %s %r (%d copies)", b.id, b.title, b.total_copies)
    return _ok("Book registered.", **book_data(b))

def get_book(lib: Library, *, book_id: str) -> Dict[str, Any]:
    try:
        b = lib.catalog.get_book(book_id)
    except LendingError as e:
        return _err(e.message, code=e.code)
    return _ok("Book found.", **book_data(b))

def update_book(lib: Library, *, book_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    try:
        b = lib.catalog.update_book(book_id, fields)
    except LendingError as e:
        return _refused("update_book", e)
    logger.info("[update_book] %s fields=%s", book_id, sorted(fields))
    return _ok("Book updated.", **book_data(b))

def delete_book(lib: Library, *, book_id: str) -> Dict[str, Any]:
    try:
        lib.catalog.remove_book(book_id)
    except LendingError as e:
        return _refused("delete_book", e)
    logger.info("[delete_book] %s", book_id)
    return _ok("Book deleted.", book_id=book_id)

def reserve_book(lib: Library, *, book_id: str, user_id: str, cancel: bool = False) -> Dict[str, Any]:
    try:
        lib.directory.get_user(user_id)
        changed = lib.catalog.unreserve(book_id, user_id) if cancel else lib.catalog.reserve(book_id, user_id)
    except LendingError as e:
        return _refused("reserve_book", e)
    msg = "Reservation cancelled." if cancel else "Reservation recorded."
    return _ok(msg, book_id=book_id, user_id=user_id, changed=changed)

# ---- users
def list_users(lib: Library, *, q: Optional[str] = None, active: Optional[bool] = None) -> Dict[str, Any]:
    users = lib.directory.search(q) if q else lib.directory.list_users(active=active)
    if q and active is not None:
        users = [u for u in users if u.active == active]
    return _ok("User list available.", items=[user_data(u) for u in users])

def register_user(lib: Library, *, user_id: str, name: str, email: str, username: Optional[str] = None,
                  phone: Optional[str] = None, role: str = Role.MEMBER.value,
                  borrow_limit: Optional[int] = None) -> Dict[str, Any]:
    try:
        u = lib.directory.register(User(
            id=user_id, name=name, email=email, username=username, phone=phone,
            role=role, borrow_limit=borrow_limit,
        ))
    except LendingError as e:
        return _refused("register_user", e)
    logger.info("[register_user] %s <%s>", u.id, u.email)
    return _ok("User registered.", **user_data(u))

def get_user(lib: Library, *, user_id: str) -> Dict[str, Any]:
    try:
        u = lib.directory.get_user(user_id)
    except LendingError as e:
        return _err(e.message, code=e.code)
    return _ok("User found.", **user_data(u))

def update_user(lib: Library, *, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    try:
        u = lib.directory.update(user_id, fields)
    except LendingError as e:
        return _refused("update_user", e)
    logger.info("[update_user] %s fields=%s", user_id, sorted(fields))
    return _ok("User updated.", **user_data(u))

def delete_user(lib: Library, *, user_id: str) -> Dict[str, Any]:
    try:
        lib.directory.remove(user_id)
    except LendingError as e:
        return _refused("delete_user", e)
    logger.info("[delete_user] %s", user_id)
    return _ok("User deleted.", user_id=user_id)

# ---- loans
def list_loans(lib: Library, *, status: Optional[str] = None, user_id: Optional[str] = None,
               book_id: Optional[str] = None, q: Optional[str] = None) -> Dict[str, Any]:
    try:
        st = LoanStatus(status.upper()) if status else None
    except ValueError:
        return _err(f"Unknown loan status: {status!r}.", code="VALIDATION_ERROR")
    if q:
        loans = lib.search_loans(q, status=st)
    else:
        loans = lib.ledger.list_loans(status=st, user_id=user_id, book_id=book_id)
    if q and (user_id or book_id):
        loans = [l for l in loans if (not user_id or l.user_id == user_id) and (not book_id or l.book_id == book_id)]
    return _ok("Loan list available.", items=[loan_data(l) for l in loans])

def get_loan(lib: Library, *, loan_id: str) -> Dict[str, Any]:
    try:
        l = lib.ledger.get_loan(loan_id)
    except LendingError as e:
        return _err(e.message, code=e.code)
    return _ok("Loan found.", **loan_data(l))

def issue_loan(lib: Library, *, user_id: str, book_id: str, loan_id: Optional[str] = None,
               due_date: Optional[datetime] = None, notes: str = "") -> Dict[str, Any]:
    try:
        loan = lib.ledger.issue_loan(loan_id or lib.ledger.next_loan_id(), user_id, book_id,
                                     due_date=due_date, notes=notes)
    except LendingError as e:
        return _refused("issue_loan", e)
    logger.info("[issue_loan] %s: book %s -> user %s, due %s", loan.id, book_id, user_id, loan.due_date.isoformat())
    return _ok("Loan issued.", **loan_data(loan))

def return_loan(lib: Library, *, loan_id: str) -> Dict[str, Any]:
    try:
        if not lib.ledger.return_loan(loan_id):
            return _err(f"Loan {loan_id!r} is already closed.", code="ALREADY_CLOSED")
        loan = lib.ledger.get_loan(loan_id)
    except LendingError as e:
        return _refused("return_loan", e)
    logger.info("[return_loan] %s fine=%s", loan_id, loan.fine_amount)
    msg = "Book returned." if not loan.fine_amount else f"Book returned. Fine amount: ${loan.fine_amount:.2f}"
    return _ok(msg, **loan_data(loan))

def extend_loan(lib: Library, *, loan_id: str, days: int) -> Dict[str, Any]:
    try:
        if not lib.ledger.extend_loan(loan_id, days):
            return _err(f"Loan {loan_id!r} cannot be extended by {days} day(s).", code="NOT_EXTENDED")
        loan = lib.ledger.get_loan(loan_id)
    except LendingError as e:
        return _refused("extend_loan", e)
    logger.info("[extend_loan] %s by %d day(s), now due %s", loan_id, days, loan.due_date.isoformat())
    return _ok(f"Loan extended by {days} day(s).", **loan_data(loan))

def mark_lost(lib: Library, *, loan_id: str, fine: Decimal) -> Dict[str, Any]:
    try:
        if not lib.ledger.mark_lost(loan_id, fine):
            return _err(f"Loan {loan_id!r} is already closed.", code="ALREADY_CLOSED")
        loan = lib.ledger.get_loan(loan_id)
    except LendingError as e:
        return _refused("mark_lost", e)
    logger.info("[mark_lost] %s fine=%s", loan_id, loan.fine_amount)
    return _ok(f"Book marked as lost with fine: ${loan.fine_amount:.2f}", **loan_data(loan))

def calculate_fine(lib: Library, *, loan_id: str) -> Dict[str, Any]:
    try:
        fine = lib.ledger.calculate_fine(loan_id)
    except LendingError as e:
        return _refused("calculate_fine", e)
    msg = f"Fine calculated: ${fine:.2f}" if fine > 0 else "No fine - book is not overdue"
    return _ok(msg, loan_id=loan_id, fine_amount=fine)

def refresh_loans(lib: Library, *, loan_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        if loan_id:
            loan = lib.ledger.refresh_status(loan_id)
            return _ok("Loan status refreshed.", **loan_data(loan))
        changed = lib.ledger.refresh_all()
    except LendingError as e:
        return _refused("refresh_loans", e)
    if changed:
        logger.info("[refresh_loans] %d loan(s) changed status", changed)
    return _ok("Loan statuses refreshed.", changed=changed)

# ---- borrow requests
def list_requests(lib: Library, *, status: Optional[str] = None, username: Optional[str] = None,
                  book_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        st = RequestStatus(status.upper()) if status else None
    except ValueError:
        return _err(f"Unknown request status: {status!r}.", code="VALIDATION_ERROR")
    reqs = lib.requests.list_requests(status=st, username=username, book_id=book_id)
    return _ok("Request list available.", items=[request_data(r) for r in reqs])

def get_request(lib: Library, *, request_id: str) -> Dict[str, Any]:
    try:
        r = lib.requests.get_request(request_id)
    except LendingError as e:
        return _err(e.message, code=e.code)
    return _ok("Request found.", **request_data(r))

def create_request(lib: Library, *, username: str, book_id: str, desired_return_date: date) -> Dict[str, Any]:
    try:
        r = lib.requests.create_request(username, book_id, desired_return_date)
    except LendingError as e:
        return _refused("create_request", e)
    logger.info("[create_request] %s: %s wants %s until %s", r.id, r.username, r.book_id, r.desired_return_date)
    return _ok("Borrow request submitted.", **request_data(r))

def approve_request(lib: Library, *, request_id: str, admin_id: str) -> Dict[str, Any]:
    try:
        r = lib.requests.approve(request_id, admin_id)
    except LendingError as e:
        return _refused("approve_request", e)
    logger.info("[approve_request] %s by %s, loan %s created", request_id, admin_id, r.loan_id)
    return _ok(f"Request approved. Loan ID: {r.loan_id}", **request_data(r))

def deny_request(lib: Library, *, request_id: str, admin_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    try:
        r = lib.requests.deny(request_id, admin_id, reason)
    except LendingError as e:
        return _refused("deny_request", e)
    logger.info("[deny_request] %s by %s%s", request_id, admin_id, f" - reason: {r.notes}" if r.notes else "")
    return _ok("Request denied.", **request_data(r))

def library_stats(lib: Library) -> Dict[str, Any]:
    return _ok("Library statistics.", **lib.stats())
