from __future__ import annotations
import threading
from typing import Any, Dict, List, Mapping, Optional

from lending.core.policy import LendingPolicy
from lending.errors import (
    ConflictError, DuplicateIdError, MismatchError, NotFoundError,
    UnavailableError, ValidationError,
)
from lending.models import Book, Loan
from lending.store import BOOKS, Store

EDITABLE_FIELDS = {
    "title", "author", "isbn", "publication_year", "category",
    "total_copies", "available_copies",
}

def _check_year(year: Optional[int], current_year: int) -> None:
    if year is not None and not (1000 <= year <= current_year + 1):
        raise ValidationError(f"Invalid publication year: {year}.")

class Catalog:
    """Owns Book records and their copy counts.

    ``available_copies + len(active_loans) == total_copies`` holds after every
    call. Only ``borrow_copy``/``return_copy``/``write_off_copy`` move copies
    in and out of circulation; ``update_book`` may resize the stock.
    """

    def __init__(self, store: Store, policy: LendingPolicy, lock: Optional[threading.RLock] = None) -> None:
        self.store = store
        self.policy = policy
        self._lock = lock or threading.RLock()
        self._books: Dict[str, Book] = {}

    def load(self, loans: Mapping[str, Loan]) -> None:
        with self._lock:
            self._books = {r["id"]: Book.from_record(r, loans) for r in self.store.get_all(BOOKS)}

    def _book(self, book_id: str) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    def _save(self, book: Book) -> None:
        self.store.put(BOOKS, book.to_record())

    # ---- admin edits
    def add_book(self, book: Book) -> Book:
        with self._lock:
            if not (book.id or "").strip():
                raise ValidationError("Book id is required.")
            if not (book.title or "").strip() or not (book.author or "").strip():
                raise ValidationError("Title and author are required.")
            if book.id in self._books:
                raise DuplicateIdError("Book", book.id)
            if book.total_copies < 0:
                raise ValidationError("Total copies cannot be negative.")
            if book.active_loans:
                raise ValidationError("A new book cannot have copies on loan.")
            if book.available_copies is not None and book.available_copies != book.total_copies:
                raise ValidationError("Available copies must equal total copies for a new book.")
            now = self.policy.now()
            _check_year(book.publication_year, now.year)

            stored = book.snapshot()
            stored.title = stored.title.strip()
            stored.author = stored.author.strip()
            stored.isbn = (stored.isbn or "").strip()
            stored.available_copies = stored.total_copies
            stored.created_at = stored.updated_at = now
            self._books[stored.id] = stored
            self._save(stored)
            return stored.snapshot()

    def update_book(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        with self._lock:
            book = self._book(book_id)
            unknown = set(fields) - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(f"Unknown book fields: {', '.join(sorted(unknown))}.")

            on_loan = book.active_loan_count
            # null leaves a field unchanged, except where null is a real value
            fields = {k: v for k, v in fields.items() if v is not None or k in ("publication_year", "category")}
            total = fields.get("total_copies", book.total_copies)
            available = fields.get("available_copies", total - on_loan)
            if total < 0 or available < 0:
                raise ValidationError("Copy counts cannot be negative.")
            if available > total:
                raise ValidationError("Available copies cannot exceed total copies.")
            if total < on_loan:
                raise ValidationError(
                    f"Cannot reduce total copies below the {on_loan} currently on loan."
                )
            if available + on_loan != total:
                raise ValidationError(
                    f"Available copies must be {total - on_loan} ({total} total, {on_loan} on loan)."
                )
            for name in ("title", "author"):
                if name in fields and not (fields[name] or "").strip():
                    raise ValidationError(f"{name.capitalize()} cannot be empty.")
            _check_year(fields.get("publication_year"), self.policy.now().year)

            for name, value in fields.items():
                if isinstance(value, str):
                    value = value.strip()
                setattr(book, name, value)
            book.total_copies = total
            book.available_copies = available
            book.updated_at = self.policy.now()
            self._save(book)
            return book.snapshot()

    def remove_book(self, book_id: str) -> None:
        with self._lock:
            book = self._book(book_id)
            if book.active_loans:
                raise ConflictError(
                    f"Book {book_id!r} has {book.active_loan_count} active loan(s) and cannot be removed."
                )
            del self._books[book_id]
            self.store.delete(BOOKS, book_id)

    # ---- reservations (advisory)
    def reserve(self, book_id: str, user_id: str) -> bool:
        with self._lock:
            book = self._book(book_id)
            if user_id in book.reservations:
                return False
            book.reservations.add(user_id)
            self._save(book)
            return True

    def unreserve(self, book_id: str, user_id: str) -> bool:
        with self._lock:
            book = self._book(book_id)
            if user_id not in book.reservations:
                return False
            book.reservations.discard(user_id)
            self._save(book)
            return True

    # ---- circulation
    def borrow_copy(self, book_id: str, loan: Loan) -> None:
        with self._lock:
            book = self._book(book_id)
            if loan.book_id != book_id:
                raise MismatchError(f"Loan {loan.id!r} is for book {loan.book_id!r}, not {book_id!r}.")
            if loan.id in book.active_loans:
                raise DuplicateIdError("Loan", loan.id)
            if book.available_copies <= 0:
                raise UnavailableError(f"No copies of {book.title!r} are available.")
            book.available_copies -= 1
            book.active_loans[loan.id] = loan
            self._save(book)

    def return_copy(self, book_id: str, loan_id: str) -> bool:
        with self._lock:
            book = self._book(book_id)
            if loan_id not in book.active_loans:
                return False
            del book.active_loans[loan_id]
            book.available_copies += 1
            self._save(book)
            return True

    def write_off_copy(self, book_id: str, loan_id: str) -> bool:
        """Drop a lost copy: it leaves the active map and the total stock."""
        with self._lock:
            book = self._book(book_id)
            if loan_id not in book.active_loans:
                return False
            del book.active_loans[loan_id]
            book.total_copies -= 1
            book.updated_at = self.policy.now()
            self._save(book)
            return True

    # ---- queries
    def exists(self, book_id: str) -> bool:
        return book_id in self._books

    def has_available(self, book_id: str) -> bool:
        with self._lock:
            return self._book(book_id).is_available

    def get_book(self, book_id: str) -> Book:
        with self._lock:
            return self._book(book_id).snapshot()

    def list_books(self) -> List[Book]:
        with self._lock:
            return [b.snapshot() for b in sorted(self._books.values(), key=lambda b: b.id)]

    def search(self, text: str) -> List[Book]:
        t = (text or "").lower().strip()

        def matches(b: Book) -> bool:
            return t in b.title.lower() or t in b.author.lower() or t in b.isbn.lower()

        return [b for b in self.list_books() if matches(b)]

    def list_by_category(self, category: Optional[str]) -> List[Book]:
        wanted = (category or "").lower()
        return [b for b in self.list_books() if (b.category or "").lower() == wanted]

    def list_available(self) -> List[Book]:
        return [b for b in self.list_books() if b.is_available]

    def categories(self) -> List[str]:
        with self._lock:
            return sorted({b.category_name for b in self._books.values()})
