from __future__ import annotations
import logging
from datetime import timedelta

from lending.core.library import Library
from lending.models import Book, Role, User

logger = logging.getLogger(__name__)

def seed_demo_data(lib: Library) -> bool:
    """Load sample users, books, one loan and one pending request.

    Does nothing when the library already holds books or users, so it is safe
    to run on every startup. Returns whether anything was loaded.
    """
    if lib.catalog.list_books() or lib.directory.list_users():
        logger.info("[seed] library not empty, skipping demo data")
        return False

    # users
    john = lib.directory.register(User("U001", "John Doe", "john.doe@email.com", username="jdoe", phone="555-0123"))
    lib.directory.register(User("U002", "Jane Smith", "jane.smith@email.com", username="jsmith", phone="555-0456"))
    lib.directory.register(User("U003", "Bob Johnson", "bob.johnson@email.com", username="bjohnson", phone="555-0789"))
    admin = lib.directory.register(User("A001", "Ava Admin", "admin@email.com", username="admin", role=Role.ADMIN))

    # books
    lib.catalog.add_book(Book("B001", "The Great Gatsby", "F. Scott Fitzgerald", "978-0-7432-7356-5", 1925,
                              category="Fiction", total_copies=3))
    lib.catalog.add_book(Book("B002", "A Brief History of Time", "Stephen Hawking", "978-0-553-38016-3", 1988,
                              category="Science", total_copies=2))
    orwell = lib.catalog.add_book(Book("B003", "1984", "George Orwell", "978-0-452-28423-4", 1949,
                                       category="Fiction", total_copies=4))

    # circulation
    lib.ledger.issue_loan(lib.ledger.next_loan_id(), john.id, orwell.id)
    lib.catalog.reserve("B002", "U003")
    lib.requests.create_request("jsmith", "B001", lib.policy.now().date() + timedelta(days=10))

    logger.info("[seed] users: %s", [u.name for u in lib.directory.list_users()])
    logger.info("[seed] books: %s", [b.title for b in lib.catalog.list_books()])
    logger.info("[seed] admin account: %s", admin.id)
    return True
