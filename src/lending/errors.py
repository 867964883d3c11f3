"""Typed errors raised by the lending core.

Every error is recoverable: callers surface the message and let the user
retry or correct the input. ``code`` is stable and is what the action layer
puts in its result dicts.
"""

from __future__ import annotations

class LendingError(Exception):
    code = "LENDING_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

class NotFoundError(LendingError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id!r} not found.")
        self.entity = entity
        self.entity_id = entity_id

class DuplicateIdError(LendingError):
    code = "DUPLICATE_ID"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id!r} already exists.")
        self.entity = entity
        self.entity_id = entity_id

class ValidationError(LendingError):
    code = "VALIDATION_ERROR"

class InvalidStateError(LendingError):
    code = "INVALID_STATE"

class UnavailableError(LendingError):
    code = "UNAVAILABLE"

class BorrowLimitError(UnavailableError):
    code = "BORROW_LIMIT_REACHED"

class ConflictError(LendingError):
    code = "CONFLICT"

class UnresolvedUserError(LendingError):
    code = "UNRESOLVED_USER"

    def __init__(self, identity: str, reason: str = "no matching account") -> None:
        super().__init__(f"Could not resolve user {identity!r}: {reason}.")
        self.identity = identity

class MismatchError(LendingError):
    code = "MISMATCH"
