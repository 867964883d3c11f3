from __future__ import annotations
import re
import threading
from typing import Any, Dict, List, Mapping, Optional

from lending.core.policy import LendingPolicy
from lending.errors import (
    ConflictError, DuplicateIdError, NotFoundError, UnresolvedUserError, ValidationError,
)
from lending.models import Role, User
from lending.store import USERS, Store

EMAIL_RE = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

EDITABLE_FIELDS = {"name", "email", "username", "phone", "active", "borrow_limit", "role"}

def _norm(v: Optional[str]) -> str:
    return (v or "").strip().lower()

def _role(v: Any) -> Role:
    try:
        return Role(v)
    except ValueError:
        raise ValidationError(f"Unknown role: {v!r}.") from None

class Directory:
    def __init__(self, store: Store, policy: LendingPolicy, lock: Optional[threading.RLock] = None) -> None:
        self.store = store
        self.policy = policy
        self._lock = lock or threading.RLock()
        self._users: Dict[str, User] = {}

    def load(self) -> None:
        with self._lock:
            self._users = {r["id"]: User.from_record(r) for r in self.store.get_all(USERS)}

    def _user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _save(self, user: User) -> None:
        self.store.put(USERS, user.to_record())

    def _check_unique(self, user: User, exclude: Optional[str] = None) -> None:
        for other in self._users.values():
            if other.id == exclude:
                continue
            if _norm(other.email) == _norm(user.email):
                raise ValidationError(f"Email {user.email!r} is already registered.")
            if user.username and _norm(other.username) == _norm(user.username):
                raise ValidationError(f"Username {user.username!r} is already taken.")

    @staticmethod
    def _validate(user: User) -> None:
        if not (user.name or "").strip():
            raise ValidationError("Name cannot be empty.")
        if not EMAIL_RE.match((user.email or "").strip()):
            raise ValidationError(f"Invalid email address: {user.email!r}.")
        if user.borrow_limit is not None and user.borrow_limit < 0:
            raise ValidationError("Borrow limit cannot be negative.")

    # ---- CRUD
    def register(self, user: User) -> User:
        with self._lock:
            if not (user.id or "").strip():
                raise ValidationError("User id is required.")
            if user.id in self._users:
                raise DuplicateIdError("User", user.id)
            self._validate(user)
            self._check_unique(user)

            stored = user.snapshot()
            stored.name = stored.name.strip()
            stored.email = _norm(stored.email)
            stored.username = (stored.username or "").strip() or None
            stored.role = _role(stored.role)
            if stored.borrow_limit is None:
                stored.borrow_limit = self.policy.borrow_limit
            # counters belong to the ledger
            stored.borrowed_book_ids = []
            stored.total_loans = 0
            stored.registered_at = self.policy.now()
            self._users[stored.id] = stored
            self._save(stored)
            return stored.snapshot()

    def update(self, user_id: str, fields: Mapping[str, Any]) -> User:
        with self._lock:
            user = self._user(user_id)
            fields = {k: v for k, v in fields.items() if v is not None or k in ("username", "phone")}
            unknown = set(fields) - EDITABLE_FIELDS
            if unknown:
                raise ValidationError(f"Unknown user fields: {', '.join(sorted(unknown))}.")
            candidate = user.snapshot()
            for name, value in fields.items():
                setattr(candidate, name, value)
            self._validate(candidate)
            self._check_unique(candidate, exclude=user_id)

            for name, value in fields.items():
                if name == "email":
                    value = _norm(value)
                elif name == "role":
                    value = _role(value)
                elif isinstance(value, str):
                    value = value.strip()
                setattr(user, name, value)
            self._save(user)
            return user.snapshot()

    def remove(self, user_id: str) -> None:
        with self._lock:
            user = self._user(user_id)
            if user.borrowed_count:
                raise ConflictError(
                    f"User {user_id!r} has {user.borrowed_count} active loan(s) and cannot be removed."
                )
            del self._users[user_id]
            self.store.delete(USERS, user_id)

    # ---- borrowing counters, driven by the loan ledger
    def can_borrow_more(self, user_id: str) -> bool:
        with self._lock:
            return self._user(user_id).can_borrow_more()

    def record_borrow(self, user_id: str, book_id: str) -> None:
        with self._lock:
            user = self._user(user_id)
            user.borrowed_book_ids.append(book_id)
            user.total_loans += 1
            self._save(user)

    def record_return(self, user_id: str, book_id: str) -> bool:
        with self._lock:
            user = self._user(user_id)
            if book_id not in user.borrowed_book_ids:
                return False
            user.borrowed_book_ids.remove(book_id)
            self._save(user)
            return True

    def resolve(self, identity: str) -> str:
        """Map a username, email or display name to exactly one user id.

        Tried in that order; the first field with any match decides, and more
        than one match there is an error rather than a guess.
        """
        key = _norm(identity)
        if not key:
            raise UnresolvedUserError(identity, "empty identity")
        with self._lock:
            for attr in ("username", "email", "name"):
                found = [u.id for u in self._users.values() if _norm(getattr(u, attr)) == key]
                if len(found) == 1:
                    return found[0]
                if found:
                    raise UnresolvedUserError(identity, f"{len(found)} accounts share this {attr}")
        raise UnresolvedUserError(identity)

    # ---- queries
    def exists(self, user_id: str) -> bool:
        return user_id in self._users

    def get_user(self, user_id: str) -> User:
        with self._lock:
            return self._user(user_id).snapshot()

    def list_users(self, active: Optional[bool] = None) -> List[User]:
        with self._lock:
            users = sorted(self._users.values(), key=lambda u: u.id)
            return [u.snapshot() for u in users if active is None or u.active == active]

    def search(self, text: str) -> List[User]:
        t = _norm(text)
        return [
            u for u in self.list_users()
            if t in u.name.lower() or t in u.email.lower() or t in (u.username or "").lower()
        ]
