"""
User Records

The User record and the record-store contract the authentication core
depends on, plus a thread-safe in-memory reference store.

Contract:
- find_by_id / find_by_email return a snapshot or None
- create enforces email uniqueness atomically
- update applies all given fields as one atomic write, optionally only
  while the stored values still match an expected snapshot
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from ..errors import ConflictError, NotFoundError


# Fields update() may change; id, email and created_at are fixed
MUTABLE_FIELDS = frozenset({'password_hash', 'totp_secret_encrypted', 'totp_enabled'})

RECORD_CHANGED = "User record was changed by another request"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """
    User account record.

    Note: password_hash and totp_secret_encrypted never appear in repr.
    """

    id: str
    email: str
    password_hash: str
    totp_secret_encrypted: Optional[str] = None
    totp_enabled: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def __repr__(self) -> str:
        return (
            f"User(id={self.id!r}, email={self.email!r}, "
            f"totp_enabled={self.totp_enabled})"
        )

    @property
    def has_trusted_secret(self) -> bool:
        """A secret is only trusted while the 2FA flag is set."""
        return self.totp_enabled and bool(self.totp_secret_encrypted)


class UserStore(Protocol):
    """Operations the core needs from the persistent record store."""

    def find_by_id(self, user_id: str) -> Optional[User]:
        ...

    def find_by_email(self, email: str) -> Optional[User]:
        ...

    def create(self, email: str, password_hash: str) -> User:
        ...

    def update(self, user_id: str, expect: Optional[Dict[str, Any]] = None,
               **fields: Any) -> User:
        ...


def check_update_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")


class InMemoryUserStore:
    """
    Dict-backed user store.

    Returns copies, so callers never mutate stored records directly.
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = threading.RLock()

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.copy(user) if user else None

    def find_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_email.get(email)
            return copy.copy(self._users[user_id]) if user_id else None

    def create(self, email: str, password_hash: str) -> User:
        """
        Create a user with 2FA disabled.

        Raises:
            ConflictError: If the email is already registered
        """
        with self._lock:
            if email in self._by_email:
                raise ConflictError("A user with this email already exists")
            user = User(id=str(uuid.uuid4()), email=email, password_hash=password_hash)
            self._users[user.id] = user
            self._by_email[email] = user.id
            return copy.copy(user)

    def update(self, user_id: str, expect: Optional[Dict[str, Any]] = None,
               **fields: Any) -> User:
        """
        Apply field changes atomically.

        Args:
            user_id: Record to change
            expect: Field values the record must still hold for the write
                to happen (compare-and-set)
            **fields: New field values

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If a field differs from its expected value
            ValueError: If an immutable or unknown field is given
        """
        check_update_fields(fields)
        check_update_fields(expect or {})
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError()
            if expect and any(getattr(user, name) != value for name, value in expect.items()):
                raise ConflictError(RECORD_CHANGED)
            for name, value in fields.items():
                setattr(user, name, value)
            return copy.copy(user)

    def delete(self, user_id: str) -> None:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is not None:
                self._by_email.pop(user.email, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
