"""
SQLite User Store

Persists User records in a single "users" table.

- Parameterized queries only
- Email uniqueness enforced by the schema (UNIQUE, case-sensitive)
- Every update is one UPDATE statement, so flag and secret change together
- Conditional updates carry their expected values in the WHERE clause
"""

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..errors import ConflictError, NotFoundError
from .users import RECORD_CHANGED, User, check_update_fields


class SqliteUserStore:
    """
    User store backed by SQLite.

    Usage:
        store = SqliteUserStore("users.sqlite")
        user = store.create("alice@example.com", hasher.hash("pw123456"))
        store.update(user.id, totp_enabled=False, totp_secret_encrypted=None)
    """

    _SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        totp_secret_encrypted TEXT,
        totp_enabled INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Union[Path, str]):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self._db_path = Path(db_path)
        self.initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_db(self) -> None:
        """Create the schema if it does not exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_connection()
        try:
            with conn:
                conn.executescript(self._SCHEMA)
        finally:
            conn.close()

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def find_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE email = ?", (email,))

    def create(self, email: str, password_hash: str) -> User:
        """
        Insert a new user with 2FA disabled.

        Raises:
            ConflictError: If the email is already registered
        """
        user = User(id=str(uuid.uuid4()), email=email, password_hash=password_hash)
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO users (id, email, password_hash, totp_secret_encrypted,
                                       totp_enabled, created_at)
                    VALUES (?, ?, ?, NULL, 0, ?)
                """, (user.id, email, password_hash, user.created_at.isoformat()))
        except sqlite3.IntegrityError:
            raise ConflictError("A user with this email already exists") from None
        finally:
            conn.close()
        return user

    def update(self, user_id: str, expect: Optional[Dict[str, Any]] = None,
               **fields: Any) -> User:
        """
        Apply all field changes in one UPDATE statement.

        Args:
            user_id: Record to change
            expect: Field values the row must still hold; they become part
                of the WHERE clause, so check and write are one statement
            **fields: New field values

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If a field differs from its expected value
        """
        expect = expect or {}
        check_update_fields(fields)
        check_update_fields(expect)
        if not fields:
            user = self.find_by_id(user_id)
            if user is None:
                raise NotFoundError()
            if any(getattr(user, name) != value for name, value in expect.items()):
                raise ConflictError(RECORD_CHANGED)
            return user

        names = sorted(fields)
        assignments = ", ".join(f"{name} = ?" for name in names)
        values = [_to_column(fields[name]) for name in names]

        # IS compares NULL as a value
        conditions = ["id = ?"] + [f"{name} IS ?" for name in sorted(expect)]
        params = [user_id] + [_to_column(expect[name]) for name in sorted(expect)]

        conn = self._get_connection()
        try:
            with conn:
                result = conn.execute(
                    f"UPDATE users SET {assignments} WHERE {' AND '.join(conditions)}",
                    (*values, *params),
                )
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        finally:
            conn.close()

        if row is None:
            raise NotFoundError()
        if result.rowcount == 0:
            raise ConflictError(RECORD_CHANGED)
        return _row_to_user(row)

    def _fetch_one(self, query: str, params: tuple) -> Optional[User]:
        conn = self._get_connection()
        try:
            row = conn.execute(query, params).fetchone()
        finally:
            conn.close()
        return _row_to_user(row) if row else None


def _to_column(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


def _row_to_user(row: sqlite3.Row) -> User:
    created_at = datetime.fromisoformat(row["created_at"])
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        totp_secret_encrypted=row["totp_secret_encrypted"],
        totp_enabled=bool(row["totp_enabled"]),
        created_at=created_at,
    )
