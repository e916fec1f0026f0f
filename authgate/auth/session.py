"""
Session State Machine

Server-side session state that gates access between "password verified"
and "fully authenticated".

States:
    ANONYMOUS            no password check has succeeded
    PENDING_TWO_FACTOR   password verified, TOTP code still required
    VERIFIED             fully authenticated

Enrollment is an overlay on VERIFIED (pending_enrollment_secret), not a
state of its own. Logout destroys the session from any state.

Security considerations:
- Session tokens are cryptographically random (256 bits)
- Only an HMAC-SHA256 digest of each token is used as the store key
- Absolute lifetime: sessions expire regardless of activity
- Per-session locks serialise concurrent requests on one session
"""

import hashlib
import hmac
import secrets
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional, Tuple

from ..config import SessionConfig
from ..errors import AuthenticationError


SESSION_TOKEN_BYTES = 32  # 256-bit tokens


class SessionState(Enum):
    ANONYMOUS = "anonymous"
    PENDING_TWO_FACTOR = "pending_two_factor"
    VERIFIED = "verified"


@dataclass
class Session:
    """Per-session authentication state. Never persisted."""

    created_at: float
    expires_at: float
    user_id: Optional[str] = None
    two_factor_verified: bool = False
    pending_enrollment_secret: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"Session(state={self.state.value}, user_id={self.user_id!r}, "
            f"enrolling={self.pending_enrollment_secret is not None})"
        )

    @property
    def state(self) -> SessionState:
        if self.user_id is None:
            return SessionState.ANONYMOUS
        if not self.two_factor_verified:
            return SessionState.PENDING_TWO_FACTOR
        return SessionState.VERIFIED

    def is_expired(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = time.time()
        return now >= self.expires_at

    # Transitions

    def authenticate(self, user_id: str, totp_enabled: bool) -> SessionState:
        """
        Record a successful password check.

        Users without 2FA go straight to VERIFIED; users with 2FA wait in
        PENDING_TWO_FACTOR until a valid code is presented.
        """
        self.user_id = user_id
        self.two_factor_verified = not totp_enabled
        self.pending_enrollment_secret = None
        return self.state

    def complete_two_factor(self) -> SessionState:
        self.require_pending()
        self.two_factor_verified = True
        return self.state

    def begin_enrollment(self, encrypted_secret: str) -> None:
        """Set (or overwrite) the pending enrollment secret."""
        self.require_verified()
        self.pending_enrollment_secret = encrypted_secret

    def clear_enrollment(self) -> None:
        self.pending_enrollment_secret = None

    # Access guards

    def require_verified(self) -> None:
        if self.state is not SessionState.VERIFIED:
            raise AuthenticationError("Authentication required")

    def require_pending(self) -> None:
        if self.state is not SessionState.PENDING_TWO_FACTOR:
            raise AuthenticationError("Authentication required")


class SessionStore:
    """
    Thread-safe in-memory session store keyed by token digest.

    Usage:
        store = SessionStore(config)
        token, session = store.create()

        with store.locked(token) as session:
            if session is None:
                ...  # unknown or expired
            session.authenticate(user.id, user.totp_enabled)

        store.destroy(token)
    """

    def __init__(self, config: Optional[SessionConfig] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            config: Lifetime and HMAC secret for token digests
            clock: Time source (replaceable in tests)
        """
        self._config = config or SessionConfig()
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _digest(self, token: str) -> str:
        return hmac.new(self._config.secret, token.encode('utf-8'), hashlib.sha256).hexdigest()

    def create(self) -> Tuple[str, Session]:
        """
        Create an anonymous session.

        Expired sessions at the head of the store are evicted first, so
        abandoned tokens do not accumulate.

        Returns:
            Tuple of (token for the caller, Session)
        """
        now = self._clock()
        session = Session(created_at=now, expires_at=now + self._config.lifetime_seconds)
        token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)

        with self._guard:
            self._evict_expired_head(now)
            self._sessions[self._digest(token)] = session
        return token, session

    def _evict_expired_head(self, now: float) -> None:
        # Insertion order is expiry order: every session gets the same lifetime
        while self._sessions:
            digest = next(iter(self._sessions))
            if not self._sessions[digest].is_expired(now):
                break
            del self._sessions[digest]
            self._locks.pop(digest, None)

    def get(self, token: Optional[str]) -> Optional[Session]:
        """Return the live session for a token, or None if unknown or expired."""
        if not token:
            return None
        digest = self._digest(token)
        with self._guard:
            session = self._sessions.get(digest)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                self._sessions.pop(digest, None)
                self._locks.pop(digest, None)
                return None
            return session

    @contextmanager
    def locked(self, token: Optional[str]) -> Iterator[Optional[Session]]:
        """
        Hold the per-session lock while working on a session.

        Yields the live session, or None if the token is unknown or expired.
        """
        if not token:
            yield None
            return

        digest = self._digest(token)
        with self._guard:
            lock = None
            if digest in self._sessions:
                lock = self._locks.setdefault(digest, threading.RLock())

        if lock is None:
            yield None
            return

        with lock:
            yield self.get(token)

    def destroy(self, token: Optional[str]) -> bool:
        """
        Destroy a session. Idempotent.

        Returns:
            True if a session was removed
        """
        if not token:
            return False
        digest = self._digest(token)
        with self._guard:
            self._locks.pop(digest, None)
            return self._sessions.pop(digest, None) is not None

    def purge_expired(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._guard:
            expired = [d for d, s in self._sessions.items() if s.is_expired(now)]
            for digest in expired:
                del self._sessions[digest]
                self._locks.pop(digest, None)
        return len(expired)

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)
