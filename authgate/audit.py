"""
Security Audit Trail

Records authentication events with privacy-preserving user references.

Features:
- Registration, login, 2FA and logout events
- SHA-256 user hashes (emails and ids are never stored in clear)
- Bounded in-memory buffer, safe for concurrent writers
- Subscriber callbacks for shipping events elsewhere
"""

import hashlib
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000


def get_user_hash(user_ref: str) -> str:
    """
    Compute a privacy-preserving hash of a user reference (email or id).

    Events for the same user can still be correlated without the
    reference itself ever being written to the trail.
    """
    return hashlib.sha256(user_ref.encode('utf-8')).hexdigest()


def get_user_hash_short(user_ref: str) -> str:
    """First 16 hex characters of the user hash, for log lines."""
    return get_user_hash(user_ref)[:16]


class EventType(Enum):
    """Types of security events that can be recorded."""

    REGISTERED = "registered"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    TOTP_VERIFIED = "totp_verified"
    TOTP_FAILED = "totp_failed"
    TOTP_ENABLED = "totp_enabled"
    TOTP_DISABLED = "totp_disabled"
    ENROLLMENT_STARTED = "enrollment_started"
    ENROLLMENT_CANCELLED = "enrollment_cancelled"
    LOGOUT = "logout"


@dataclass
class SecurityEvent:
    """A recorded security event. All user references are hashed."""

    event_type: EventType
    user_hash: str
    timestamp: float
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            'type': self.event_type.value,
            'user': self.user_hash[:16],
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            'details': self.details,
        }, separators=(',', ':'))

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.user_hash[:8]}..."
        )


class AuditLog:
    """
    In-memory audit trail of authentication events.

    Example:
        >>> audit = AuditLog()
        >>> event = audit.record(EventType.LOGIN_SUCCESS, "alice@example.com")
        >>> audit.events_by_type(EventType.LOGIN_SUCCESS) == [event]
        True
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """
        Args:
            capacity: Maximum number of events kept; oldest are dropped
        """
        self._events: Deque[SecurityEvent] = deque(maxlen=capacity)
        self._callbacks: List[Callable[[SecurityEvent], None]] = []
        self._lock = threading.Lock()

    def record(self, event_type: EventType, user_ref: Optional[str],
               **details: Any) -> SecurityEvent:
        """
        Record an event.

        Args:
            event_type: What happened
            user_ref: Email or user id (hashed before storage), None if unknown
            **details: Extra non-sensitive context

        Returns:
            The recorded event
        """
        event = SecurityEvent(
            event_type=event_type,
            user_hash=get_user_hash(user_ref) if user_ref else "anonymous",
            timestamp=time.time(),
            details=details,
        )
        with self._lock:
            self._events.append(event)
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                # A faulty subscriber must not break authentication
                logger.exception("Audit subscriber failed for %s", event_type.value)

        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def events(self) -> List[SecurityEvent]:
        """All retained events, oldest first."""
        with self._lock:
            return list(self._events)

    def events_for(self, user_ref: str) -> List[SecurityEvent]:
        user_hash = get_user_hash(user_ref)
        return [e for e in self.events() if e.user_hash == user_hash]

    def events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        return [e for e in self.events() if e.event_type == event_type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
