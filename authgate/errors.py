"""
Error Taxonomy

Every failure the authentication core can report maps to one of the
classes below. Messages on these exceptions are safe to show to callers;
anything else is logged and replaced by InternalError at the flow boundary.

Failure policy:
- Fail closed: on any error or ambiguity access is denied
- Credential and code failures share generic messages (no oracle)
- Nothing is retried automatically
"""

import functools
import logging
from typing import Callable, TypeVar


logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable)


class AuthGateError(Exception):
    """Base class for errors surfaced to callers."""

    status = 500
    default_message = "Authentication error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthGateError):
    """Missing or malformed input."""

    status = 400
    default_message = "Invalid request"


class AuthenticationError(AuthGateError):
    """Bad credentials, bad TOTP code, or missing/expired session."""

    status = 401
    default_message = "Authentication required"


class ConflictError(AuthGateError):
    """Duplicate registration or enabling 2FA twice."""

    status = 409
    default_message = "Conflict"


class NotFoundError(AuthGateError):
    """Session references a user that no longer exists."""

    status = 404
    default_message = "User not found"


class DecryptionError(AuthGateError):
    """Stored secret is corrupt or unreadable. Not retriable."""

    status = 500
    default_message = "Stored secret could not be decrypted"


class InternalError(AuthGateError):
    """Unexpected collaborator failure."""

    status = 500
    default_message = "Internal server error"


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""


def flow_boundary(func: F) -> F:
    """
    Map every exception leaving a public flow operation onto the taxonomy.

    AuthGateError subclasses pass through untouched (DecryptionError is
    logged first, since it points at corrupt state). Anything else is
    logged with its traceback and replaced by a detail-free InternalError.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DecryptionError:
            logger.error("Decryption failure in %s", func.__qualname__)
            raise
        except AuthGateError:
            raise
        except Exception:
            logger.exception("Unexpected failure in %s", func.__qualname__)
            raise InternalError() from None
    return wrapper
