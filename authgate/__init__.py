# AuthGate
"""
Password authentication with an optional TOTP second factor.

Modules:
- auth: hashing, TOTP, sessions, login and enrollment flows
- crypto: encryption at rest for TOTP seeds
- store: user record stores (in-memory, SQLite)
- audit: security event trail
- config / logging / errors: ambient configuration, redacting logs, error taxonomy
"""

__version__ = "0.1.0"

from .errors import (
    AuthGateError,
    ValidationError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    DecryptionError,
    InternalError,
    ConfigurationError,
)

from .config import (
    AuthConfig,
    CipherConfig,
    PasswordPolicy,
    TotpConfig,
    SessionConfig,
    LoggingConfig,
)

from .logging import configure_logging
from .audit import AuditLog, EventType, SecurityEvent
from .service import AuthService

__all__ = [
    # Errors
    'AuthGateError',
    'ValidationError',
    'AuthenticationError',
    'ConflictError',
    'NotFoundError',
    'DecryptionError',
    'InternalError',
    'ConfigurationError',
    # Configuration
    'AuthConfig',
    'CipherConfig',
    'PasswordPolicy',
    'TotpConfig',
    'SessionConfig',
    'LoggingConfig',
    'configure_logging',
    # Audit
    'AuditLog',
    'EventType',
    'SecurityEvent',
    # Wiring
    'AuthService',
]
