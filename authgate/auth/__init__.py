# Authentication Module
"""
Authentication implementations including:
- Password hashing (Argon2id) - passwords.py
- TOTP (2FA, RFC 6238) with optional replay guard - totp.py
- Session state machine and store - session.py
- Registration, login, logout and profile - login.py
- TOTP enrollment and disablement - enrollment.py

Security features:
- Argon2id for password hashing (PHC winner)
- Constant-time comparison for passwords and TOTP codes
- Session tokens stored only as HMAC-SHA256 digests
- Session ids rotated on every sign-in
"""

from .passwords import PasswordHasher

from .totp import (
    TotpEngine,
    ReplayGuard,
    normalize_code,
)

from .session import (
    Session,
    SessionState,
    SessionStore,
)

from .login import (
    LoginFlow,
    Identity,
    AuthResult,
)

from .enrollment import (
    EnrollmentFlow,
    EnrollmentTicket,
)

__all__ = [
    # Passwords
    'PasswordHasher',
    # TOTP
    'TotpEngine',
    'ReplayGuard',
    'normalize_code',
    # Sessions
    'Session',
    'SessionState',
    'SessionStore',
    # Flows
    'LoginFlow',
    'Identity',
    'AuthResult',
    'EnrollmentFlow',
    'EnrollmentTicket',
]
