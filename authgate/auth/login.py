"""
User Login Module

Implements registration and authentication with:
- Argon2id password verification
- Optional TOTP second step (stateful or stateless)
- Session rotation whenever the privilege level changes
- Lazy rehash of passwords and re-encryption of seeds under the active key

Security considerations:
- Unknown email and wrong password produce the same error and cost
- Never log sensitive data (passwords, codes, seeds, tokens)
- Every public operation fails closed through flow_boundary
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..audit import AuditLog, EventType, get_user_hash_short
from ..crypto.secret_cipher import SecretCipher
from ..errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    flow_boundary,
)
from ..store.users import User, UserStore
from .passwords import PasswordHasher
from .session import SessionState, SessionStore
from .totp import TotpEngine


logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOTP_CODE = "Invalid 2FA code"
TOTP_NOT_CONFIGURED = "2FA is not configured for this account"


@dataclass(frozen=True)
class Identity:
    """Public view of a user. Carries no credential material."""

    id: str
    email: str
    totp_enabled: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> 'Identity':
        return cls(
            id=user.id,
            email=user.email,
            totp_enabled=user.totp_enabled,
            created_at=user.created_at,
        )

    def as_payload(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'totpEnabled': self.totp_enabled,
        }

    def as_profile_payload(self) -> Dict[str, Any]:
        payload = self.as_payload()
        payload['createdAt'] = self.created_at.isoformat()
        return payload


@dataclass(frozen=True)
class AuthResult:
    """Outcome of register/login: the new session token and who it belongs to."""

    token: str = field(repr=False)
    identity: Identity
    requires_2fa: bool = False

    def as_payload(self) -> Dict[str, Any]:
        return {
            'user': self.identity.as_payload(),
            'requires2FA': self.requires_2fa,
        }


class LoginFlow:
    """
    Registration, login and logout.

    Usage:
        flow = LoginFlow(users, sessions, hasher, cipher, totp)
        result = flow.login("alice@example.com", "pw123456")
        if result.requires_2fa:
            flow.verify_two_factor(result.token, "123456")
        flow.profile(result.token)
    """

    def __init__(self, users: UserStore, sessions: SessionStore,
                 hasher: PasswordHasher, cipher: SecretCipher,
                 totp: TotpEngine, audit: Optional[AuditLog] = None):
        self._users = users
        self._sessions = sessions
        self._hasher = hasher
        self._cipher = cipher
        self._totp = totp
        self._audit = audit or AuditLog()

    @property
    def audit(self) -> AuditLog:
        return self._audit

    # Public operations

    @flow_boundary
    def register(self, email: str, password: str,
                 token: Optional[str] = None) -> AuthResult:
        """
        Create an account and sign it in.

        Args:
            email: Account email (case-sensitive, unique)
            password: Plaintext password
            token: Current session token, if any; it is replaced

        Returns:
            AuthResult with a VERIFIED session

        Raises:
            ValidationError: Missing fields or password out of bounds
            ConflictError: Email already registered
        """
        _require_credentials(email, password)
        self._hasher.validate_password(password)

        user = self._users.create(email, self._hasher.hash(password))
        new_token = self._start_session(token, user)

        self._audit.record(EventType.REGISTERED, user.id)
        logger.info("Registered user %s", get_user_hash_short(user.id))
        return AuthResult(new_token, Identity.from_user(user), requires_2fa=False)

    @flow_boundary
    def login(self, email: str, password: str,
              token: Optional[str] = None) -> AuthResult:
        """
        Verify email and password.

        Users with 2FA get a PENDING_TWO_FACTOR session and
        requires_2fa=True; everyone else is fully signed in.

        Raises:
            ValidationError: Missing fields
            AuthenticationError: Unknown email or wrong password
        """
        _require_credentials(email, password)
        user = self._check_password(email, password)

        new_token = self._start_session(token, user)
        requires_2fa = user.totp_enabled

        self._audit.record(EventType.LOGIN_SUCCESS, user.id, requires_2fa=requires_2fa)
        logger.info("Password accepted for user %s (2FA pending: %s)",
                    get_user_hash_short(user.id), requires_2fa)
        return AuthResult(new_token, Identity.from_user(user), requires_2fa=requires_2fa)

    @flow_boundary
    def login_with_two_factor(self, email: str, password: str, code: str,
                              token: Optional[str] = None) -> AuthResult:
        """
        Stateless login with password and TOTP code in one call.

        Does not rely on any earlier partial session.

        Raises:
            ValidationError: Missing fields, malformed code, or 2FA not set up
            AuthenticationError: Bad credentials or wrong code
            DecryptionError: Stored seed is unreadable
        """
        if not email or not password or not code:
            raise ValidationError("Email, password and 2FA code are required")
        code = self._totp.check_format(code)

        user = self._check_password(email, password)
        if not user.has_trusted_secret:
            raise ValidationError(TOTP_NOT_CONFIGURED)

        self._check_code(user, code)

        new_token = self._start_session(token, user, two_factor_done=True)

        self._audit.record(EventType.LOGIN_SUCCESS, user.id, requires_2fa=False, method="totp")
        logger.info("2FA login completed for user %s", get_user_hash_short(user.id))
        return AuthResult(new_token, Identity.from_user(user), requires_2fa=False)

    @flow_boundary
    def verify_two_factor(self, token: str, code: str) -> Identity:
        """
        Complete a pending login with a TOTP code.

        Raises:
            AuthenticationError: No pending session, or wrong code
            ValidationError: Malformed code
            NotFoundError: The session's user no longer exists
        """
        with self._sessions.locked(token) as session:
            if session is None:
                raise AuthenticationError()
            session.require_pending()
            code = self._totp.check_format(code, "2FA code is required")

            user = self._users.find_by_id(session.user_id)
            if user is None:
                raise NotFoundError()
            if not user.has_trusted_secret:
                raise ValidationError(TOTP_NOT_CONFIGURED)

            self._check_code(user, code)
            session.complete_two_factor()

        self._audit.record(EventType.LOGIN_SUCCESS, user.id, requires_2fa=False, method="totp")
        logger.info("2FA verified for user %s", get_user_hash_short(user.id))
        return Identity.from_user(user)

    @flow_boundary
    def logout(self, token: Optional[str]) -> None:
        """Destroy the session. Always succeeds, idempotent."""
        session = self._sessions.get(token)
        user_id = session.user_id if session else None
        if self._sessions.destroy(token):
            self._audit.record(EventType.LOGOUT, user_id)

    @flow_boundary
    def profile(self, token: str) -> Dict[str, Any]:
        """
        Read the signed-in user's profile.

        Returns:
            {id, email, totpEnabled, createdAt}

        Raises:
            AuthenticationError: Session missing or not fully verified
            NotFoundError: The session's user no longer exists
        """
        with self._sessions.locked(token) as session:
            if session is None:
                raise AuthenticationError()
            session.require_verified()
            user = self._users.find_by_id(session.user_id)

        if user is None:
            raise NotFoundError()
        return Identity.from_user(user).as_profile_payload()

    def state_of(self, token: Optional[str]) -> SessionState:
        """Current state for a token; unknown or expired tokens are ANONYMOUS."""
        session = self._sessions.get(token)
        return session.state if session else SessionState.ANONYMOUS

    # Internals

    def _check_password(self, email: str, password: str) -> User:
        user = self._users.find_by_email(email)
        if user is None:
            # Same cost as a real verification
            self._hasher.burn(password)
            self._audit.record(EventType.LOGIN_FAILED, None, reason="credentials")
            logger.warning("Login failed: invalid credentials")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not self._hasher.verify(password, user.password_hash):
            self._audit.record(EventType.LOGIN_FAILED, user.id, reason="credentials")
            logger.warning("Login failed: invalid credentials for user %s",
                           get_user_hash_short(user.id))
            raise AuthenticationError(INVALID_CREDENTIALS)

        if self._hasher.needs_rehash(user.password_hash):
            user = self._users.update(user.id, password_hash=self._hasher.hash(password))
            logger.info("Rehashed password for user %s", get_user_hash_short(user.id))
        return user

    def _check_code(self, user: User, code: str) -> None:
        seed = self._cipher.decrypt(user.totp_secret_encrypted)
        if not self._totp.verify_for_user(user.id, seed, code):
            self._audit.record(EventType.TOTP_FAILED, user.id)
            logger.warning("Invalid 2FA code for user %s", get_user_hash_short(user.id))
            raise AuthenticationError(INVALID_TOTP_CODE)

        self._audit.record(EventType.TOTP_VERIFIED, user.id)
        if self._cipher.needs_rotation(user.totp_secret_encrypted):
            try:
                self._users.update(
                    user.id,
                    expect={'totp_secret_encrypted': user.totp_secret_encrypted},
                    totp_secret_encrypted=self._cipher.encrypt(seed),
                )
            except ConflictError:
                # Seed replaced or removed meanwhile; nothing left to rotate
                logger.info("Skipped seed re-encryption for user %s",
                            get_user_hash_short(user.id))
                return
            logger.info("Re-encrypted 2FA seed for user %s under key %s",
                        get_user_hash_short(user.id), self._cipher.active_key_id)

    def _start_session(self, old_token: Optional[str], user: User,
                       two_factor_done: bool = False) -> str:
        # New id on every sign-in; the old session is never upgraded in place
        self._sessions.destroy(old_token)
        token, session = self._sessions.create()
        session.authenticate(user.id, user.totp_enabled and not two_factor_done)
        return token


def _require_credentials(email: Optional[str], password: Optional[str]) -> None:
    if not email or not password:
        raise ValidationError("Email and password are required")
