"""
TOTP Enrollment

Two-step enrollment for an already signed-in user:

1. begin_setup: generate a seed, keep it encrypted in the session, show it once
2. confirm_setup: the user proves their authenticator works, then the
   encrypted seed is persisted and 2FA is switched on

Disabling 2FA requires the current password again, so a stolen session
alone cannot turn it off.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

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
from .login import Identity
from .passwords import PasswordHasher
from .session import Session, SessionStore
from .totp import TotpEngine


logger = logging.getLogger(__name__)

QrRenderer = Callable[[str], str]


@dataclass(frozen=True)
class EnrollmentTicket:
    """
    What the user needs to add the account to an authenticator app.

    The plaintext secret is handed out here exactly once.
    """

    secret: str = field(repr=False)
    provisioning_uri: str = field(repr=False)
    qr_code: Optional[str] = field(default=None, repr=False)

    def as_payload(self):
        return {
            'secret': self.secret,
            'provisioningUri': self.provisioning_uri,
            'qrCode': self.qr_code,
        }


class EnrollmentFlow:
    """
    Turn TOTP on and off for a signed-in user.

    Usage:
        flow = EnrollmentFlow(users, sessions, hasher, cipher, totp,
                              qr_renderer=provisioning_qr_data_uri)
        ticket = flow.begin_setup(token)
        flow.confirm_setup(token, code_from_app)
    """

    def __init__(self, users: UserStore, sessions: SessionStore,
                 hasher: PasswordHasher, cipher: SecretCipher,
                 totp: TotpEngine, audit: Optional[AuditLog] = None,
                 qr_renderer: Optional[QrRenderer] = None):
        """
        Args:
            qr_renderer: Turns a provisioning URI into an image reference;
                tickets carry no QR code when omitted
        """
        self._users = users
        self._sessions = sessions
        self._hasher = hasher
        self._cipher = cipher
        self._totp = totp
        self._audit = audit or AuditLog()
        self._qr_renderer = qr_renderer

    @flow_boundary
    def begin_setup(self, token: str) -> EnrollmentTicket:
        """
        Start enrollment. Calling again replaces the pending seed.

        Raises:
            AuthenticationError: Session missing or not fully verified
            NotFoundError: The session's user no longer exists
            ConflictError: 2FA is already enabled
        """
        with self._sessions.locked(token) as session:
            user = self._verified_user(session)
            if user.totp_enabled:
                raise ConflictError("2FA is already enabled")

            seed, uri = self._totp.generate_seed(user.email)
            session.begin_enrollment(self._cipher.encrypt(seed))

        qr_code = self._qr_renderer(uri) if self._qr_renderer else None

        self._audit.record(EventType.ENROLLMENT_STARTED, user.id)
        logger.info("2FA enrollment started for user %s", get_user_hash_short(user.id))
        return EnrollmentTicket(secret=seed, provisioning_uri=uri, qr_code=qr_code)

    @flow_boundary
    def confirm_setup(self, token: str, code: str) -> Identity:
        """
        Finish enrollment with a code from the authenticator.

        A wrong code leaves the pending seed in place so the user can retry.

        Raises:
            AuthenticationError: Session not verified, or wrong code
            ValidationError: Nothing pending, or malformed code
            ConflictError: 2FA was enabled by another session first
            DecryptionError: Pending seed is unreadable
        """
        with self._sessions.locked(token) as session:
            user = self._verified_user(session)
            pending = session.pending_enrollment_secret
            if pending is None:
                raise ValidationError("Set up 2FA first")
            code = self._totp.check_format(code)
            if user.totp_enabled:
                # Another session finished enrollment meanwhile
                session.clear_enrollment()
                raise ConflictError("2FA is already enabled")

            seed = self._cipher.decrypt(pending)
            if not self._totp.verify_for_user(user.id, seed, code):
                self._audit.record(EventType.TOTP_FAILED, user.id, stage="enrollment")
                logger.warning("Enrollment code rejected for user %s",
                               get_user_hash_short(user.id))
                raise AuthenticationError("Invalid verification code")

            # Flag and secret change together, and only if no other
            # session of this user enabled 2FA in the meantime
            try:
                user = self._users.update(
                    user.id,
                    expect={'totp_enabled': False},
                    totp_secret_encrypted=pending,
                    totp_enabled=True,
                )
            except ConflictError:
                session.clear_enrollment()
                logger.warning("Concurrent 2FA enrollment lost for user %s",
                               get_user_hash_short(user.id))
                raise ConflictError("2FA is already enabled") from None
            session.clear_enrollment()

        self._audit.record(EventType.TOTP_ENABLED, user.id)
        logger.info("2FA enabled for user %s", get_user_hash_short(user.id))
        return Identity.from_user(user)

    @flow_boundary
    def cancel_setup(self, token: str) -> None:
        """Drop any pending enrollment. Idempotent."""
        with self._sessions.locked(token) as session:
            if session is None:
                raise AuthenticationError()
            session.require_verified()
            had_pending = session.pending_enrollment_secret is not None
            session.clear_enrollment()
            user_id = session.user_id

        if had_pending:
            self._audit.record(EventType.ENROLLMENT_CANCELLED, user_id)

    @flow_boundary
    def disable(self, token: str, password: str) -> Identity:
        """
        Turn 2FA off after re-checking the password.

        Raises:
            ValidationError: Password missing
            AuthenticationError: Session not verified, or wrong password
            NotFoundError: The session's user no longer exists
            ConflictError: 2FA settings changed during the request
        """
        with self._sessions.locked(token) as session:
            user = self._verified_user(session)
            if not password:
                raise ValidationError("Password is required to disable 2FA")
            if not self._hasher.verify(password, user.password_hash):
                logger.warning("2FA disable refused for user %s: wrong password",
                               get_user_hash_short(user.id))
                raise AuthenticationError("Invalid password")

            # Only clear the 2FA state this request saw
            try:
                user = self._users.update(
                    user.id,
                    expect={
                        'totp_secret_encrypted': user.totp_secret_encrypted,
                        'totp_enabled': user.totp_enabled,
                    },
                    totp_secret_encrypted=None,
                    totp_enabled=False,
                )
            except ConflictError:
                raise ConflictError("2FA settings changed, try again") from None
            session.clear_enrollment()

        if self._totp.replay_guard is not None:
            self._totp.replay_guard.forget(user.id)

        self._audit.record(EventType.TOTP_DISABLED, user.id)
        logger.info("2FA disabled for user %s", get_user_hash_short(user.id))
        return Identity.from_user(user)

    def _verified_user(self, session: Optional[Session]) -> User:
        if session is None:
            raise AuthenticationError()
        session.require_verified()
        user = self._users.find_by_id(session.user_id)
        if user is None:
            raise NotFoundError()
        return user
