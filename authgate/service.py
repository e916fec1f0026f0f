"""
AuthService

Wires the components together from one AuthConfig.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .audit import AuditLog
from .auth.enrollment import EnrollmentFlow, QrRenderer
from .auth.login import LoginFlow
from .auth.passwords import PasswordHasher
from .auth.session import SessionStore
from .auth.totp import TotpEngine
from .config import AuthConfig
from .crypto.secret_cipher import SecretCipher
from .qr import provisioning_qr_data_uri
from .store.users import InMemoryUserStore, UserStore


logger = logging.getLogger(__name__)


@dataclass
class AuthService:
    """
    All authentication components sharing one store, one session store
    and one audit trail.

    Usage:
        service = AuthService.from_config(AuthConfig.load())
        result = service.login.register("alice@example.com", "pw123456")
        ticket = service.enrollment.begin_setup(result.token)
    """

    config: AuthConfig
    users: UserStore
    sessions: SessionStore
    hasher: PasswordHasher
    cipher: SecretCipher
    totp: TotpEngine
    audit: AuditLog
    login: LoginFlow
    enrollment: EnrollmentFlow

    @classmethod
    def from_config(cls, config: AuthConfig,
                    users: Optional[UserStore] = None,
                    audit: Optional[AuditLog] = None,
                    qr_renderer: Optional[QrRenderer] = provisioning_qr_data_uri) -> 'AuthService':
        """
        Build a service.

        Args:
            config: Loaded configuration
            users: Record store (in-memory if None)
            audit: Audit trail (fresh if None)
            qr_renderer: Provisioning-URI renderer, None to skip QR codes
        """
        users = users if users is not None else InMemoryUserStore()
        audit = audit if audit is not None else AuditLog()
        sessions = SessionStore(config.session)
        hasher = PasswordHasher(config.passwords)
        cipher = SecretCipher.from_config(config.cipher)
        totp = TotpEngine(config.totp)

        logger.info("Auth service ready (cipher key %s, 2FA window %d, replay protection %s)",
                    cipher.active_key_id, config.totp.window, config.totp.replay_protection)

        return cls(
            config=config,
            users=users,
            sessions=sessions,
            hasher=hasher,
            cipher=cipher,
            totp=totp,
            audit=audit,
            login=LoginFlow(users, sessions, hasher, cipher, totp, audit),
            enrollment=EnrollmentFlow(users, sessions, hasher, cipher, totp, audit,
                                      qr_renderer=qr_renderer),
        )
