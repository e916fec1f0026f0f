"""
Shared fixtures.

Argon2 parameters are turned down so the suite runs quickly; production
defaults live in PasswordPolicy.
"""

import pytest

from authgate.audit import AuditLog
from authgate.auth.passwords import PasswordHasher
from authgate.auth.session import SessionStore
from authgate.auth.totp import TotpEngine
from authgate.config import (
    AuthConfig,
    CipherConfig,
    PasswordPolicy,
    SessionConfig,
    TotpConfig,
)
from authgate.crypto.secret_cipher import SecretCipher
from authgate.service import AuthService
from authgate.store.users import InMemoryUserStore


FAST_POLICY = PasswordPolicy(time_cost=1, memory_cost=1024, parallelism=1)

EMAIL = "u@x.com"
PASSWORD = "pw123456"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cipher_config():
    return CipherConfig(keys={"k1": "test-passphrase-one"}, active_key_id="k1")


@pytest.fixture
def config(cipher_config):
    return AuthConfig(
        cipher=cipher_config,
        passwords=FAST_POLICY,
        session=SessionConfig(secret=b"s" * 32),
    )


@pytest.fixture
def hasher():
    return PasswordHasher(FAST_POLICY)


@pytest.fixture
def cipher(cipher_config):
    return SecretCipher.from_config(cipher_config)


@pytest.fixture
def totp():
    return TotpEngine(TotpConfig())


@pytest.fixture
def sessions():
    return SessionStore(SessionConfig(secret=b"s" * 32))


@pytest.fixture
def users():
    return InMemoryUserStore()


@pytest.fixture
def audit():
    return AuditLog()


@pytest.fixture
def service(config):
    return AuthService.from_config(config, qr_renderer=None)


@pytest.fixture
def enrolled(service):
    """A registered user with 2FA enabled; yields (service, token, seed)."""
    result = service.login.register(EMAIL, PASSWORD)
    ticket = service.enrollment.begin_setup(result.token)
    service.enrollment.confirm_setup(result.token, service.totp.code_at(ticket.secret))
    return service, result.token, ticket.secret
