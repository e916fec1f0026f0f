"""
Tests for configuration, logging and the audit trail.
"""

import logging

import pytest

from authgate.audit import AuditLog, EventType, get_user_hash
from authgate.config import (
    AuthConfig,
    CipherConfig,
    LoggingConfig,
    PasswordPolicy,
    SessionConfig,
    TotpConfig,
)
from authgate.errors import ConfigurationError
from authgate.logging import PACKAGE_LOGGER, SecureLogFilter, configure_logging, redact


class TestAuthConfigLoad:
    """Tests for environment loading."""

    def test_single_key(self):
        config = AuthConfig.load(environ={"AUTHGATE_ENCRYPTION_KEY": "passphrase"})
        assert config.cipher.keys == {"primary": "passphrase"}
        assert config.cipher.active_key_id == "primary"
        assert config.totp.window == 2
        assert config.session.lifetime_seconds == 24 * 60 * 60

    def test_missing_key_is_an_error(self):
        with pytest.raises(ConfigurationError):
            AuthConfig.load(environ={})

    def test_keyring_and_overrides(self):
        config = AuthConfig.load(environ={
            "AUTHGATE_ENCRYPTION_KEYS": "old=one,new=two",
            "AUTHGATE_LEGACY_KEY_ID": "old",
            "AUTHGATE_SESSION_SECRET": "x" * 32,
            "AUTHGATE_SESSION__LIFETIME_SECONDS": "600",
            "AUTHGATE_TOTP__ISSUER": "Example",
            "AUTHGATE_TOTP__WINDOW": "1",
            "AUTHGATE_TOTP__REPLAY_PROTECTION": "true",
            "AUTHGATE_LOGGING__LEVEL": "debug",
        })
        assert config.cipher.active_key_id == "new"
        assert config.cipher.legacy_key_id == "old"
        assert config.session.secret == b"x" * 32
        assert config.session.lifetime_seconds == 600
        assert config.totp.issuer == "Example"
        assert config.totp.window == 1
        assert config.totp.replay_protection is True
        assert config.logging.level == "DEBUG"

    def test_custom_prefix(self):
        config = AuthConfig.load(env_prefix="app", environ={"APP_ENCRYPTION_KEY": "passphrase"})
        assert config.cipher.keys["primary"] == "passphrase"

    @pytest.mark.parametrize("environ", [
        {"AUTHGATE_ENCRYPTION_KEYS": "no-equals-sign"},
        {"AUTHGATE_ENCRYPTION_KEY": "p", "AUTHGATE_TOTP__WINDOW": "two"},
        {"AUTHGATE_ENCRYPTION_KEY": "p", "AUTHGATE_ACTIVE_KEY_ID": "missing"},
        {"AUTHGATE_ENCRYPTION_KEY": "p", "AUTHGATE_SESSION_SECRET": "short"},
    ])
    def test_invalid_environment(self, environ):
        with pytest.raises(ConfigurationError):
            AuthConfig.load(environ=environ)

    def test_secrets_not_in_repr(self):
        config = AuthConfig.load(environ={
            "AUTHGATE_ENCRYPTION_KEY": "super-secret-passphrase",
            "AUTHGATE_SESSION_SECRET": "session-secret-value-123",
        })
        text = repr(config)
        assert "super-secret-passphrase" not in text
        assert "session-secret-value-123" not in text


class TestConfigValidation:
    """Tests for dataclass validation."""

    def test_invalid_key_id(self):
        with pytest.raises(ConfigurationError):
            CipherConfig(keys={"bad$id": "p"}, active_key_id="bad$id")

    def test_empty_keyring(self):
        with pytest.raises(ConfigurationError):
            CipherConfig(keys={})

    def test_password_policy_bounds(self):
        with pytest.raises(ConfigurationError):
            PasswordPolicy(min_length=10, max_length=5)

    def test_totp_digits(self):
        with pytest.raises(ConfigurationError):
            TotpConfig(digits=4)

    def test_session_lifetime(self):
        with pytest.raises(ConfigurationError):
            SessionConfig(lifetime_seconds=0)

    def test_config_is_frozen(self):
        config = TotpConfig()
        with pytest.raises(AttributeError):
            config.window = 5


@pytest.fixture
def package_logger():
    """Restore the package logger after configure_logging changes it."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


class TestSecureLogging:
    """Tests for redaction and handler setup."""

    @pytest.mark.parametrize("text,leaked", [
        ("password=hunter22", "hunter22"),
        ("secret: JBSWY3DPEHPK3PXP", "JBSWY3DPEHPK3PXP"),
        ("token=abc.def", "abc.def"),
        ("code=123456", "123456"),
        ("passphrase=open-sesame", "open-sesame"),
        ("seed JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP", "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"),
        ("ct " + "ab" * 20, "ab" * 20),
    ])
    def test_redact(self, text, leaked):
        assert leaked not in redact(text)

    def test_filter_redacts_args(self):
        record = logging.LogRecord("authgate", logging.INFO, __file__, 1,
                                   "value %s", ("password=hunter22",), None)
        assert SecureLogFilter().filter(record)
        assert "hunter22" not in record.getMessage()

    def test_configure_logging_writes_file(self, package_logger, tmp_path):
        log_file = tmp_path / "logs" / "authgate.log"
        logger = configure_logging(LoggingConfig(level="DEBUG", enable_console=False,
                                                 log_file=log_file))
        logging.getLogger("authgate.auth.login").info("user logged in with password=hunter22")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "user logged in" in content
        assert "hunter22" not in content

    def test_configure_logging_replaces_handlers(self, package_logger):
        configure_logging(LoggingConfig())
        logger = configure_logging(LoggingConfig())
        assert len(logger.handlers) == 1
        assert logger.propagate is False


class TestAuditLog:
    """Tests for the audit trail."""

    def test_record_and_query(self):
        audit = AuditLog()
        audit.record(EventType.LOGIN_SUCCESS, "user-1")
        audit.record(EventType.LOGIN_FAILED, None, reason="credentials")

        assert len(audit) == 2
        assert len(audit.events_for("user-1")) == 1
        failed = audit.events_by_type(EventType.LOGIN_FAILED)[0]
        assert failed.user_hash == "anonymous"
        assert failed.details == {"reason": "credentials"}

    def test_user_references_hashed(self):
        audit = AuditLog()
        event = audit.record(EventType.REGISTERED, "user-1")
        assert event.user_hash == get_user_hash("user-1")
        assert "user-1" not in event.to_json()
        assert "registered" in str(event)

    def test_capacity(self):
        audit = AuditLog(capacity=3)
        for _ in range(5):
            audit.record(EventType.LOGOUT, "user-1")
        assert len(audit) == 3

    def test_callbacks(self):
        audit = AuditLog()
        seen = []
        audit.add_callback(seen.append)
        audit.record(EventType.LOGOUT, "user-1")
        audit.remove_callback(seen.append)
        audit.record(EventType.LOGOUT, "user-1")
        assert len(seen) == 1

    def test_failing_callback_does_not_break_recording(self):
        audit = AuditLog()

        def broken(event):
            raise RuntimeError("subscriber down")

        audit.add_callback(broken)
        audit.record(EventType.LOGOUT, "user-1")
        assert len(audit) == 1
