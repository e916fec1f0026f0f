"""
Configuration Module

Immutable configuration passed explicitly to component constructors.

Nothing in the package reads the environment on its own: AuthConfig.load()
is the single place where environment overrides are parsed, at startup.

Environment variables (prefix AUTHGATE_):
    AUTHGATE_ENCRYPTION_KEY              single passphrase (key id "primary")
    AUTHGATE_ENCRYPTION_KEYS             keyring, "id=passphrase,id2=passphrase2"
    AUTHGATE_ACTIVE_KEY_ID               key id used for new ciphertexts
    AUTHGATE_LEGACY_KEY_ID               key id for legacy CBC ciphertexts
    AUTHGATE_SESSION_SECRET              HMAC key for session token digests
    AUTHGATE_SESSION__LIFETIME_SECONDS
    AUTHGATE_TOTP__ISSUER
    AUTHGATE_TOTP__WINDOW
    AUTHGATE_TOTP__REPLAY_PROTECTION
    AUTHGATE_LOGGING__LEVEL
    AUTHGATE_LOGGING__FILE               rotating log file path
"""

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError


# Session lifetime is absolute, not sliding (24 hours)
DEFAULT_SESSION_LIFETIME = 24 * 60 * 60

DEFAULT_KEY_ID = "primary"


@dataclass(frozen=True)
class PasswordPolicy:
    """Password length rules and Argon2id cost parameters."""

    min_length: int = 6
    max_length: int = 1024       # bounds Argon2 input
    time_cost: int = 3           # iterations
    memory_cost: int = 65536     # 64 MiB
    parallelism: int = 4
    hash_len: int = 32
    salt_len: int = 16

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ConfigurationError("min_length must be at least 1")
        if self.max_length < self.min_length:
            raise ConfigurationError("max_length must not be below min_length")
        if self.salt_len < 8:
            raise ConfigurationError("salt_len must be at least 8 bytes")


@dataclass(frozen=True)
class CipherConfig:
    """
    Keyring for the TOTP seed cipher.

    Each passphrase is turned into an AES-256 key with SHA-256. New
    ciphertexts are written under active_key_id; older key ids stay
    readable until rotated away.
    """

    keys: Mapping[str, str] = field(default_factory=dict, repr=False)
    active_key_id: str = DEFAULT_KEY_ID
    legacy_key_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.keys:
            raise ConfigurationError("At least one encryption key must be configured")
        if self.active_key_id not in self.keys:
            raise ConfigurationError(f"Active key id '{self.active_key_id}' is not in the keyring")
        if self.legacy_key_id is not None and self.legacy_key_id not in self.keys:
            raise ConfigurationError(f"Legacy key id '{self.legacy_key_id}' is not in the keyring")
        for key_id, passphrase in self.keys.items():
            if not key_id or '$' in key_id or ':' in key_id:
                raise ConfigurationError(f"Invalid key id: {key_id!r}")
            if not passphrase:
                raise ConfigurationError(f"Empty passphrase for key id '{key_id}'")


@dataclass(frozen=True)
class TotpConfig:
    """RFC 6238 parameters and verification policy."""

    issuer: str = "AuthGate"
    digits: int = 6
    interval: int = 30
    window: int = 2
    replay_protection: bool = False

    def __post_init__(self) -> None:
        if self.digits not in (6, 7, 8):
            raise ConfigurationError("digits must be 6, 7 or 8")
        if self.interval < 1:
            raise ConfigurationError("interval must be positive")
        if self.window < 0:
            raise ConfigurationError("window must not be negative")


@dataclass(frozen=True)
class SessionConfig:
    lifetime_seconds: int = DEFAULT_SESSION_LIFETIME
    secret: bytes = field(default_factory=lambda: secrets.token_bytes(32), repr=False)

    def __post_init__(self) -> None:
        if self.lifetime_seconds < 1:
            raise ConfigurationError("Session lifetime must be positive")
        if len(self.secret) < 16:
            raise ConfigurationError("Session secret must be at least 16 bytes")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    enable_console: bool = True
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}")


@dataclass(frozen=True)
class AuthConfig:
    """
    Top-level configuration.

    Usage:
        config = AuthConfig.load()
        service = AuthService.from_config(config)
    """

    cipher: CipherConfig
    passwords: PasswordPolicy = field(default_factory=PasswordPolicy)
    totp: TotpConfig = field(default_factory=TotpConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, env_prefix: str = "AUTHGATE",
             environ: Optional[Mapping[str, str]] = None) -> 'AuthConfig':
        """
        Build configuration from environment variables.

        Args:
            env_prefix: Prefix for environment variables
            environ: Mapping to read instead of os.environ

        Returns:
            AuthConfig instance

        Raises:
            ConfigurationError: If no encryption key is configured or a
                value cannot be parsed
        """
        env = os.environ if environ is None else environ
        prefix = f"{env_prefix.upper()}_"

        def get(name: str) -> Optional[str]:
            value = env.get(prefix + name)
            return value if value not in (None, "") else None

        keys = _parse_keyring(get("ENCRYPTION_KEYS"))
        single_key = get("ENCRYPTION_KEY")
        if single_key is not None:
            keys.setdefault(DEFAULT_KEY_ID, single_key)
        if not keys:
            raise ConfigurationError(
                f"{prefix}ENCRYPTION_KEY or {prefix}ENCRYPTION_KEYS must be set"
            )

        active_key_id = get("ACTIVE_KEY_ID")
        if active_key_id is None:
            # Last listed key is the newest
            active_key_id = list(keys)[-1]

        cipher = CipherConfig(
            keys=keys,
            active_key_id=active_key_id,
            legacy_key_id=get("LEGACY_KEY_ID"),
        )

        session_kwargs: Dict = {}
        if get("SESSION_SECRET") is not None:
            session_kwargs['secret'] = get("SESSION_SECRET").encode('utf-8')
        if get("SESSION__LIFETIME_SECONDS") is not None:
            session_kwargs['lifetime_seconds'] = _parse_int(
                get("SESSION__LIFETIME_SECONDS"), "SESSION__LIFETIME_SECONDS")

        totp_kwargs: Dict = {}
        if get("TOTP__ISSUER") is not None:
            totp_kwargs['issuer'] = get("TOTP__ISSUER")
        if get("TOTP__WINDOW") is not None:
            totp_kwargs['window'] = _parse_int(get("TOTP__WINDOW"), "TOTP__WINDOW")
        if get("TOTP__REPLAY_PROTECTION") is not None:
            totp_kwargs['replay_protection'] = get("TOTP__REPLAY_PROTECTION").lower() in ("1", "true", "yes")

        logging_kwargs: Dict = {}
        if get("LOGGING__LEVEL") is not None:
            logging_kwargs['level'] = get("LOGGING__LEVEL").upper()
        if get("LOGGING__FILE") is not None:
            logging_kwargs['log_file'] = Path(get("LOGGING__FILE"))

        return cls(
            cipher=cipher,
            session=SessionConfig(**session_kwargs),
            totp=TotpConfig(**totp_kwargs),
            logging=LoggingConfig(**logging_kwargs),
        )


def _parse_keyring(raw: Optional[str]) -> Dict[str, str]:
    """Parse "id=passphrase,id2=passphrase2" into an ordered dict."""
    keys: Dict[str, str] = {}
    if not raw:
        return keys
    for entry in raw.split(','):
        entry = entry.strip()
        if not entry:
            continue
        key_id, sep, passphrase = entry.partition('=')
        if not sep or not key_id.strip() or not passphrase:
            raise ConfigurationError("Encryption keyring entries must look like id=passphrase")
        keys[key_id.strip()] = passphrase
    return keys


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer") from None
