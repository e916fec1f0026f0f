"""
Secure Logging

Configures the "authgate" logger hierarchy with a filter that redacts
secrets before any handler sees them.

Modules obtain loggers with logging.getLogger(__name__) and never log
passwords, seeds, codes or session tokens; the filter is a second line of
defence for values that slip into messages anyway.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Pattern, Tuple

from .config import LoggingConfig


PACKAGE_LOGGER = "authgate"

_REDACTED = "[REDACTED]"

_SENSITIVE_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("secret", re.compile(r'(?i)(secret|seed)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    ("code", re.compile(r'(?i)(code|otp)\s*[=:]\s*["\']?\d{6,8}["\']?')),
    ("key", re.compile(r'(?i)(api[_-]?key|encryption[_-]?key|passphrase)\s*[=:]\s*["\']?[^\s"\',]+["\']?')),
    # Long hex or base32 runs look like ciphertexts or seeds
    ("hex", re.compile(r'(?i)\b[a-f0-9]{32,}\b')),
    ("base32", re.compile(r'\b[A-Z2-7]{32,}\b')),
]

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class SecureLogFilter(logging.Filter):
    """Redact sensitive values from log messages and their arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: redact(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(redact(a) if isinstance(a, str) else a
                                    for a in record.args)

        return True


def redact(text: str) -> str:
    """Replace anything matching a sensitive pattern."""
    for name, pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(f"{name}={_REDACTED}", text)
    return text


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Attach handlers to the package logger.

    Safe to call more than once; existing handlers are replaced.

    Args:
        config: Logging configuration (defaults if None)

    Returns:
        The configured "authgate" logger
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, config.level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    secure_filter = SecureLogFilter()

    if config.enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
        console.addFilter(secure_filter)
        logger.addHandler(console)

    if config.log_file is not None:
        log_path = Path(config.log_file).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        file_handler.addFilter(secure_filter)
        logger.addHandler(file_handler)

    # Keep records inside the package handlers
    logger.propagate = False
    return logger
