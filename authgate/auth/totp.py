"""
TOTP (Time-based One-Time Password) Engine

Implements RFC 6238 TOTP for two-factor authentication on top of pyotp.

Features:
- Seed generation (160-bit, base32)
- Provisioning URIs for authenticator apps
- Verification with a configurable window of adjacent time steps
- Optional replay guard (last accepted step per user)

Used with:
- Google Authenticator
- Authy
- Microsoft Authenticator
- Any RFC 6238 compliant authenticator
"""

import hmac
import logging
import threading
import time
from typing import Dict, Optional, Tuple

import pyotp

from ..config import TotpConfig
from ..errors import ValidationError


logger = logging.getLogger(__name__)

SEED_LENGTH = 32  # base32 characters (160 bits)


class TotpEngine:
    """
    TOTP seed generation and time-windowed verification.

    Example:
        >>> engine = TotpEngine()
        >>> seed, uri = engine.generate_seed("alice@example.com")
        >>> engine.verify(seed, engine.code_at(seed))
        True
    """

    def __init__(self, config: Optional[TotpConfig] = None,
                 replay_guard: Optional['ReplayGuard'] = None):
        """
        Args:
            config: Issuer, digits, interval and default window
            replay_guard: Single-use tracking; created automatically when
                config.replay_protection is set
        """
        self._config = config or TotpConfig()
        if replay_guard is None and self._config.replay_protection:
            replay_guard = ReplayGuard()
        self._replay_guard = replay_guard

    @property
    def config(self) -> TotpConfig:
        return self._config

    @property
    def replay_guard(self) -> Optional['ReplayGuard']:
        return self._replay_guard

    def _totp(self, seed: str, label: Optional[str] = None) -> pyotp.TOTP:
        return pyotp.TOTP(
            seed,
            digits=self._config.digits,
            interval=self._config.interval,
            name=label,
            issuer=self._config.issuer,
        )

    def generate_seed(self, label: str) -> Tuple[str, str]:
        """
        Create a new seed for enrollment.

        The seed is returned in plaintext exactly once; callers encrypt it
        before storing it anywhere.

        Args:
            label: Account label shown in the authenticator (usually email)

        Returns:
            Tuple of (base32_seed, provisioning_uri)
        """
        seed = pyotp.random_base32(length=SEED_LENGTH)
        uri = self._totp(seed).provisioning_uri(
            name=label, issuer_name=self._config.issuer)
        return seed, uri

    def time_step(self, for_time: Optional[float] = None) -> int:
        """Time counter T = floor(time / interval)."""
        if for_time is None:
            for_time = time.time()
        return int(for_time) // self._config.interval

    def code_at(self, seed: str, for_time: Optional[float] = None) -> str:
        """Generate the code for a given time (now if None)."""
        return self._totp(seed).generate_otp(self.time_step(for_time))

    def match(self, seed: str, code: str,
              window_steps: Optional[int] = None,
              for_time: Optional[float] = None) -> Optional[int]:
        """
        Find the time step a code belongs to.

        Checks the current step and window_steps steps either side, using
        constant-time comparison against each candidate.

        Args:
            seed: Base32 seed
            code: Submitted code (spaces are ignored)
            window_steps: Steps tolerated each way (config default if None)
            for_time: Unix timestamp to verify at (now if None)

        Returns:
            The matching time-step counter, or None if nothing matches
        """
        if window_steps is None:
            window_steps = self._config.window

        code = normalize_code(code)
        if len(code) != self._config.digits or not (code.isascii() and code.isdigit()):
            return None

        current = self.time_step(for_time)
        totp = self._totp(seed)
        try:
            for offset in range(-window_steps, window_steps + 1):
                candidate = totp.generate_otp(current + offset)
                if hmac.compare_digest(code, candidate):
                    return current + offset
        except ValueError:
            # Not valid base32: fail closed
            logger.warning("TOTP verification attempted with an unusable seed")
            return None

        return None

    def verify(self, seed: str, code: str,
               window_steps: Optional[int] = None,
               for_time: Optional[float] = None) -> bool:
        """
        Verify a TOTP code.

        No code is marked consumed here: a code stays valid for its whole
        window. Pair with ReplayGuard for single-use semantics.
        """
        return self.match(seed, code, window_steps, for_time) is not None

    def verify_for_user(self, user_id: str, seed: str, code: str,
                        for_time: Optional[float] = None) -> bool:
        """
        Verify a code on behalf of a user, applying the replay guard if any.

        Returns:
            True only if the code matches and has not been used before
            (when replay protection is on)
        """
        step = self.match(seed, code, for_time=for_time)
        if step is None:
            return False
        if self._replay_guard is not None and not self._replay_guard.check_and_record(user_id, step):
            logger.warning("Refused a TOTP code that was already used")
            return False
        return True

    def check_format(self, code: Optional[str],
                     missing_message: str = "Verification code is required") -> str:
        """
        Normalise a submitted code and check it is N decimal digits.

        Raises:
            ValidationError: If the code is missing or malformed
        """
        code = normalize_code(code)
        if not code:
            raise ValidationError(missing_message)
        if len(code) != self._config.digits or not (code.isascii() and code.isdigit()):
            raise ValidationError(f"Code must be {self._config.digits} digits")
        return code

    def remaining_seconds(self, for_time: Optional[float] = None) -> int:
        """Seconds until the next code."""
        if for_time is None:
            for_time = time.time()
        return self._config.interval - (int(for_time) % self._config.interval)


class ReplayGuard:
    """
    Remembers the last accepted time step per user.

    A code whose step is at or before the last accepted one is refused,
    so every code can be used once.
    """

    def __init__(self):
        self._last_step: Dict[str, int] = {}
        self._lock = threading.Lock()

    def check_and_record(self, user_id: str, step: int) -> bool:
        """
        Accept a step for a user if it is newer than the last one.

        Returns:
            True if accepted (and recorded), False if it is a replay
        """
        with self._lock:
            last = self._last_step.get(user_id)
            if last is not None and step <= last:
                return False
            self._last_step[user_id] = step
            return True

    def forget(self, user_id: str) -> None:
        with self._lock:
            self._last_step.pop(user_id, None)


def normalize_code(code: Optional[str]) -> str:
    """Strip whitespace from a submitted code."""
    if code is None:
        return ""
    return "".join(str(code).split())
