"""
Password Hashing Module

Implements one-way password hashing using the Argon2id algorithm.

Features:
- Argon2id password hashing (winner of Password Hashing Competition)
- Fresh random salt per hash, embedded in the encoded output
- Constant-time verification
- Rehash detection when cost parameters are raised

Security considerations:
- Never store plaintext passwords
- Verification never raises on mismatch or malformed hashes (fails closed)
- Salt is automatically handled by argon2-cffi
"""

from typing import Optional

from argon2 import PasswordHasher as _Argon2Hasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from ..config import PasswordPolicy
from ..errors import ValidationError


class PasswordHasher:
    """
    Secure password hasher using Argon2id.

    The default cost (3 iterations over 64 MiB) is well above a bcrypt
    work factor of 12 for an attacker with commodity GPUs.

    Example:
        >>> hasher = PasswordHasher()
        >>> stored = hasher.hash("pw123456")
        >>> hasher.verify("pw123456", stored)
        True
    """

    def __init__(self, policy: Optional[PasswordPolicy] = None):
        """
        Args:
            policy: Length rules and Argon2 parameters (defaults if None)
        """
        self._policy = policy or PasswordPolicy()
        self._hasher = _Argon2Hasher(
            time_cost=self._policy.time_cost,
            memory_cost=self._policy.memory_cost,
            parallelism=self._policy.parallelism,
            hash_len=self._policy.hash_len,
            salt_len=self._policy.salt_len,
            type=Type.ID,
        )
        # Verified against when an email is unknown so both paths cost the same
        self._dummy_hash = self._hasher.hash("authgate-timing-equaliser")

    @property
    def policy(self) -> PasswordPolicy:
        return self._policy

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id.

        Args:
            password: Plaintext password

        Returns:
            Encoded hash string (includes algorithm, parameters and salt)
        """
        return self._hasher.hash(password)

    def verify(self, password: str, hash_str: Optional[str]) -> bool:
        """
        Verify a password against an encoded hash.

        Args:
            password: Plaintext password to check
            hash_str: Stored encoded hash

        Returns:
            True if the password matches; False on mismatch, empty input
            or a malformed stored hash
        """
        if not password or not hash_str:
            return False
        try:
            return self._hasher.verify(hash_str, password)
        except (VerificationError, InvalidHashError):
            return False

    def burn(self, password: str) -> None:
        """Spend one verification's worth of CPU without a real hash."""
        self.verify(password or "x", self._dummy_hash)

    def needs_rehash(self, hash_str: str) -> bool:
        """True if the hash was produced with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(hash_str)
        except InvalidHashError:
            return True

    def validate_password(self, password: Optional[str]) -> None:
        """
        Enforce the password length policy.

        Raises:
            ValidationError: If the password is empty or out of bounds
        """
        if not password:
            raise ValidationError("Email and password are required")
        if len(password) < self._policy.min_length:
            raise ValidationError(
                f"Password must be at least {self._policy.min_length} characters")
        if len(password) > self._policy.max_length:
            raise ValidationError(
                f"Password must be at most {self._policy.max_length} characters")
