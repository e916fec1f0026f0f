"""
TOTP Seed Encryption at Rest

Encrypts TOTP seeds before they are placed in session state or the user
record. Every key is a SHA-256 digest of a configured passphrase; several
keys can be held at once so that old ciphertexts stay readable while new
ones are written under the active key.

Token formats (both split on the first ':'):

    AEAD (written by encrypt):
        <key_id>$<hex nonce>:<hex ciphertext || tag>
        AES-256-GCM, 96-bit random nonce, key id bound as associated data

    Legacy (written by encrypt_legacy, read for compatibility):
        <hex iv>:<hex ciphertext>
        AES-256-CBC, 128-bit random IV, PKCS7 padding, no authentication

Security considerations:
- Fresh random nonce/IV per call, so identical plaintexts never match
- Any failure to decrypt raises DecryptionError; callers fail closed
- Legacy tokens are unauthenticated and should be rotated away
"""

import hashlib
import secrets
from typing import Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import CipherConfig
from ..errors import DecryptionError


NONCE_SIZE = 12     # 96-bit nonce for GCM
IV_SIZE = 16        # 128-bit IV for CBC
TAG_SIZE = 16       # 128-bit GCM tag
BLOCK_BITS = 128    # AES block size for PKCS7

KEY_ID_SEPARATOR = '$'
PART_SEPARATOR = ':'


def derive_key(passphrase: str) -> bytes:
    """
    Turn a configured passphrase into a 256-bit key.

    Args:
        passphrase: Configured passphrase

    Returns:
        32-byte SHA-256 digest of the UTF-8 passphrase
    """
    return hashlib.sha256(passphrase.encode('utf-8')).digest()


class SecretCipher:
    """
    Symmetric cipher for TOTP seeds with a rotating keyring.

    Example:
        >>> cipher = SecretCipher({"k1": "passphrase"}, active_key_id="k1")
        >>> token = cipher.encrypt("JBSWY3DPEHPK3PXP")
        >>> cipher.decrypt(token)
        'JBSWY3DPEHPK3PXP'
    """

    def __init__(self, keys: Mapping[str, str], active_key_id: str,
                 legacy_key_id: Optional[str] = None):
        """
        Args:
            keys: Mapping of key id to passphrase
            active_key_id: Key id used for new ciphertexts
            legacy_key_id: Key id used for legacy CBC tokens (None refuses them)
        """
        if active_key_id not in keys:
            raise ValueError(f"Active key id '{active_key_id}' is not in the keyring")
        if legacy_key_id is not None and legacy_key_id not in keys:
            raise ValueError(f"Legacy key id '{legacy_key_id}' is not in the keyring")

        self._keys = {key_id: derive_key(p) for key_id, p in keys.items()}
        self._active_key_id = active_key_id
        self._legacy_key_id = legacy_key_id

    @classmethod
    def from_config(cls, config: CipherConfig) -> 'SecretCipher':
        return cls(config.keys, config.active_key_id, config.legacy_key_id)

    @property
    def active_key_id(self) -> str:
        return self._active_key_id

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt under the active key with AES-256-GCM.

        Args:
            plaintext: Text to encrypt (a base32 seed in practice)

        Returns:
            Token "<key_id>$<hex nonce>:<hex ciphertext||tag>"
        """
        key_id = self._active_key_id
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = AESGCM(self._keys[key_id]).encrypt(
            nonce, plaintext.encode('utf-8'), key_id.encode('utf-8'))
        return f"{key_id}{KEY_ID_SEPARATOR}{nonce.hex()}{PART_SEPARATOR}{ciphertext.hex()}"

    def encrypt_legacy(self, plaintext: str) -> str:
        """
        Encrypt in the legacy AES-256-CBC format "<hex iv>:<hex ciphertext>".

        Raises:
            ValueError: If no legacy key id is configured
        """
        if self._legacy_key_id is None:
            raise ValueError("No legacy key configured")

        iv = secrets.token_bytes(IV_SIZE)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._keys[self._legacy_key_id]), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}{PART_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token in either format.

        Args:
            token: Ciphertext produced by encrypt or encrypt_legacy

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionError: On malformed input, unknown key, failed
                authentication, bad padding or non-UTF-8 output
        """
        if not isinstance(token, str):
            raise DecryptionError()

        head, sep, body = token.partition(PART_SEPARATOR)
        if not sep or not head or not body:
            raise DecryptionError("Malformed ciphertext")

        if KEY_ID_SEPARATOR in head:
            plaintext = self._decrypt_aead(head, body)
        else:
            plaintext = self._decrypt_legacy(head, body)

        try:
            return plaintext.decode('utf-8')
        except UnicodeDecodeError:
            raise DecryptionError() from None

    def needs_rotation(self, token: str) -> bool:
        """True for legacy tokens and tokens under a non-active key."""
        head, _, _ = token.partition(PART_SEPARATOR)
        if KEY_ID_SEPARATOR not in head:
            return True
        key_id, _, _ = head.partition(KEY_ID_SEPARATOR)
        return key_id != self._active_key_id

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the active key (no-op if already current)."""
        if not self.needs_rotation(token):
            return token
        return self.encrypt(self.decrypt(token))

    def _decrypt_aead(self, head: str, body: str) -> bytes:
        key_id, _, nonce_hex = head.partition(KEY_ID_SEPARATOR)
        key = self._keys.get(key_id)
        if key is None:
            raise DecryptionError("Unknown encryption key")

        nonce, ciphertext = _unhex(nonce_hex), _unhex(body)
        if len(nonce) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
            raise DecryptionError("Malformed ciphertext")

        try:
            return AESGCM(key).decrypt(nonce, ciphertext, key_id.encode('utf-8'))
        except InvalidTag:
            raise DecryptionError() from None

    def _decrypt_legacy(self, iv_hex: str, body: str) -> bytes:
        if self._legacy_key_id is None:
            raise DecryptionError("Legacy ciphertexts are not accepted")

        iv, ciphertext = _unhex(iv_hex), _unhex(body)
        if len(iv) != IV_SIZE or not ciphertext or len(ciphertext) % IV_SIZE:
            raise DecryptionError("Malformed ciphertext")

        decryptor = Cipher(algorithms.AES(self._keys[self._legacy_key_id]), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptionError() from None


def _unhex(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise DecryptionError("Malformed ciphertext") from None
