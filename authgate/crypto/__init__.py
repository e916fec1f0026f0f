# Crypto Module
"""
Encryption at rest for TOTP seeds (AES-256-GCM, legacy AES-256-CBC read path).
"""

from .secret_cipher import SecretCipher, derive_key

__all__ = [
    'SecretCipher',
    'derive_key',
]
