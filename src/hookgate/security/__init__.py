"""Hookgate security module.

Provides:
- OAuth install flow with signed state tokens
- Encryption of stored platform access tokens
"""

from hookgate.security.encryption import (
    TokenCipher,
    TokenDecryptionError,
    derive_key,
)

__all__ = [
    "TokenCipher",
    "TokenDecryptionError",
    "derive_key",
]
