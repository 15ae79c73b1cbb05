"""Encryption of stored platform access tokens.

Tokens are sealed with AES-256-GCM before they reach storage.

Stored format (hex fields):

    iv:auth_tag:ciphertext

The key is taken from configuration as UTF-8 text and zero-padded or
truncated to 32 bytes, which keeps tokens sealed by earlier deployments
readable.
"""

from __future__ import annotations

import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16


class TokenDecryptionError(ValueError):
    """Raised when a sealed token cannot be opened."""


def derive_key(key: str | bytes) -> bytes:
    """Pad or truncate a configured key to the AES-256 key size."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    if len(key) < KEY_SIZE:
        return key + b"\x00" * (KEY_SIZE - len(key))
    return key[:KEY_SIZE]


class TokenCipher:
    """Seals and opens access tokens."""

    def __init__(self, key: str | bytes) -> None:
        if not key:
            raise ValueError("TokenCipher requires an encryption key")
        self._aead = AESGCM(derive_key(key))

    def encrypt(self, token: str) -> str:
        iv = os.urandom(IV_SIZE)
        sealed = self._aead.encrypt(iv, token.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, sealed: str) -> str:
        """Open a sealed token.

        Raises:
            TokenDecryptionError: If the value is malformed or was tampered with.
        """
        parts = sealed.split(":")
        if len(parts) != 3:
            raise TokenDecryptionError("Invalid encrypted token format")

        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise TokenDecryptionError("Invalid encrypted token encoding") from e

        if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
            raise TokenDecryptionError("Invalid encrypted token format")

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise TokenDecryptionError("Encrypted token failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenDecryptionError("Decrypted token is not text") from e
