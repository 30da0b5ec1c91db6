"""Symmetric encryption for marketplace credentials stored at rest."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenDecryptionError(ValueError):
    """Raised when a stored credential cannot be decrypted with the current key."""


class TokenCipherService:
    """
    Encrypt and decrypt access and refresh tokens with a derived Fernet key.

    The key is the SHA-256 digest of the configured secret, so rotating the
    secret makes previously stored tokens unreadable and users must re-link.
    """

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenDecryptionError(
                "Stored token could not be decrypted; was the secret rotated?"
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService", "TokenDecryptionError"]
