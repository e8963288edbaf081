"""Protection of MFA material at rest.

- TOTP secrets are encrypted with Fernet (AES-128-CBC + HMAC-SHA256).
- Backup codes are hashed with HMAC-SHA256 keyed by a server-side pepper,
  which keeps the hash deterministic so it can be used as a lookup key.
- Device tokens and fingerprints are stored as SHA-256 digests.
"""

from __future__ import annotations

import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import SecretDecryptionError
from .generator import normalize_candidate


class SecretCipher:
    """Symmetric encryption for TOTP secrets.

    Example:
        ```python
        cipher = SecretCipher(SecretCipher.generate_key())
        token = cipher.encrypt("JBSWY3DPEHPK3PXP...")
        assert cipher.decrypt(token) == "JBSWY3DPEHPK3PXP..."
        ```
    """

    def __init__(self, key: str | bytes) -> None:
        """Initialize the cipher.

        Args:
            key: URL-safe base64-encoded 32-byte Fernet key.

        Raises:
            ValueError: If the key is not a valid Fernet key.
        """
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored secret.

        Raises:
            SecretDecryptionError: If the ciphertext was tampered with or
                encrypted with another key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError) as e:
            # Do not expose decryption details
            raise SecretDecryptionError("Stored MFA secret could not be decrypted") from e


class BackupCodeHasher:
    """Keyed one-way hash for backup codes.

    Codes are normalized first, so "abcd-efgh", "ABCD EFGH" and "ABCDEFGH"
    hash to the same value.
    """

    def __init__(self, pepper: str | bytes) -> None:
        """Initialize the hasher.

        Args:
            pepper: Server-side secret mixed into every hash.

        Raises:
            ValueError: If the pepper is shorter than 16 bytes.
        """
        if isinstance(pepper, str):
            pepper = pepper.encode()
        if len(pepper) < 16:
            raise ValueError("Backup code pepper must be at least 16 bytes")
        self._pepper = pepper

    def hash(self, code: str) -> str:
        normalized = normalize_candidate(code)
        return hmac.new(self._pepper, normalized.encode(), hashlib.sha256).hexdigest()

    def matches(self, code: str, code_hash: str) -> bool:
        return hmac.compare_digest(self.hash(code), code_hash)


def hash_token(token: str) -> str:
    """SHA-256 digest of a high-entropy bearer token."""
    return hashlib.sha256(token.encode()).hexdigest()


__all__: list[str] = ["SecretCipher", "BackupCodeHasher", "hash_token"]
