"""Tests for secret encryption and backup-code hashing."""

from __future__ import annotations

import pytest

from atlas_mfa.crypto import BackupCodeHasher, SecretCipher, hash_token
from atlas_mfa.exceptions import SecretDecryptionError
from conftest import PEPPER, SECRET


class TestSecretCipher:
    def test_encrypt_then_decrypt(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt(SECRET)

        assert SECRET not in token
        assert cipher.decrypt(token) == SECRET

    def test_ciphertext_is_randomized(self, cipher: SecretCipher) -> None:
        assert cipher.encrypt(SECRET) != cipher.encrypt(SECRET)

    def test_wrong_key_raises(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt(SECRET)
        other = SecretCipher(SecretCipher.generate_key())

        with pytest.raises(SecretDecryptionError):
            other.decrypt(token)

    def test_tampered_ciphertext_raises(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt(SECRET)
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")

        with pytest.raises(SecretDecryptionError):
            cipher.decrypt(tampered)

    def test_invalid_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            SecretCipher("too-short")

    def test_accepts_bytes_key(self) -> None:
        key = SecretCipher.generate_key().encode()
        assert SecretCipher(key).decrypt(SecretCipher(key).encrypt("x")) == "x"


class TestBackupCodeHasher:
    def test_hash_is_normalized(self, hasher: BackupCodeHasher) -> None:
        assert hasher.hash("ABCD-EFGH") == hasher.hash("abcdefgh")
        assert hasher.hash("ABCD-EFGH") == hasher.hash(" abcd efgh ")

    def test_hash_is_not_plaintext(self, hasher: BackupCodeHasher) -> None:
        digest = hasher.hash("ABCD-EFGH")
        assert "ABCDEFGH" not in digest
        assert len(digest) == 64

    def test_pepper_changes_hash(self, hasher: BackupCodeHasher) -> None:
        other = BackupCodeHasher("another-pepper-value-123456")
        assert hasher.hash("ABCD-EFGH") != other.hash("ABCD-EFGH")

    def test_matches(self, hasher: BackupCodeHasher) -> None:
        digest = hasher.hash("ABCD-EFGH")
        assert hasher.matches("abcd-efgh", digest)
        assert not hasher.matches("ABCD-EFGJ", digest)

    def test_short_pepper_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least 16 bytes"):
            BackupCodeHasher("short")

    def test_bytes_pepper(self) -> None:
        assert BackupCodeHasher(PEPPER.encode()).hash("X") == BackupCodeHasher(PEPPER).hash("X")


def test_hash_token_is_sha256_hex() -> None:
    digest = hash_token("device-token")

    assert digest == hash_token("device-token")
    assert digest != hash_token("device-token2")
    assert len(digest) == 64
