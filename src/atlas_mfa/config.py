"""MFA configuration."""

from __future__ import annotations

from dataclasses import dataclass

# Alphabet for backup codes (excludes ambiguous: 0, O, 1, I)
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

TOTP_DIGITS = 6


@dataclass(frozen=True)
class MfaConfig:
    """MFA policy configuration.

    Attributes:
        issuer: Application name shown in authenticator apps.
        totp_interval: TOTP time step in seconds.
        totp_valid_window: Accepted clock drift in steps (±N).
        secret_length: Length of the base32 TOTP secret (32 chars = 160 bits).
        backup_code_count: Number of codes per backup batch.
        backup_code_length: Characters per backup code (without separator).
        max_attempts: Failed verifications allowed per attempt window.
        attempt_window_seconds: Window over which failures are counted.
        pending_session_ttl_seconds: Lifetime of a pending MFA session.
        trusted_device_ttl_days: Lifetime of a trusted device grant.
        revoke_devices_on_disable: Delete trusted devices when MFA is disabled.
    """

    issuer: str = "Atlas Pharma"
    totp_interval: int = 30
    totp_valid_window: int = 1
    secret_length: int = 32
    backup_code_count: int = 10
    backup_code_length: int = 8
    max_attempts: int = 5
    attempt_window_seconds: int = 300  # 5 minutes
    pending_session_ttl_seconds: int = 600  # 10 minutes
    trusted_device_ttl_days: int = 30
    revoke_devices_on_disable: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.issuer:
            raise ValueError("issuer must not be empty")
        if self.totp_interval <= 0:
            raise ValueError("totp_interval must be positive")
        if self.totp_valid_window < 0:
            raise ValueError("totp_valid_window must not be negative")
        # base32 carries 5 bits per character; keep at least 160 bits
        if self.secret_length < 32 or self.secret_length % 8:
            raise ValueError(
                "secret_length must be a multiple of 8 and at least 32 (160 bits)"
            )
        if self.backup_code_count <= 0:
            raise ValueError("backup_code_count must be positive")
        if self.backup_code_length == TOTP_DIGITS or self.backup_code_length < 8:
            raise ValueError(
                "backup_code_length must be at least 8 and differ from TOTP length"
            )
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.attempt_window_seconds <= 0:
            raise ValueError("attempt_window_seconds must be positive")
        if self.pending_session_ttl_seconds <= 0:
            raise ValueError("pending_session_ttl_seconds must be positive")
        if self.trusted_device_ttl_days <= 0:
            raise ValueError("trusted_device_ttl_days must be positive")


__all__: list[str] = ["MfaConfig", "BACKUP_CODE_ALPHABET", "TOTP_DIGITS"]
