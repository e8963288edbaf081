"""SQLAlchemy models for MFA persistence.

Only ciphertext and hashes are stored: the TOTP secret is Fernet-encrypted,
backup codes and device tokens are one-way hashed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for the MFA tables."""


class MfaCredentialModel(Base):
    """One TOTP credential per account."""

    __tablename__ = "mfa_credentials"

    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    totp_secret_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    enrolled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class BackupCodeModel(Base):
    """Hashed single-use recovery code."""

    __tablename__ = "mfa_backup_codes"

    account_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("mfa_credentials.account_id", ondelete="CASCADE"),
        primary_key=True,
    )
    code_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class TrustedDeviceModel(Base):
    """Trusted-device grant."""

    __tablename__ = "mfa_trusted_devices"

    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    device_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    fingerprint_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    trusted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_mfa_trusted_devices_expiry", "account_id", "expires_at"),)


__all__: list[str] = [
    "Base",
    "MfaCredentialModel",
    "BackupCodeModel",
    "TrustedDeviceModel",
]
