"""MFA domain model.

Immutable value objects for credentials, backup codes, trusted devices and
pending verification sessions. State changes produce new instances via
``model_copy``; persistence is owned by the credential store.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ValueObject(BaseModel):
    """Base class for Value Objects.

    Value objects are immutable and defined by their attributes.
    Equality is structural (all fields compared).
    """

    model_config = ConfigDict(frozen=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        return hash(tuple(sorted((k, repr(v)) for k, v in self.model_dump().items())))


class CandidateKind(str, Enum):
    """Shape of a submitted verification code."""

    TOTP = "totp"
    BACKUP_CODE = "backup_code"


class ConsumeResult(str, Enum):
    """Outcome of an atomic backup-code consumption."""

    CONSUMED = "consumed"
    ALREADY_USED = "already_used"
    NOT_FOUND = "not_found"


class MfaCredential(ValueObject):
    """Per-account TOTP credential.

    The secret is only ever held encrypted; ``enrolled_at`` is set when the
    credential is enabled and never changes afterwards.
    """

    account_id: str
    totp_secret_encrypted: str
    enabled: bool = False
    enrolled_at: datetime | None = None

    @model_validator(mode="after")
    def _check_enrollment(self) -> MfaCredential:
        if self.enabled and self.enrolled_at is None:
            raise ValueError("An enabled credential requires enrolled_at")
        return self


class BackupCode(ValueObject):
    """Hashed single-use recovery code."""

    account_id: str
    code_hash: str
    consumed: bool = False
    consumed_at: datetime | None = None


class TrustedDevice(ValueObject):
    """Trusted-device grant.

    Only hashes of the bearer token and of the client fingerprint are kept.
    ``ip_address``, ``device_name`` and ``user_agent`` are advisory.
    """

    device_id: str
    account_id: str
    token_hash: str
    fingerprint_hash: str | None = None
    device_name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    trusted_at: datetime
    expires_at: datetime
    last_used_at: datetime | None = None

    @model_validator(mode="after")
    def _check_window(self) -> TrustedDevice:
        if as_utc(self.expires_at) <= as_utc(self.trusted_at):
            raise ValueError("expires_at must be after trusted_at")
        return self

    def is_active(self, at: datetime) -> bool:
        """Expired grants are inert."""
        return as_utc(at) < as_utc(self.expires_at)


class PendingMfaSession(ValueObject):
    """Ephemeral state between password acceptance and second factor.

    Failed attempts are counted inside a sliding window that starts with the
    first failure; once the session is locked it stays locked.
    """

    session_id: str
    account_id: str
    issued_at: datetime
    expires_at: datetime
    attempt_count: int = 0
    window_started_at: datetime | None = None
    locked: bool = False

    def is_expired(self, at: datetime) -> bool:
        return as_utc(at) >= as_utc(self.expires_at)

    def attempts_in_window(self, at: datetime, window: timedelta) -> int:
        if self.window_started_at is None:
            return 0
        if as_utc(at) - as_utc(self.window_started_at) > window:
            return 0
        return self.attempt_count

    def with_failure(self, at: datetime, window: timedelta) -> PendingMfaSession:
        """Return a copy with one more failed attempt recorded."""
        current = self.attempts_in_window(at, window)
        if current == 0:
            return self.model_copy(update={"attempt_count": 1, "window_started_at": at})
        return self.model_copy(update={"attempt_count": current + 1})

    def with_lock(self) -> PendingMfaSession:
        return self.model_copy(update={"locked": True})

    def with_reserved_attempt(
        self, at: datetime, window: timedelta, max_attempts: int
    ) -> PendingMfaSession:
        """Claim one attempt before the code is evaluated.

        Returns a locked copy once ``max_attempts`` attempts have already
        been claimed inside the window; a locked session stays locked.
        """
        if self.locked:
            return self
        if self.attempts_in_window(at, window) >= max_attempts:
            return self.with_lock()
        return self.with_failure(at, window)


class MfaStatus(ValueObject):
    """Account-level MFA summary for settings screens."""

    enabled: bool
    enrolled_at: datetime | None = None
    backup_codes_remaining: int = 0
    trusted_device_count: int = 0


class EnrollmentTicket(ValueObject):
    """Unpersisted enrollment material returned by ``start_enrollment``.

    Attributes:
        secret: Base32 TOTP secret (shown once).
        provisioning_uri: otpauth:// URI for QR rendering.
        manual_key: Secret grouped by 4 characters for manual entry.
        backup_codes: Plaintext backup codes (shown once).
    """

    secret: str
    provisioning_uri: str
    manual_key: str
    backup_codes: tuple[str, ...]


class IssuedDeviceToken(ValueObject):
    """Bearer token for a freshly trusted device (returned once)."""

    device_id: str
    token: str
    expires_at: datetime


class VerificationResult(ValueObject):
    """Outcome of a successful second-factor verification."""

    success: bool = True
    account_id: str
    method: CandidateKind
    trusted_device_token: str | None = None
    trusted_device_id: str | None = None
    backup_codes_remaining: int | None = None


__all__: list[str] = [
    "utc_now",
    "as_utc",
    "ValueObject",
    "CandidateKind",
    "ConsumeResult",
    "MfaCredential",
    "BackupCode",
    "TrustedDevice",
    "PendingMfaSession",
    "MfaStatus",
    "EnrollmentTicket",
    "IssuedDeviceToken",
    "VerificationResult",
]
