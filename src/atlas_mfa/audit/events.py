"""Audit events for MFA operations.

Enrollment, verification and trusted-device activity is recorded as
structured events so that security monitoring can follow the lifecycle of
each account's second factor. Events never carry codes, secrets or tokens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MfaEventType(Enum):
    """Types of MFA audit events.

    Event naming follows the pattern: `mfa.<resource>.<action>`
    """

    # Enrollment log
    ENROLLMENT_STARTED = "mfa.enrollment.started"
    ENROLLED = "mfa.enrollment.completed"
    ENROLLMENT_FAILED = "mfa.enrollment.failed"
    DISABLED = "mfa.credential.disabled"
    BACKUP_CODES_REGENERATED = "mfa.backup_codes.regenerated"

    # Verification log
    VERIFIED = "mfa.verification.success"
    VERIFICATION_FAILED = "mfa.verification.failed"
    RATE_LIMITED = "mfa.verification.rate_limited"
    BACKUP_CODE_USED = "mfa.backup_code.used"

    # Trusted devices
    DEVICE_TRUSTED = "mfa.device.trusted"
    DEVICE_REVOKED = "mfa.device.revoked"
    TRUSTED_DEVICE_LOGIN = "mfa.device.login"


FAILURE_EVENT_TYPES = frozenset(
    {
        MfaEventType.ENROLLMENT_FAILED,
        MfaEventType.VERIFICATION_FAILED,
        MfaEventType.RATE_LIMITED,
    }
)

VERIFICATION_EVENT_TYPES = frozenset(
    {
        MfaEventType.VERIFIED,
        MfaEventType.VERIFICATION_FAILED,
        MfaEventType.RATE_LIMITED,
        MfaEventType.BACKUP_CODE_USED,
    }
)


@dataclass(frozen=True)
class MfaAuditEvent:
    """MFA audit event.

    Attributes:
        event_type: The type of MFA event.
        account_id: The account the event belongs to.
        timestamp: When the event occurred (UTC).
        method: Verification method ("totp", "backup_code") if relevant.
        device_id: Trusted device involved, if any.
        ip_address: Client IP address (if available).
        user_agent: Client user agent string (if available).
        success: Whether the operation was successful.
        error_code: Error code if operation failed.
        metadata: Additional event-specific data.
    """

    event_type: MfaEventType
    account_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    method: str | None = None
    device_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    success: bool = True
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event data."""
        if not self.success and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "account_id": self.account_id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "device_id": self.device_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "success": self.success,
            "error_code": self.error_code,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MfaAuditEvent:
        """Create event from dictionary.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        event_type_str = data.get("event_type")
        if event_type_str is None:
            raise ValueError("Missing required 'event_type'")
        account_id = data.get("account_id")
        if not account_id:
            raise ValueError("Missing required 'account_id'")

        try:
            event_type = MfaEventType(event_type_str)
        except ValueError as e:
            raise ValueError(f"Invalid event_type: {event_type_str}") from e

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
        elif timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            event_type=event_type,
            account_id=account_id,
            timestamp=timestamp,
            method=data.get("method"),
            device_id=data.get("device_id"),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            success=data.get("success", True),
            error_code=data.get("error_code"),
            metadata=data.get("metadata", {}),
        )


# ═══════════════════════════════════════════════════════════════
# EVENT FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════


def enrolled_event(
    account_id: str,
    *,
    timestamp: datetime | None = None,
    backup_codes: int = 0,
) -> MfaAuditEvent:
    """Create an enrollment completed event."""
    return MfaAuditEvent(
        event_type=MfaEventType.ENROLLED,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        method="totp",
        metadata={"backup_codes": backup_codes},
    )


def verified_event(
    account_id: str,
    method: str,
    *,
    timestamp: datetime | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> MfaAuditEvent:
    """Create a successful verification event."""
    return MfaAuditEvent(
        event_type=MfaEventType.VERIFIED,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        method=method,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def verification_failed_event(
    account_id: str,
    method: str | None,
    error_code: str,
    *,
    timestamp: datetime | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    attempt_count: int | None = None,
) -> MfaAuditEvent:
    """Create a failed verification event."""
    return MfaAuditEvent(
        event_type=MfaEventType.VERIFICATION_FAILED,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        method=method,
        ip_address=ip_address,
        user_agent=user_agent,
        success=False,
        error_code=error_code,
        metadata={"attempt_count": attempt_count} if attempt_count else {},
    )


def rate_limited_event(
    account_id: str,
    *,
    timestamp: datetime | None = None,
    ip_address: str | None = None,
    failed_attempts: int | None = None,
) -> MfaAuditEvent:
    """Create a rate-limited event."""
    return MfaAuditEvent(
        event_type=MfaEventType.RATE_LIMITED,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        ip_address=ip_address,
        success=False,
        error_code="RATE_LIMITED",
        metadata={"failed_attempts": failed_attempts},
    )


def device_trusted_event(
    account_id: str,
    device_id: str,
    *,
    timestamp: datetime | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    expires_at: datetime | None = None,
) -> MfaAuditEvent:
    """Create a trusted device added event."""
    return MfaAuditEvent(
        event_type=MfaEventType.DEVICE_TRUSTED,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        device_id=device_id,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata={"expires_at": expires_at.isoformat()} if expires_at else {},
    )


__all__: list[str] = [
    "MfaEventType",
    "MfaAuditEvent",
    "FAILURE_EVENT_TYPES",
    "VERIFICATION_EVENT_TYPES",
    "enrolled_event",
    "verified_event",
    "verification_failed_event",
    "rate_limited_event",
    "device_trusted_event",
]
