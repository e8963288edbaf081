"""MFA audit events and stores."""

from .events import (
    FAILURE_EVENT_TYPES,
    VERIFICATION_EVENT_TYPES,
    MfaAuditEvent,
    MfaEventType,
    device_trusted_event,
    enrolled_event,
    rate_limited_event,
    verification_failed_event,
    verified_event,
)
from .memory import InMemoryMfaAuditStore

__all__: list[str] = [
    "MfaAuditEvent",
    "MfaEventType",
    "FAILURE_EVENT_TYPES",
    "VERIFICATION_EVENT_TYPES",
    "InMemoryMfaAuditStore",
    "enrolled_event",
    "verified_event",
    "verification_failed_event",
    "rate_limited_event",
    "device_trusted_event",
]
