"""MFA ports (protocols).

Applications implement these interfaces (or use the bundled adapters) to
plug the MFA subsystem into their own identity system and database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime, timedelta

    from .audit.events import MfaAuditEvent, MfaEventType
    from .domain import (
        BackupCode,
        ConsumeResult,
        MfaCredential,
        PendingMfaSession,
        TrustedDevice,
    )


@runtime_checkable
class IIdentityGateway(Protocol):
    """Protocol for the external identity/session system.

    ``reauthenticate`` is the only password-touching boundary of the MFA
    subsystem.
    """

    async def reauthenticate(self, account_id: str, password: str) -> bool:
        """Check the account's current password.

        Args:
            account_id: Account identifier.
            password: Plaintext password supplied by the user.

        Returns:
            True if the password is correct.
        """
        ...

    async def issue_session_token(self, account_id: str) -> str:
        """Issue the final session token after MFA completes.

        Args:
            account_id: Account identifier.

        Returns:
            Session token.
        """
        ...


@runtime_checkable
class ICredentialStore(Protocol):
    """Protocol for MFA credential persistence.

    The store exclusively owns credentials, backup codes and trusted
    devices. Secrets arrive already encrypted and codes already hashed:
    implementations never see plaintext.
    """

    async def get_credential(self, account_id: str) -> MfaCredential | None:
        """Get the credential for an account, or None."""
        ...

    async def commit_enrollment(
        self, credential: MfaCredential, code_hashes: Sequence[str]
    ) -> None:
        """Atomically write the credential and a fresh backup batch.

        Any previous credential and backup codes for the account are
        replaced within the same transaction.

        Args:
            credential: Enabled credential with encrypted secret.
            code_hashes: Hashes of the new backup codes.
        """
        ...

    async def delete_credential(self, account_id: str) -> bool:
        """Delete the credential and all backup codes atomically.

        Returns:
            True if a credential existed.
        """
        ...

    async def replace_backup_codes(
        self, account_id: str, code_hashes: Sequence[str]
    ) -> None:
        """Invalidate the whole backup batch and store a new one atomically."""
        ...

    async def consume_backup_code(
        self, account_id: str, code_hash: str, at: datetime
    ) -> ConsumeResult:
        """Compare-and-set a backup code from unconsumed to consumed.

        Must be a single atomic operation: of two concurrent calls with the
        same code exactly one returns CONSUMED.

        Args:
            account_id: Account identifier.
            code_hash: Hash of the submitted code.
            at: Consumption time.

        Returns:
            CONSUMED, ALREADY_USED or NOT_FOUND.
        """
        ...

    async def list_backup_codes(self, account_id: str) -> list[BackupCode]:
        """List all backup codes (hashed) for an account."""
        ...

    async def count_unconsumed_backup_codes(self, account_id: str) -> int:
        """Count remaining backup codes."""
        ...

    async def add_trusted_device(self, device: TrustedDevice) -> None:
        """Persist a trusted-device grant."""
        ...

    async def get_trusted_device_by_token(
        self, account_id: str, token_hash: str
    ) -> TrustedDevice | None:
        """Look up a device grant by token hash (expired grants included)."""
        ...

    async def list_trusted_devices(self, account_id: str) -> list[TrustedDevice]:
        """List device grants for an account (expired grants included)."""
        ...

    async def touch_trusted_device(
        self, account_id: str, device_id: str, at: datetime
    ) -> None:
        """Record the last time a device grant was used."""
        ...

    async def delete_trusted_device(self, account_id: str, device_id: str) -> bool:
        """Delete one device grant. Returns True if it existed."""
        ...

    async def delete_trusted_devices(self, account_id: str) -> int:
        """Delete every device grant for an account. Returns the count."""
        ...


@runtime_checkable
class IPendingSessionStore(Protocol):
    """Protocol for pending MFA session storage.

    Sessions are short-lived; implementations should drop them once
    ``expires_at`` has passed (Redis TTL or lazy expiry).
    """

    async def save(self, session: PendingMfaSession) -> None:
        """Store or replace a pending session."""
        ...

    async def get(self, session_id: str) -> PendingMfaSession | None:
        """Get a pending session, or None if absent."""
        ...

    async def delete(self, session_id: str) -> bool:
        """Delete a pending session.

        Returns:
            True if this call removed it. Of two concurrent deletes of the
            same session exactly one returns True.
        """
        ...

    async def reserve_attempt(
        self,
        session_id: str,
        at: datetime,
        window: timedelta,
        max_attempts: int,
    ) -> PendingMfaSession | None:
        """Atomically claim one verification attempt against a session.

        Read, limit check and increment must be a single atomic step so
        that concurrent submissions on one session can never evaluate more
        than ``max_attempts`` codes per window. When the limit has already
        been reached the session is locked instead (terminal).

        Args:
            session_id: Pending session id.
            at: Attempt time.
            window: Failed-attempt window.
            max_attempts: Attempts allowed per window.

        Returns:
            The updated session (check ``locked``), or None if it no longer
            exists or has expired.
        """
        ...


@runtime_checkable
class IMfaAuditStore(Protocol):
    """Protocol for MFA audit event storage."""

    async def record(self, event: MfaAuditEvent) -> None:
        """Record an audit event."""
        ...

    async def get_events(
        self,
        account_id: str,
        *,
        event_types: list[MfaEventType] | None = None,
        limit: int = 100,
    ) -> list[MfaAuditEvent]:
        """Get events for an account, most recent first."""
        ...


__all__: list[str] = [
    "IIdentityGateway",
    "ICredentialStore",
    "IPendingSessionStore",
    "IMfaAuditStore",
]
