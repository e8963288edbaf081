"""In-memory audit store for testing and development."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from ..domain import as_utc
from ..ports import IMfaAuditStore
from .events import VERIFICATION_EVENT_TYPES, MfaEventType

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from .events import MfaAuditEvent


class InMemoryMfaAuditStore(IMfaAuditStore):
    """In-memory implementation of IMfaAuditStore.

    Events are kept per account in recording order. Besides the generic
    ``get_events`` query it answers the two questions support staff ask of
    the verification log: what happened on recent logins, and how many
    second-factor failures an account had lately.

    Note:
        Events are stored in memory and will be lost on restart.
        Not suitable for production use.

    Example:
        ```python
        store = InMemoryMfaAuditStore()
        await store.record(verified_event("acct-1", "totp"))
        log = await store.get_verification_log("acct-1")
        ```
    """

    def __init__(self) -> None:
        self._by_account: dict[str, list[MfaAuditEvent]] = defaultdict(list)

    async def record(self, event: MfaAuditEvent) -> None:
        self._by_account[event.account_id].append(event)

    async def get_events(
        self,
        account_id: str,
        *,
        event_types: list[MfaEventType] | None = None,
        limit: int = 100,
    ) -> list[MfaAuditEvent]:
        """Get audit events for an account, most recent first."""
        results: list[MfaAuditEvent] = []
        for event in reversed(self._by_account.get(account_id, [])):
            if event_types and event.event_type not in event_types:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    async def get_verification_log(
        self,
        account_id: str,
        *,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[MfaAuditEvent]:
        """Second-factor attempts of an account, most recent first.

        Covers successes, failures, rate-limit hits and backup-code use.

        Args:
            account_id: Account identifier.
            since: Only events at or after this time.
            limit: Maximum number of events to return.
        """
        results: list[MfaAuditEvent] = []
        for event in reversed(self._by_account.get(account_id, [])):
            if event.event_type not in VERIFICATION_EVENT_TYPES:
                continue
            if since is not None and as_utc(event.timestamp) < as_utc(since):
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    async def count_recent_failures(
        self, account_id: str, *, at: datetime, window: timedelta
    ) -> int:
        """Count failed verifications in the window ending at ``at``.

        Rate-limit hits are not failures of their own: the attempt behind
        them was never evaluated.
        """
        end = as_utc(at)
        start = end - window
        return sum(
            1
            for event in self._by_account.get(account_id, [])
            if event.event_type is MfaEventType.VERIFICATION_FAILED
            and start <= as_utc(event.timestamp) <= end
        )

    def clear(self) -> None:
        """Clear all stored events (test cleanup)."""
        self._by_account.clear()

    def count(self) -> int:
        return sum(len(events) for events in self._by_account.values())

    def count_by_type(self, event_type: MfaEventType) -> int:
        return sum(
            1
            for events in self._by_account.values()
            for event in events
            if event.event_type is event_type
        )


__all__: list[str] = ["InMemoryMfaAuditStore"]
