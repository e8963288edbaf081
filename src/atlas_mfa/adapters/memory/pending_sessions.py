"""In-memory pending MFA session store for development and testing.

WARNING: This implementation is NOT suitable for production use.
It stores data in memory and will NOT work with multiple workers.

Use a Redis-backed IPendingSessionStore in production.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ...ports import IPendingSessionStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import timedelta

    from ...domain import PendingMfaSession


class InMemoryPendingSessionStore(IPendingSessionStore):
    """In-memory pending session store with lazy expiry.

    Expired sessions are dropped when looked up and swept on every ``save``,
    so abandoned logins do not accumulate.

    ⚠️ WARNING: Stores sessions in a local dictionary. It will NOT work in
    multi-worker environments (Gunicorn/Uvicorn with workers>1).
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize the store.

        Args:
            clock: Time source used for expiry checks (default UTC now).
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._sessions: dict[str, PendingMfaSession] = {}

    def _live(self, session_id: str) -> PendingMfaSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            del self._sessions[session_id]
            return None
        return session

    def _sweep(self) -> None:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for session_id in expired:
            del self._sessions[session_id]

    async def save(self, session: PendingMfaSession) -> None:
        async with self._lock:
            self._sweep()
            self._sessions[session.session_id] = session

    async def get(self, session_id: str) -> PendingMfaSession | None:
        return self._live(session_id)

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def reserve_attempt(
        self,
        session_id: str,
        at: datetime,
        window: timedelta,
        max_attempts: int,
    ) -> PendingMfaSession | None:
        async with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            updated = session.with_reserved_attempt(at, window, max_attempts)
            self._sessions[session_id] = updated
            return updated

    def count(self) -> int:
        return len(self._sessions)


__all__: list[str] = ["InMemoryPendingSessionStore"]
