"""Tests for the in-memory credential and pending session stores."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from atlas_mfa.adapters.memory import (
    InMemoryCredentialStore,
    InMemoryPendingSessionStore,
)
from atlas_mfa.domain import (
    ConsumeResult,
    MfaCredential,
    PendingMfaSession,
    TrustedDevice,
)
from atlas_mfa.ports import ICredentialStore, IPendingSessionStore
from conftest import T0, FrozenClock

WINDOW = timedelta(minutes=5)


def credential(account_id: str = "acct-1", secret: str = "enc") -> MfaCredential:
    return MfaCredential(
        account_id=account_id, totp_secret_encrypted=secret, enabled=True, enrolled_at=T0
    )


def device(device_id: str = "d-1", token_hash: str = "th-1", days: int = 30) -> TrustedDevice:
    return TrustedDevice(
        device_id=device_id,
        account_id="acct-1",
        token_hash=token_hash,
        trusted_at=T0,
        expires_at=T0 + timedelta(days=days),
    )


class TestInMemoryCredentialStore:
    def test_implements_port(self, store: InMemoryCredentialStore) -> None:
        assert isinstance(store, ICredentialStore)

    @pytest.mark.asyncio
    async def test_commit_enrollment(self, store: InMemoryCredentialStore) -> None:
        await store.commit_enrollment(credential(), ["h1", "h2", "h3"])

        assert await store.get_credential("acct-1") == credential()
        assert await store.count_unconsumed_backup_codes("acct-1") == 3

    @pytest.mark.asyncio
    async def test_commit_enrollment_replaces_previous(
        self, store: InMemoryCredentialStore
    ) -> None:
        await store.commit_enrollment(credential(secret="old"), ["h1", "h2"])
        await store.commit_enrollment(credential(secret="new"), ["h3"])

        stored = await store.get_credential("acct-1")
        assert stored is not None
        assert stored.totp_secret_encrypted == "new"
        assert [c.code_hash for c in await store.list_backup_codes("acct-1")] == ["h3"]

    @pytest.mark.asyncio
    async def test_consume_once(self, store: InMemoryCredentialStore) -> None:
        await store.commit_enrollment(credential(), ["h1", "h2"])

        assert await store.consume_backup_code("acct-1", "h1", T0) is ConsumeResult.CONSUMED
        assert (
            await store.consume_backup_code("acct-1", "h1", T0)
            is ConsumeResult.ALREADY_USED
        )
        assert await store.consume_backup_code("acct-1", "zz", T0) is ConsumeResult.NOT_FOUND
        assert await store.count_unconsumed_backup_codes("acct-1") == 1

        consumed = [c for c in await store.list_backup_codes("acct-1") if c.consumed]
        assert consumed[0].consumed_at == T0

    @pytest.mark.asyncio
    async def test_consume_is_scoped_to_account(
        self, store: InMemoryCredentialStore
    ) -> None:
        await store.commit_enrollment(credential(), ["h1"])

        result = await store.consume_backup_code("acct-2", "h1", T0)

        assert result is ConsumeResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_concurrent_consume_single_winner(
        self, store: InMemoryCredentialStore
    ) -> None:
        await store.commit_enrollment(credential(), ["h1"])

        results = await asyncio.gather(
            *(store.consume_backup_code("acct-1", "h1", T0) for _ in range(5))
        )

        assert results.count(ConsumeResult.CONSUMED) == 1
        assert results.count(ConsumeResult.ALREADY_USED) == 4

    @pytest.mark.asyncio
    async def test_replace_backup_codes(self, store: InMemoryCredentialStore) -> None:
        await store.commit_enrollment(credential(), ["h1", "h2"])
        await store.consume_backup_code("acct-1", "h1", T0)

        await store.replace_backup_codes("acct-1", ["n1", "n2", "n3"])

        assert await store.count_unconsumed_backup_codes("acct-1") == 3
        assert await store.consume_backup_code("acct-1", "h2", T0) is ConsumeResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_credential_removes_codes(
        self, store: InMemoryCredentialStore
    ) -> None:
        await store.commit_enrollment(credential(), ["h1"])

        assert await store.delete_credential("acct-1") is True
        assert await store.get_credential("acct-1") is None
        assert await store.list_backup_codes("acct-1") == []
        assert await store.delete_credential("acct-1") is False

    @pytest.mark.asyncio
    async def test_trusted_devices(self, store: InMemoryCredentialStore) -> None:
        await store.add_trusted_device(device("d-1", "th-1"))
        await store.add_trusted_device(device("d-2", "th-2"))

        found = await store.get_trusted_device_by_token("acct-1", "th-2")
        assert found is not None and found.device_id == "d-2"
        assert await store.get_trusted_device_by_token("acct-2", "th-2") is None
        assert len(await store.list_trusted_devices("acct-1")) == 2

        await store.touch_trusted_device("acct-1", "d-1", T0 + timedelta(days=1))
        touched = await store.get_trusted_device_by_token("acct-1", "th-1")
        assert touched is not None
        assert touched.last_used_at == T0 + timedelta(days=1)

        assert await store.delete_trusted_device("acct-1", "d-1") is True
        assert await store.delete_trusted_device("acct-1", "d-1") is False
        assert await store.delete_trusted_devices("acct-1") == 1
        assert await store.list_trusted_devices("acct-1") == []

    @pytest.mark.asyncio
    async def test_clear(self, store: InMemoryCredentialStore) -> None:
        await store.commit_enrollment(credential(), ["h1"])
        store.clear()
        assert await store.get_credential("acct-1") is None


class TestInMemoryPendingSessionStore:
    def make(self) -> PendingMfaSession:
        return PendingMfaSession(
            session_id="s-1",
            account_id="acct-1",
            issued_at=T0,
            expires_at=T0 + timedelta(minutes=10),
        )

    def test_implements_port(self, sessions: InMemoryPendingSessionStore) -> None:
        assert isinstance(sessions, IPendingSessionStore)

    @pytest.mark.asyncio
    async def test_save_and_get(self, sessions: InMemoryPendingSessionStore) -> None:
        await sessions.save(self.make())
        assert await sessions.get("s-1") == self.make()

        assert await sessions.delete("s-1") is True
        assert await sessions.get("s-1") is None
        assert await sessions.delete("s-1") is False

    @pytest.mark.asyncio
    async def test_expired_session_is_dropped(
        self, sessions: InMemoryPendingSessionStore, clock: FrozenClock
    ) -> None:
        await sessions.save(self.make())
        clock.advance(minutes=11)

        assert await sessions.get("s-1") is None
        assert await sessions.reserve_attempt("s-1", clock(), WINDOW, 5) is None

    @pytest.mark.asyncio
    async def test_save_sweeps_abandoned_sessions(
        self, sessions: InMemoryPendingSessionStore, clock: FrozenClock
    ) -> None:
        await sessions.save(self.make())
        clock.advance(minutes=11)

        await sessions.save(
            self.make().model_copy(
                update={
                    "session_id": "s-2",
                    "issued_at": clock(),
                    "expires_at": clock() + timedelta(minutes=10),
                }
            )
        )

        assert sessions.count() == 1
        assert await sessions.get("s-2") is not None

    @pytest.mark.asyncio
    async def test_reserve_attempt(self, sessions: InMemoryPendingSessionStore) -> None:
        await sessions.save(self.make())

        await sessions.reserve_attempt("s-1", T0, WINDOW, 5)
        updated = await sessions.reserve_attempt(
            "s-1", T0 + timedelta(seconds=10), WINDOW, 5
        )

        assert updated is not None
        assert updated.attempt_count == 2
        assert not updated.locked
        assert await sessions.get("s-1") == updated

    @pytest.mark.asyncio
    async def test_reserve_beyond_limit_locks(
        self, sessions: InMemoryPendingSessionStore
    ) -> None:
        await sessions.save(self.make())

        results = [await sessions.reserve_attempt("s-1", T0, WINDOW, 2) for _ in range(3)]

        assert [r.locked for r in results if r is not None] == [False, False, True]
        stored = await sessions.get("s-1")
        assert stored is not None and stored.locked and stored.attempt_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_reservations_respect_limit(
        self, sessions: InMemoryPendingSessionStore
    ) -> None:
        await sessions.save(self.make())

        results = await asyncio.gather(
            *(sessions.reserve_attempt("s-1", T0, WINDOW, 5) for _ in range(20))
        )

        granted = [r for r in results if r is not None and not r.locked]
        assert len(granted) == 5
        stored = await sessions.get("s-1")
        assert stored is not None and stored.attempt_count == 5 and stored.locked
