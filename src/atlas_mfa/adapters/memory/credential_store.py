"""Dict-backed credential store for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ...domain import BackupCode, ConsumeResult
from ...ports import ICredentialStore

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from ...domain import MfaCredential, TrustedDevice


class InMemoryCredentialStore(ICredentialStore):
    """In-memory credential store for TESTING and development.

    All mutations run under a single ``asyncio.Lock`` so compare-and-set
    operations behave like the transactional SQL adapter within one event
    loop. Will NOT work across processes.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._credentials: dict[str, MfaCredential] = {}
        self._codes: dict[str, dict[str, BackupCode]] = {}
        self._devices: dict[str, dict[str, TrustedDevice]] = {}

    # ── Credentials ──────────────────────────────────────────────

    async def get_credential(self, account_id: str) -> MfaCredential | None:
        return self._credentials.get(account_id)

    async def commit_enrollment(
        self, credential: MfaCredential, code_hashes: Sequence[str]
    ) -> None:
        async with self._lock:
            self._credentials[credential.account_id] = credential
            self._codes[credential.account_id] = self._new_batch(
                credential.account_id, code_hashes
            )

    async def delete_credential(self, account_id: str) -> bool:
        async with self._lock:
            self._codes.pop(account_id, None)
            return self._credentials.pop(account_id, None) is not None

    # ── Backup codes ─────────────────────────────────────────────

    @staticmethod
    def _new_batch(account_id: str, code_hashes: Sequence[str]) -> dict[str, BackupCode]:
        return {h: BackupCode(account_id=account_id, code_hash=h) for h in code_hashes}

    async def replace_backup_codes(
        self, account_id: str, code_hashes: Sequence[str]
    ) -> None:
        async with self._lock:
            self._codes[account_id] = self._new_batch(account_id, code_hashes)

    async def consume_backup_code(
        self, account_id: str, code_hash: str, at: datetime
    ) -> ConsumeResult:
        async with self._lock:
            code = self._codes.get(account_id, {}).get(code_hash)
            if code is None:
                return ConsumeResult.NOT_FOUND
            if code.consumed:
                return ConsumeResult.ALREADY_USED
            self._codes[account_id][code_hash] = code.model_copy(
                update={"consumed": True, "consumed_at": at}
            )
            return ConsumeResult.CONSUMED

    async def list_backup_codes(self, account_id: str) -> list[BackupCode]:
        return list(self._codes.get(account_id, {}).values())

    async def count_unconsumed_backup_codes(self, account_id: str) -> int:
        return sum(1 for c in self._codes.get(account_id, {}).values() if not c.consumed)

    # ── Trusted devices ──────────────────────────────────────────

    async def add_trusted_device(self, device: TrustedDevice) -> None:
        async with self._lock:
            self._devices.setdefault(device.account_id, {})[device.device_id] = device

    async def get_trusted_device_by_token(
        self, account_id: str, token_hash: str
    ) -> TrustedDevice | None:
        for device in self._devices.get(account_id, {}).values():
            if device.token_hash == token_hash:
                return device
        return None

    async def list_trusted_devices(self, account_id: str) -> list[TrustedDevice]:
        return list(self._devices.get(account_id, {}).values())

    async def touch_trusted_device(
        self, account_id: str, device_id: str, at: datetime
    ) -> None:
        async with self._lock:
            devices = self._devices.get(account_id, {})
            device = devices.get(device_id)
            if device is not None:
                devices[device_id] = device.model_copy(update={"last_used_at": at})

    async def delete_trusted_device(self, account_id: str, device_id: str) -> bool:
        async with self._lock:
            return self._devices.get(account_id, {}).pop(device_id, None) is not None

    async def delete_trusted_devices(self, account_id: str) -> int:
        async with self._lock:
            return len(self._devices.pop(account_id, {}))

    # ── Test helpers ─────────────────────────────────────────────

    def clear(self) -> None:
        """Clear all stored data (test cleanup)."""
        self._credentials.clear()
        self._codes.clear()
        self._devices.clear()


__all__: list[str] = ["InMemoryCredentialStore"]
