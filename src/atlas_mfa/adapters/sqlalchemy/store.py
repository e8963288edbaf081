"""SQLAlchemy implementation of the MFA credential store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from ...domain import BackupCode, ConsumeResult, MfaCredential, TrustedDevice, as_utc
from ...exceptions import CredentialStoreError
from ...ports import ICredentialStore
from .models import BackupCodeModel, MfaCredentialModel, TrustedDeviceModel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def _opt_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _to_credential(model: MfaCredentialModel) -> MfaCredential:
    return MfaCredential(
        account_id=model.account_id,
        totp_secret_encrypted=model.totp_secret_encrypted,
        enabled=model.enabled,
        enrolled_at=_opt_utc(model.enrolled_at),
    )


def _to_backup_code(model: BackupCodeModel) -> BackupCode:
    return BackupCode(
        account_id=model.account_id,
        code_hash=model.code_hash,
        consumed=model.consumed,
        consumed_at=_opt_utc(model.consumed_at),
    )


def _to_device(model: TrustedDeviceModel) -> TrustedDevice:
    return TrustedDevice(
        device_id=model.device_id,
        account_id=model.account_id,
        token_hash=model.token_hash,
        fingerprint_hash=model.fingerprint_hash,
        device_name=model.device_name,
        ip_address=model.ip_address,
        user_agent=model.user_agent,
        trusted_at=as_utc(model.trusted_at),
        expires_at=as_utc(model.expires_at),
        last_used_at=_opt_utc(model.last_used_at),
    )


class SQLAlchemyCredentialStore(ICredentialStore):
    """
    Credential store backed by SQLAlchemy async sessions.

    Every operation runs in its own transaction. Multi-row writes
    (enrollment, disable, backup regeneration) commit or roll back as a
    whole; backup-code consumption is a single conditional UPDATE whose
    row count decides the winner between concurrent submissions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.exception("MFA credential store failed to %s", operation)
            raise CredentialStoreError(f"Failed to {operation}: {e}") from e

    # ── Credentials ──────────────────────────────────────────────

    async def get_credential(self, account_id: str) -> MfaCredential | None:
        async with self._transaction("load credential") as session:
            model = await session.get(MfaCredentialModel, account_id)
            return _to_credential(model) if model is not None else None

    async def commit_enrollment(
        self, credential: MfaCredential, code_hashes: Sequence[str]
    ) -> None:
        async with self._transaction("commit enrollment") as session:
            await session.execute(
                delete(BackupCodeModel).where(
                    BackupCodeModel.account_id == credential.account_id
                )
            )
            await session.merge(
                MfaCredentialModel(
                    account_id=credential.account_id,
                    totp_secret_encrypted=credential.totp_secret_encrypted,
                    enabled=credential.enabled,
                    enrolled_at=credential.enrolled_at,
                )
            )
            # Parent row first so the backup-code FK is satisfied.
            await session.flush()
            session.add_all(
                BackupCodeModel(account_id=credential.account_id, code_hash=h)
                for h in code_hashes
            )

    async def delete_credential(self, account_id: str) -> bool:
        async with self._transaction("delete credential") as session:
            await session.execute(
                delete(BackupCodeModel).where(BackupCodeModel.account_id == account_id)
            )
            result = await session.execute(
                delete(MfaCredentialModel).where(
                    MfaCredentialModel.account_id == account_id
                )
            )
            return bool(result.rowcount)

    # ── Backup codes ─────────────────────────────────────────────

    async def replace_backup_codes(
        self, account_id: str, code_hashes: Sequence[str]
    ) -> None:
        async with self._transaction("replace backup codes") as session:
            await session.execute(
                delete(BackupCodeModel).where(BackupCodeModel.account_id == account_id)
            )
            session.add_all(
                BackupCodeModel(account_id=account_id, code_hash=h) for h in code_hashes
            )

    async def consume_backup_code(
        self, account_id: str, code_hash: str, at: datetime
    ) -> ConsumeResult:
        async with self._transaction("consume backup code") as session:
            result = await session.execute(
                update(BackupCodeModel)
                .where(
                    BackupCodeModel.account_id == account_id,
                    BackupCodeModel.code_hash == code_hash,
                    BackupCodeModel.consumed.is_(False),
                )
                .values(consumed=True, consumed_at=at)
            )
            if result.rowcount == 1:
                return ConsumeResult.CONSUMED

            exists = await session.scalar(
                select(func.count())
                .select_from(BackupCodeModel)
                .where(
                    BackupCodeModel.account_id == account_id,
                    BackupCodeModel.code_hash == code_hash,
                )
            )
            return ConsumeResult.ALREADY_USED if exists else ConsumeResult.NOT_FOUND

    async def list_backup_codes(self, account_id: str) -> list[BackupCode]:
        async with self._transaction("list backup codes") as session:
            result = await session.execute(
                select(BackupCodeModel).where(BackupCodeModel.account_id == account_id)
            )
            return [_to_backup_code(m) for m in result.scalars().all()]

    async def count_unconsumed_backup_codes(self, account_id: str) -> int:
        async with self._transaction("count backup codes") as session:
            count = await session.scalar(
                select(func.count())
                .select_from(BackupCodeModel)
                .where(
                    BackupCodeModel.account_id == account_id,
                    BackupCodeModel.consumed.is_(False),
                )
            )
            return int(count or 0)

    # ── Trusted devices ──────────────────────────────────────────

    async def add_trusted_device(self, device: TrustedDevice) -> None:
        async with self._transaction("add trusted device") as session:
            session.add(
                TrustedDeviceModel(
                    account_id=device.account_id,
                    device_id=device.device_id,
                    token_hash=device.token_hash,
                    fingerprint_hash=device.fingerprint_hash,
                    device_name=device.device_name,
                    ip_address=device.ip_address,
                    user_agent=device.user_agent,
                    trusted_at=device.trusted_at,
                    expires_at=device.expires_at,
                    last_used_at=device.last_used_at,
                )
            )

    async def get_trusted_device_by_token(
        self, account_id: str, token_hash: str
    ) -> TrustedDevice | None:
        async with self._transaction("load trusted device") as session:
            model = await session.scalar(
                select(TrustedDeviceModel).where(
                    TrustedDeviceModel.account_id == account_id,
                    TrustedDeviceModel.token_hash == token_hash,
                )
            )
            return _to_device(model) if model is not None else None

    async def list_trusted_devices(self, account_id: str) -> list[TrustedDevice]:
        async with self._transaction("list trusted devices") as session:
            result = await session.execute(
                select(TrustedDeviceModel)
                .where(TrustedDeviceModel.account_id == account_id)
                .order_by(TrustedDeviceModel.trusted_at)
            )
            return [_to_device(m) for m in result.scalars().all()]

    async def touch_trusted_device(
        self, account_id: str, device_id: str, at: datetime
    ) -> None:
        async with self._transaction("touch trusted device") as session:
            await session.execute(
                update(TrustedDeviceModel)
                .where(
                    TrustedDeviceModel.account_id == account_id,
                    TrustedDeviceModel.device_id == device_id,
                )
                .values(last_used_at=at)
            )

    async def delete_trusted_device(self, account_id: str, device_id: str) -> bool:
        async with self._transaction("delete trusted device") as session:
            result = await session.execute(
                delete(TrustedDeviceModel).where(
                    TrustedDeviceModel.account_id == account_id,
                    TrustedDeviceModel.device_id == device_id,
                )
            )
            return bool(result.rowcount)

    async def delete_trusted_devices(self, account_id: str) -> int:
        async with self._transaction("delete trusted devices") as session:
            result = await session.execute(
                delete(TrustedDeviceModel).where(
                    TrustedDeviceModel.account_id == account_id
                )
            )
            return int(result.rowcount or 0)


__all__: list[str] = ["SQLAlchemyCredentialStore"]
