"""MFA service facade.

Single entry point for the driving layer (HTTP handlers, CLI, jobs):
enrollment, verification, trusted devices, disable and backup-code
regeneration, all wired from one ``MfaConfig``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .adapters.memory import InMemoryCredentialStore, InMemoryPendingSessionStore
from .audit.events import MfaAuditEvent, MfaEventType
from .config import MfaConfig
from .crypto import BackupCodeHasher, SecretCipher
from .devices import TrustedDeviceRegistry
from .domain import MfaStatus, utc_now
from .enrollment import EnrollmentService
from .exceptions import DeviceNotTrustedError, InvalidCredentialsError, NotEnrolledError
from .generator import CodeGenerator
from .orchestrator import LoginOrchestrator
from .verification import VerificationEngine

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from .domain import (
        CandidateKind,
        EnrollmentTicket,
        MfaCredential,
        PendingMfaSession,
        TrustedDevice,
        VerificationResult,
    )
    from .ports import (
        ICredentialStore,
        IIdentityGateway,
        IMfaAuditStore,
        IPendingSessionStore,
    )

logger = logging.getLogger(__name__)


class MfaService:
    """Facade over enrollment, verification and trusted devices.

    Example:
        ```python
        service = MfaService.create(
            encryption_key=settings.MFA_ENCRYPTION_KEY,
            backup_code_pepper=settings.MFA_BACKUP_CODE_PEPPER,
            identity=identity_gateway,
            store=SQLAlchemyCredentialStore(session_factory),
        )

        ticket = await service.start_enrollment(account_id, password)
        await service.complete_enrollment(
            account_id, ticket.secret, code, ticket.backup_codes
        )
        status = await service.status(account_id)
        ```
    """

    def __init__(
        self,
        *,
        config: MfaConfig,
        identity: IIdentityGateway,
        store: ICredentialStore,
        enrollment: EnrollmentService,
        verification: VerificationEngine,
        devices: TrustedDeviceRegistry,
        audit_store: IMfaAuditStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.identity = identity
        self.store = store
        self.enrollment = enrollment
        self.verification = verification
        self.devices = devices
        self.audit_store = audit_store
        self.login = LoginOrchestrator(
            identity=identity, verification=verification, devices=devices
        )
        self._clock = clock

    @classmethod
    def create(
        cls,
        *,
        encryption_key: str | bytes,
        backup_code_pepper: str | bytes,
        identity: IIdentityGateway,
        store: ICredentialStore | None = None,
        sessions: IPendingSessionStore | None = None,
        audit_store: IMfaAuditStore | None = None,
        config: MfaConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> MfaService:
        """Wire a service from keys and adapters.

        Args:
            encryption_key: Fernet key for TOTP secrets at rest.
            backup_code_pepper: Server secret for backup-code hashes.
            identity: Gateway to the password/session system.
            store: Credential store (default in-memory, for tests only).
            sessions: Pending session store (default in-memory).
            audit_store: Optional audit event sink.
            config: MFA policy (default ``MfaConfig()``).
            clock: Time source.

        Returns:
            Configured MfaService.
        """
        config = config or MfaConfig()
        store = store if store is not None else InMemoryCredentialStore()
        sessions = (
            sessions if sessions is not None else InMemoryPendingSessionStore(clock=clock)
        )
        generator = CodeGenerator.from_config(config)
        cipher = SecretCipher(encryption_key)
        hasher = BackupCodeHasher(backup_code_pepper)
        devices = TrustedDeviceRegistry(
            store,
            ttl_days=config.trusted_device_ttl_days,
            audit_store=audit_store,
            clock=clock,
        )
        enrollment = EnrollmentService(
            generator=generator,
            cipher=cipher,
            hasher=hasher,
            store=store,
            identity=identity,
            audit_store=audit_store,
            clock=clock,
        )
        verification = VerificationEngine(
            generator=generator,
            cipher=cipher,
            hasher=hasher,
            store=store,
            sessions=sessions,
            devices=devices,
            config=config,
            audit_store=audit_store,
            clock=clock,
        )
        return cls(
            config=config,
            identity=identity,
            store=store,
            enrollment=enrollment,
            verification=verification,
            devices=devices,
            audit_store=audit_store,
            clock=clock,
        )

    async def _record(self, event: MfaAuditEvent) -> None:
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def _reauthenticate(self, account_id: str, password: str) -> None:
        if not await self.identity.reauthenticate(account_id, password):
            logger.warning("Password re-check failed for account %s", account_id)
            raise InvalidCredentialsError("Password re-authentication failed")

    # ── Status ───────────────────────────────────────────────────

    async def status(self, account_id: str) -> MfaStatus:
        credential = await self.store.get_credential(account_id)
        if credential is None or not credential.enabled:
            return MfaStatus(enabled=False)
        return MfaStatus(
            enabled=True,
            enrolled_at=credential.enrolled_at,
            backup_codes_remaining=await self.store.count_unconsumed_backup_codes(
                account_id
            ),
            trusted_device_count=len(await self.devices.list_devices(account_id)),
        )

    # ── Enrollment ───────────────────────────────────────────────

    async def start_enrollment(
        self, account_id: str, password: str, account_label: str | None = None
    ) -> EnrollmentTicket:
        return await self.enrollment.start_enrollment(account_id, password, account_label)

    async def complete_enrollment(
        self,
        account_id: str,
        secret: str,
        code: str,
        backup_codes: Sequence[str],
    ) -> MfaCredential:
        return await self.enrollment.complete_enrollment(
            account_id, secret, code, backup_codes
        )

    def render_qr_code(self, provisioning_uri: str) -> str:
        """Base64 PNG of a provisioning URI (requires the ``qr`` extra)."""
        return self.enrollment.generator.render_qr_code(provisioning_uri)

    # ── Verification ─────────────────────────────────────────────

    async def begin_verification(self, account_id: str) -> PendingMfaSession:
        return await self.verification.begin(account_id)

    async def verify(
        self,
        session_id: str,
        candidate: str,
        trust_device: bool = False,
        *,
        device_fingerprint: str | None = None,
        device_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VerificationResult:
        return await self.verification.verify(
            session_id,
            candidate,
            trust_this_device=trust_device,
            device_fingerprint=device_fingerprint,
            device_name=device_name,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def verify_code(self, account_id: str, candidate: str) -> CandidateKind:
        """Step-up check for sensitive actions outside of login."""
        return await self.verification.verify_code(account_id, candidate)

    # ── Trusted devices ──────────────────────────────────────────

    async def list_trusted_devices(self, account_id: str) -> list[TrustedDevice]:
        return await self.devices.list_devices(account_id)

    async def revoke_trusted_device(self, account_id: str, device_id: str) -> None:
        """Revoke one trusted device.

        Raises:
            DeviceNotTrustedError: If no device with this id belongs to the
                account.
        """
        if not await self.devices.revoke(account_id, device_id):
            raise DeviceNotTrustedError(f"Unknown trusted device {device_id}")

    async def revoke_all_trusted_devices(self, account_id: str) -> int:
        return await self.devices.revoke_all(account_id)

    # ── Disable / regenerate ─────────────────────────────────────

    async def disable(self, account_id: str, password: str, mfa_code: str) -> None:
        """Turn MFA off after a password re-check and a current second factor.

        ``mfa_code`` may be a TOTP or a backup code; a backup code is
        consumed. Deletes the credential and every backup code; trusted
        devices are revoked too unless ``revoke_devices_on_disable`` is off.

        Raises:
            InvalidCredentialsError: Wrong password (checked first).
            NotEnrolledError: No credential exists.
            InvalidFormatError: ``mfa_code`` is missing or malformed.
            InvalidCodeError: ``mfa_code`` does not match.
            AlreadyUsedError: ``mfa_code`` is a consumed backup code.
        """
        await self._reauthenticate(account_id, password)
        await self.verification.verify_code(account_id, mfa_code)

        if not await self.store.delete_credential(account_id):
            raise NotEnrolledError(f"MFA is not enabled for account {account_id}")

        revoked = 0
        if self.config.revoke_devices_on_disable:
            revoked = await self.devices.revoke_all(account_id)

        logger.info(
            "MFA disabled for account %s (%d trusted devices revoked)",
            account_id,
            revoked,
        )
        await self._record(
            MfaAuditEvent(
                event_type=MfaEventType.DISABLED,
                account_id=account_id,
                timestamp=self._clock(),
                metadata={"devices_revoked": revoked},
            )
        )

    async def regenerate_backup_codes(self, account_id: str, password: str) -> list[str]:
        """Invalidate the current batch and issue a new one.

        Returns:
            Plaintext codes, shown to the user once.

        Raises:
            InvalidCredentialsError: Wrong password (checked first).
            NotEnrolledError: MFA is not enabled.
        """
        await self._reauthenticate(account_id, password)

        credential = await self.store.get_credential(account_id)
        if credential is None or not credential.enabled:
            raise NotEnrolledError(f"MFA is not enabled for account {account_id}")

        generator = self.enrollment.generator
        hasher = self.enrollment.hasher
        codes = generator.generate_backup_codes()
        await self.store.replace_backup_codes(account_id, [hasher.hash(c) for c in codes])

        logger.info("Backup codes regenerated for account %s", account_id)
        await self._record(
            MfaAuditEvent(
                event_type=MfaEventType.BACKUP_CODES_REGENERATED,
                account_id=account_id,
                timestamp=self._clock(),
                metadata={"count": len(codes)},
            )
        )
        return codes


__all__: list[str] = ["MfaService"]
