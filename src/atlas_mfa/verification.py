"""Second-factor verification.

Accepts either a TOTP code or a backup code against a pending MFA session
and enforces the failed-attempt limit server-side. Client-reported attempt
counts are never consulted.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from .audit.events import (
    MfaAuditEvent,
    MfaEventType,
    rate_limited_event,
    verification_failed_event,
    verified_event,
)
from .domain import (
    CandidateKind,
    ConsumeResult,
    PendingMfaSession,
    VerificationResult,
    utc_now,
)
from .exceptions import (
    AlreadyUsedError,
    InvalidCodeError,
    InvalidFormatError,
    NotEnrolledError,
    PendingSessionExpiredError,
    RateLimitedError,
)
from .generator import classify_candidate

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from .config import MfaConfig
    from .crypto import BackupCodeHasher, SecretCipher
    from .devices import TrustedDeviceRegistry
    from .domain import MfaCredential
    from .generator import CodeGenerator
    from .ports import ICredentialStore, IMfaAuditStore, IPendingSessionStore

logger = logging.getLogger(__name__)


class VerificationEngine:
    """Verifies second factors for pending login sessions.

    Example:
        ```python
        engine = VerificationEngine(
            generator=generator,
            cipher=cipher,
            hasher=hasher,
            store=credential_store,
            sessions=pending_sessions,
            devices=device_registry,
            config=MfaConfig(),
        )

        if await engine.requires_second_factor("acct-1"):
            pending = await engine.begin("acct-1")
            result = await engine.verify(pending.session_id, "123456")
        ```
    """

    def __init__(
        self,
        *,
        generator: CodeGenerator,
        cipher: SecretCipher,
        hasher: BackupCodeHasher,
        store: ICredentialStore,
        sessions: IPendingSessionStore,
        devices: TrustedDeviceRegistry,
        config: MfaConfig,
        audit_store: IMfaAuditStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.generator = generator
        self.cipher = cipher
        self.hasher = hasher
        self.store = store
        self.sessions = sessions
        self.devices = devices
        self.config = config
        self.audit_store = audit_store
        self._clock = clock
        self._attempt_window = timedelta(seconds=config.attempt_window_seconds)

    async def _record(self, event: MfaAuditEvent) -> None:
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def _enabled_credential(self, account_id: str) -> MfaCredential:
        credential = await self.store.get_credential(account_id)
        if credential is None or not credential.enabled:
            raise NotEnrolledError(f"MFA is not enabled for account {account_id}")
        return credential

    async def requires_second_factor(self, account_id: str) -> bool:
        """True iff the account has an enabled credential."""
        credential = await self.store.get_credential(account_id)
        return credential is not None and credential.enabled

    async def begin(self, account_id: str) -> PendingMfaSession:
        """Open a pending MFA session after the password was accepted."""
        now = self._clock()
        session = PendingMfaSession(
            session_id=secrets.token_urlsafe(32),
            account_id=account_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.config.pending_session_ttl_seconds),
        )
        await self.sessions.save(session)
        logger.debug("Pending MFA session opened for account %s", account_id)
        return session

    async def _check(
        self,
        credential: MfaCredential,
        kind: CandidateKind,
        code: str,
        at: datetime,
    ) -> None:
        """Raise InvalidCodeError or AlreadyUsedError unless the code is accepted."""
        if kind is CandidateKind.TOTP:
            secret = self.cipher.decrypt(credential.totp_secret_encrypted)
            if not self.generator.verify_totp(secret, code, at):
                raise InvalidCodeError("TOTP code rejected")
            return

        result = await self.store.consume_backup_code(
            credential.account_id, self.hasher.hash(code), at
        )
        if result is ConsumeResult.ALREADY_USED:
            raise AlreadyUsedError("Backup code was already used")
        if result is ConsumeResult.NOT_FOUND:
            raise InvalidCodeError("Backup code rejected")

    async def verify(
        self,
        session_id: str,
        candidate: str,
        *,
        trust_this_device: bool = False,
        device_fingerprint: str | None = None,
        device_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> VerificationResult:
        """Verify a TOTP or backup code for a pending session.

        Every well-formed code reserves an attempt in the session store
        before it is evaluated, so concurrent submissions share one budget.

        Args:
            session_id: Pending MFA session id from ``begin``.
            candidate: Raw user input.
            trust_this_device: Issue a trusted-device token on success.
            device_fingerprint: Advisory client fingerprint.
            device_name: Label for the trusted device.
            ip_address: Client IP address (audit only).
            user_agent: Client user agent (audit only).

        Returns:
            VerificationResult; ``trusted_device_token`` is set only when a
            device was trusted.

        Raises:
            PendingSessionExpiredError: Unknown or expired session, or a
                concurrent verification already completed it.
            RateLimitedError: Attempt budget of the window used up.
            InvalidFormatError: Input matches no code shape (not counted).
            NotEnrolledError: The account has no enabled credential.
            InvalidCodeError: Wrong TOTP or unknown backup code.
            AlreadyUsedError: Backup code already consumed.
        """
        now = self._clock()
        session = await self.sessions.get(session_id)
        if session is None or session.is_expired(now):
            raise PendingSessionExpiredError("Pending MFA session not found or expired")

        account_id = session.account_id
        if session.locked:
            raise RateLimitedError(failed_attempts=session.attempt_count)

        try:
            kind, code = classify_candidate(
                candidate, backup_code_length=self.generator.backup_code_length
            )
        except InvalidFormatError:
            await self._record(
                verification_failed_event(
                    account_id,
                    None,
                    InvalidFormatError.code,
                    timestamp=now,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            raise

        reserved = await self.sessions.reserve_attempt(
            session_id, now, self._attempt_window, self.config.max_attempts
        )
        if reserved is None:
            raise PendingSessionExpiredError("Pending MFA session not found or expired")
        attempt_count = reserved.attempts_in_window(now, self._attempt_window)
        if reserved.locked:
            logger.warning(
                "MFA rate limit reached for account %s after %d attempts",
                account_id,
                attempt_count,
            )
            await self._record(
                rate_limited_event(
                    account_id,
                    timestamp=now,
                    ip_address=ip_address,
                    failed_attempts=attempt_count,
                )
            )
            raise RateLimitedError(failed_attempts=attempt_count)

        credential = await self._enabled_credential(account_id)

        try:
            await self._check(credential, kind, code, now)
        except (InvalidCodeError, AlreadyUsedError) as e:
            logger.info(
                "MFA verification failed for account %s (%s, attempt %d)",
                account_id,
                e.code,
                attempt_count,
            )
            await self._record(
                verification_failed_event(
                    account_id,
                    kind.value,
                    e.code,
                    timestamp=now,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    attempt_count=attempt_count,
                )
            )
            raise

        # Only one of several concurrent successes may complete the login
        if not await self.sessions.delete(session_id):
            raise PendingSessionExpiredError("Pending MFA session already completed")

        remaining: int | None = None
        if kind is CandidateKind.BACKUP_CODE:
            remaining = await self.store.count_unconsumed_backup_codes(account_id)
            logger.warning(
                "Backup code used for account %s, %d remaining", account_id, remaining
            )
            await self._record(
                MfaAuditEvent(
                    event_type=MfaEventType.BACKUP_CODE_USED,
                    account_id=account_id,
                    timestamp=now,
                    method=kind.value,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    metadata={"remaining": remaining},
                )
            )

        device_token: str | None = None
        device_id: str | None = None
        if trust_this_device:
            issued = await self.devices.trust(
                account_id,
                device_fingerprint,
                device_name=device_name,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            device_token = issued.token
            device_id = issued.device_id

        logger.info("MFA verified for account %s via %s", account_id, kind.value)
        await self._record(
            verified_event(
                account_id,
                kind.value,
                timestamp=now,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        return VerificationResult(
            account_id=account_id,
            method=kind,
            trusted_device_token=device_token,
            trusted_device_id=device_id,
            backup_codes_remaining=remaining,
        )

    async def verify_code(self, account_id: str, candidate: str) -> CandidateKind:
        """Session-less check for step-up confirmation of sensitive actions.

        A backup code accepted here is consumed. No rate limiting is applied;
        callers exposing this must throttle on their own.

        Returns:
            The kind of code that was accepted.
        """
        kind, code = classify_candidate(
            candidate, backup_code_length=self.generator.backup_code_length
        )
        credential = await self._enabled_credential(account_id)
        await self._check(credential, kind, code, self._clock())
        return kind


__all__: list[str] = ["VerificationEngine"]
