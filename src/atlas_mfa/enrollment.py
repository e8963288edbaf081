"""TOTP enrollment.

``EnrollmentService`` is the stateless server side: ``start_enrollment``
re-checks the password and hands out an unpersisted secret and backup
batch; ``complete_enrollment`` proves possession of the secret and commits
credential and hashed codes in one store transaction.

``EnrollmentWizard`` drives a single attempt through the explicit state
machine::

    UNAUTHENTICATED → PASSWORD_CONFIRMED → SECRET_PROVISIONED
        → BACKUP_CODES_ACKNOWLEDGED → VERIFIED → COMPLETE

with ``CANCELLED`` reachable from every non-terminal state and
``ABANDONED`` entered when confirmation fails.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .audit.events import MfaAuditEvent, MfaEventType, enrolled_event
from .config import BACKUP_CODE_ALPHABET
from .domain import CandidateKind, EnrollmentTicket, MfaCredential, utc_now
from .exceptions import (
    AlreadyEnrolledError,
    EnrollmentStateError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidFormatError,
    MfaError,
)
from .generator import classify_candidate

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from .crypto import BackupCodeHasher, SecretCipher
    from .generator import CodeGenerator
    from .ports import ICredentialStore, IIdentityGateway, IMfaAuditStore

logger = logging.getLogger(__name__)


class EnrollmentState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PASSWORD_CONFIRMED = "password_confirmed"
    SECRET_PROVISIONED = "secret_provisioned"
    BACKUP_CODES_ACKNOWLEDGED = "backup_codes_acknowledged"
    VERIFIED = "verified"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"


TERMINAL_STATES = frozenset(
    {EnrollmentState.COMPLETE, EnrollmentState.CANCELLED, EnrollmentState.ABANDONED}
)

_TRANSITIONS: dict[EnrollmentState, frozenset[EnrollmentState]] = {
    EnrollmentState.UNAUTHENTICATED: frozenset(
        {EnrollmentState.PASSWORD_CONFIRMED, EnrollmentState.CANCELLED}
    ),
    EnrollmentState.PASSWORD_CONFIRMED: frozenset(
        {EnrollmentState.SECRET_PROVISIONED, EnrollmentState.CANCELLED}
    ),
    EnrollmentState.SECRET_PROVISIONED: frozenset(
        {EnrollmentState.BACKUP_CODES_ACKNOWLEDGED, EnrollmentState.CANCELLED}
    ),
    EnrollmentState.BACKUP_CODES_ACKNOWLEDGED: frozenset(
        {
            EnrollmentState.VERIFIED,
            EnrollmentState.ABANDONED,
            EnrollmentState.CANCELLED,
        }
    ),
    EnrollmentState.VERIFIED: frozenset({EnrollmentState.COMPLETE}),
    EnrollmentState.COMPLETE: frozenset(),
    EnrollmentState.CANCELLED: frozenset(),
    EnrollmentState.ABANDONED: frozenset(),
}


_ALPHABET = frozenset(BACKUP_CODE_ALPHABET)


def can_transition(current: EnrollmentState, target: EnrollmentState) -> bool:
    return target in _TRANSITIONS[current]


class EnrollmentService:
    """Server side of TOTP enrollment.

    Example:
        ```python
        service = EnrollmentService(
            generator=CodeGenerator(),
            cipher=SecretCipher(key),
            hasher=BackupCodeHasher(pepper),
            store=credential_store,
            identity=identity_gateway,
        )

        ticket = await service.start_enrollment("acct-1", password)
        # Show ticket.provisioning_uri as QR and ticket.backup_codes once
        credential = await service.complete_enrollment(
            "acct-1", ticket.secret, code_from_app, ticket.backup_codes
        )
        ```
    """

    def __init__(
        self,
        *,
        generator: CodeGenerator,
        cipher: SecretCipher,
        hasher: BackupCodeHasher,
        store: ICredentialStore,
        identity: IIdentityGateway,
        audit_store: IMfaAuditStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.generator = generator
        self.cipher = cipher
        self.hasher = hasher
        self.store = store
        self.identity = identity
        self.audit_store = audit_store
        self._clock = clock

    async def _record(self, event: MfaAuditEvent) -> None:
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def _reauthenticate(self, account_id: str, password: str) -> None:
        if not await self.identity.reauthenticate(account_id, password):
            logger.warning("Password re-check failed for account %s", account_id)
            raise InvalidCredentialsError("Password re-authentication failed")

    async def _ensure_not_enrolled(self, account_id: str) -> None:
        credential = await self.store.get_credential(account_id)
        if credential is not None and credential.enabled:
            raise AlreadyEnrolledError(f"MFA is already enabled for account {account_id}")

    async def start_enrollment(
        self,
        account_id: str,
        password: str,
        account_label: str | None = None,
    ) -> EnrollmentTicket:
        """Re-check the password and provision a fresh secret and backup batch.

        Nothing is persisted: the returned ticket is only stored once
        ``complete_enrollment`` succeeds. Calling this again discards the
        previous ticket.

        Args:
            account_id: Account to enroll.
            password: Current password.
            account_label: Name shown in the authenticator (default account_id).

        Returns:
            EnrollmentTicket with plaintext secret and backup codes.

        Raises:
            InvalidCredentialsError: If the password is wrong. Raised before
                any credential lookup.
            AlreadyEnrolledError: If MFA is already enabled for the account.
        """
        await self._reauthenticate(account_id, password)
        await self._ensure_not_enrolled(account_id)

        secret = self.generator.generate_totp_secret()
        ticket = EnrollmentTicket(
            secret=secret,
            provisioning_uri=self.generator.build_provisioning_uri(
                secret, account_label or account_id
            ),
            manual_key=self.generator.format_manual_key(secret),
            backup_codes=tuple(self.generator.generate_backup_codes()),
        )

        logger.info("MFA enrollment started for account %s", account_id)
        await self._record(
            MfaAuditEvent(
                event_type=MfaEventType.ENROLLMENT_STARTED,
                account_id=account_id,
                timestamp=self._clock(),
                method=CandidateKind.TOTP.value,
            )
        )
        return ticket

    def _validate_backup_codes(self, backup_codes: Sequence[str]) -> list[str]:
        if not backup_codes:
            raise InvalidFormatError("Backup code batch must not be empty")
        normalized: list[str] = []
        for code in backup_codes:
            kind, value = classify_candidate(
                code, backup_code_length=self.generator.backup_code_length
            )
            if kind is not CandidateKind.BACKUP_CODE or not set(value) <= _ALPHABET:
                raise InvalidFormatError("Backup code batch contains a malformed code")
            normalized.append(value)
        if len(set(normalized)) != len(normalized):
            raise InvalidFormatError("Backup code batch contains duplicates")
        return normalized

    async def complete_enrollment(
        self,
        account_id: str,
        secret: str,
        candidate_code: str,
        backup_codes: Sequence[str],
    ) -> MfaCredential:
        """Confirm possession of the secret and enable MFA.

        The enabled credential (encrypted secret) and the hashed backup batch
        are written in one transaction. An enabled credential is never
        replaced here: the secret is caller-supplied, so re-enrollment goes
        through ``disable`` (password and current code) first. On any
        failure nothing is written.

        Raises:
            AlreadyEnrolledError: MFA is already enabled for the account.
            InvalidFormatError: Malformed secret, code or backup codes.
            InvalidCodeError: The TOTP code does not match the secret.
        """
        if not self.generator.is_valid_secret(secret):
            raise InvalidFormatError("TOTP secret is malformed")
        secret = secret.upper()

        kind, code = classify_candidate(
            candidate_code, backup_code_length=self.generator.backup_code_length
        )
        if kind is not CandidateKind.TOTP:
            raise InvalidFormatError("Enrollment must be confirmed with a TOTP code")

        normalized_codes = self._validate_backup_codes(backup_codes)
        await self._ensure_not_enrolled(account_id)

        now = self._clock()
        if not self.generator.verify_totp(secret, code, now):
            logger.info("MFA enrollment confirmation failed for account %s", account_id)
            await self._record(
                MfaAuditEvent(
                    event_type=MfaEventType.ENROLLMENT_FAILED,
                    account_id=account_id,
                    timestamp=now,
                    method=CandidateKind.TOTP.value,
                    success=False,
                    error_code=InvalidCodeError.code,
                )
            )
            raise InvalidCodeError("Enrollment code does not match the secret")

        credential = MfaCredential(
            account_id=account_id,
            totp_secret_encrypted=self.cipher.encrypt(secret),
            enabled=True,
            enrolled_at=now,
        )
        await self.store.commit_enrollment(
            credential, [self.hasher.hash(c) for c in normalized_codes]
        )

        logger.info(
            "MFA enabled for account %s with %d backup codes",
            account_id,
            len(normalized_codes),
        )
        await self._record(
            enrolled_event(account_id, timestamp=now, backup_codes=len(normalized_codes))
        )
        return credential


class EnrollmentWizard:
    """State machine for one enrollment attempt.

    Example:
        ```python
        wizard = EnrollmentWizard(service, "acct-1")
        ticket = await wizard.start(password)
        wizard.acknowledge_backup_codes()
        credential = await wizard.confirm("123456")
        assert wizard.state is EnrollmentState.COMPLETE
        ```
    """

    def __init__(
        self,
        service: EnrollmentService,
        account_id: str,
        account_label: str | None = None,
    ) -> None:
        self.service = service
        self.account_id = account_id
        self.account_label = account_label
        self.state = EnrollmentState.UNAUTHENTICATED
        self.ticket: EnrollmentTicket | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _advance(self, target: EnrollmentState) -> None:
        if not can_transition(self.state, target):
            raise EnrollmentStateError(
                f"Cannot move enrollment from {self.state.value} to {target.value}"
            )
        self.state = target

    def _require(self, expected: EnrollmentState) -> None:
        if self.state is not expected:
            raise EnrollmentStateError(
                f"Enrollment is {self.state.value}, expected {expected.value}"
            )

    async def start(self, password: str) -> EnrollmentTicket:
        """Confirm the password and provision the secret.

        A wrong password leaves the wizard UNAUTHENTICATED so it can be
        retried.
        """
        self._require(EnrollmentState.UNAUTHENTICATED)
        ticket = await self.service.start_enrollment(
            self.account_id, password, self.account_label
        )
        self._advance(EnrollmentState.PASSWORD_CONFIRMED)
        self.ticket = ticket
        self._advance(EnrollmentState.SECRET_PROVISIONED)
        return ticket

    def acknowledge_backup_codes(self) -> None:
        """User confirmed the backup codes were saved."""
        self._require(EnrollmentState.SECRET_PROVISIONED)
        self._advance(EnrollmentState.BACKUP_CODES_ACKNOWLEDGED)

    async def confirm(self, code: str) -> MfaCredential:
        """Verify the first TOTP code and commit the enrollment.

        Raises:
            EnrollmentStateError: If backup codes were not acknowledged.
            MfaError: Any verification failure; the wizard is ABANDONED.
        """
        self._require(EnrollmentState.BACKUP_CODES_ACKNOWLEDGED)
        if self.ticket is None:
            raise EnrollmentStateError("Enrollment has no provisioned secret")
        try:
            credential = await self.service.complete_enrollment(
                self.account_id,
                self.ticket.secret,
                code,
                self.ticket.backup_codes,
            )
        except MfaError:
            self._advance(EnrollmentState.ABANDONED)
            self.ticket = None
            raise
        self._advance(EnrollmentState.VERIFIED)
        self._advance(EnrollmentState.COMPLETE)
        self.ticket = None
        return credential

    def cancel(self) -> None:
        if self.is_terminal:
            raise EnrollmentStateError(f"Enrollment already {self.state.value}")
        self._advance(EnrollmentState.CANCELLED)
        self.ticket = None


__all__: list[str] = [
    "EnrollmentState",
    "TERMINAL_STATES",
    "can_transition",
    "EnrollmentService",
    "EnrollmentWizard",
]
