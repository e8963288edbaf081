"""Login orchestration on top of an already-checked password.

Decides between issuing the session immediately (no MFA, or a trusted
device) and opening a pending MFA session, then completes the login once
the second factor is verified.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from .domain import CandidateKind, ValueObject

if TYPE_CHECKING:
    from .devices import TrustedDeviceRegistry
    from .ports import IIdentityGateway
    from .verification import VerificationEngine

logger = logging.getLogger(__name__)


class LoginStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    MFA_REQUIRED = "mfa_required"


class LoginOutcome(ValueObject):
    """Result of a login step.

    Exactly one of ``session_token`` (AUTHENTICATED) or
    ``pending_session_id`` (MFA_REQUIRED) is set.
    """

    status: LoginStatus
    account_id: str
    session_token: str | None = None
    pending_session_id: str | None = None
    pending_expires_at: datetime | None = None
    method: CandidateKind | None = None
    via_trusted_device: bool = False
    trusted_device_token: str | None = None
    backup_codes_remaining: int | None = None

    @property
    def authenticated(self) -> bool:
        return self.status is LoginStatus.AUTHENTICATED


class LoginOrchestrator:
    """Drives the second step of login.

    Example:
        ```python
        # Password already checked by the identity system
        outcome = await orchestrator.start_login(account_id, device_token=cookie)
        if not outcome.authenticated:
            outcome = await orchestrator.complete_login(
                outcome.pending_session_id, code, trust_device=True
            )
        ```
    """

    def __init__(
        self,
        *,
        identity: IIdentityGateway,
        verification: VerificationEngine,
        devices: TrustedDeviceRegistry,
    ) -> None:
        self.identity = identity
        self.verification = verification
        self.devices = devices

    async def _issue(self, account_id: str, **fields: object) -> LoginOutcome:
        token = await self.identity.issue_session_token(account_id)
        return LoginOutcome(
            status=LoginStatus.AUTHENTICATED,
            account_id=account_id,
            session_token=token,
            **fields,  # type: ignore[arg-type]
        )

    async def start_login(
        self, account_id: str, device_token: str | None = None
    ) -> LoginOutcome:
        """Continue a login whose password was accepted.

        Args:
            account_id: Authenticated account.
            device_token: Trusted-device token presented by the client.

        Returns:
            AUTHENTICATED with a session token, or MFA_REQUIRED with a
            pending session id.
        """
        if not await self.verification.requires_second_factor(account_id):
            return await self._issue(account_id)

        if device_token and await self.devices.is_trusted(account_id, device_token):
            logger.info("Second factor skipped for account %s (trusted device)", account_id)
            return await self._issue(account_id, via_trusted_device=True)

        pending = await self.verification.begin(account_id)
        return LoginOutcome(
            status=LoginStatus.MFA_REQUIRED,
            account_id=account_id,
            pending_session_id=pending.session_id,
            pending_expires_at=pending.expires_at,
        )

    async def complete_login(
        self,
        session_id: str,
        candidate: str,
        *,
        trust_device: bool = False,
        device_fingerprint: str | None = None,
        device_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginOutcome:
        """Verify the second factor and issue the session token.

        Verification errors propagate unchanged (see
        ``VerificationEngine.verify``).
        """
        result = await self.verification.verify(
            session_id,
            candidate,
            trust_this_device=trust_device,
            device_fingerprint=device_fingerprint,
            device_name=device_name,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return await self._issue(
            result.account_id,
            method=result.method,
            trusted_device_token=result.trusted_device_token,
            backup_codes_remaining=result.backup_codes_remaining,
        )


__all__: list[str] = ["LoginStatus", "LoginOutcome", "LoginOrchestrator"]
