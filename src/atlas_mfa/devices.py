"""Trusted device registry.

A trusted device is a bounded-lifetime exemption from the second factor.
The client keeps a random bearer token; the server keeps only its SHA-256
hash. Expired grants are inert and indistinguishable from absent ones.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from .audit.events import MfaAuditEvent, MfaEventType, device_trusted_event
from .crypto import hash_token
from .domain import IssuedDeviceToken, TrustedDevice, utc_now
from .exceptions import DeviceNotTrustedError

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from .ports import ICredentialStore, IMfaAuditStore

logger = logging.getLogger(__name__)

# 256-bit tokens
DEVICE_TOKEN_BYTES = 32


class TrustedDeviceRegistry:
    """Issues, checks and revokes trusted-device grants.

    Example:
        ```python
        registry = TrustedDeviceRegistry(store, ttl_days=30)
        issued = await registry.trust("acct-1", fingerprint, device_name="Laptop")
        # Hand issued.token to the client (e.g. as a cookie)

        if await registry.is_trusted("acct-1", token_from_cookie):
            ...  # skip the second factor
        ```
    """

    def __init__(
        self,
        store: ICredentialStore,
        *,
        ttl_days: int = 30,
        audit_store: IMfaAuditStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._ttl = timedelta(days=ttl_days)
        self._audit = audit_store
        self._clock = clock

    async def _record(self, event: MfaAuditEvent) -> None:
        if self._audit is not None:
            await self._audit.record(event)

    async def trust(
        self,
        account_id: str,
        device_fingerprint: str | None = None,
        *,
        device_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedDeviceToken:
        """Register the current device as trusted.

        Args:
            account_id: Owning account.
            device_fingerprint: Advisory client fingerprint (stored hashed).
            device_name: Human-readable label.
            ip_address: Client IP address.
            user_agent: Client user agent.

        Returns:
            The device id, the bearer token (returned only here) and the
            expiry.
        """
        now = self._clock()
        token = secrets.token_urlsafe(DEVICE_TOKEN_BYTES)
        device = TrustedDevice(
            device_id=str(uuid.uuid4()),
            account_id=account_id,
            token_hash=hash_token(token),
            fingerprint_hash=hash_token(device_fingerprint) if device_fingerprint else None,
            device_name=device_name,
            ip_address=ip_address,
            user_agent=user_agent,
            trusted_at=now,
            expires_at=now + self._ttl,
        )
        await self._store.add_trusted_device(device)

        logger.info(
            "Trusted device %s registered for account %s", device.device_id, account_id
        )
        await self._record(
            device_trusted_event(
                account_id,
                device.device_id,
                timestamp=now,
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=device.expires_at,
            )
        )
        return IssuedDeviceToken(
            device_id=device.device_id, token=token, expires_at=device.expires_at
        )

    async def _lookup(self, account_id: str, device_token: str | None) -> TrustedDevice | None:
        if not device_token:
            return None
        device = await self._store.get_trusted_device_by_token(
            account_id, hash_token(device_token)
        )
        if device is None or not device.is_active(self._clock()):
            return None
        return device

    async def is_trusted(self, account_id: str, device_token: str | None) -> bool:
        """Check a device token and record its use.

        Returns:
            True iff an unexpired grant with this token exists for the
            account. Expired, revoked and unknown tokens all return False.
        """
        device = await self._lookup(account_id, device_token)
        if device is None:
            return False
        now = self._clock()
        await self._store.touch_trusted_device(account_id, device.device_id, now)
        await self._record(
            MfaAuditEvent(
                event_type=MfaEventType.TRUSTED_DEVICE_LOGIN,
                account_id=account_id,
                timestamp=now,
                device_id=device.device_id,
            )
        )
        return True

    async def require_trusted(self, account_id: str, device_token: str | None) -> None:
        """Like ``is_trusted`` but raises DeviceNotTrustedError."""
        if not await self.is_trusted(account_id, device_token):
            raise DeviceNotTrustedError("Device token is not trusted for this account")

    async def list_devices(self, account_id: str) -> list[TrustedDevice]:
        """List unexpired grants for an account."""
        now = self._clock()
        devices = await self._store.list_trusted_devices(account_id)
        return [d for d in devices if d.is_active(now)]

    async def revoke(self, account_id: str, device_id: str) -> bool:
        """Revoke one grant immediately. Returns False if nothing matched."""
        removed = await self._store.delete_trusted_device(account_id, device_id)
        if removed:
            logger.info("Trusted device %s revoked for account %s", device_id, account_id)
            await self._record(
                MfaAuditEvent(
                    event_type=MfaEventType.DEVICE_REVOKED,
                    account_id=account_id,
                    timestamp=self._clock(),
                    device_id=device_id,
                )
            )
        return removed

    async def revoke_all(self, account_id: str) -> int:
        """Revoke every grant for an account."""
        count = await self._store.delete_trusted_devices(account_id)
        if count:
            logger.info("Revoked %d trusted devices for account %s", count, account_id)
            await self._record(
                MfaAuditEvent(
                    event_type=MfaEventType.DEVICE_REVOKED,
                    account_id=account_id,
                    timestamp=self._clock(),
                    metadata={"count": count},
                )
            )
        return count


__all__: list[str] = ["TrustedDeviceRegistry", "DEVICE_TOKEN_BYTES"]
