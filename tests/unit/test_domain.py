"""Tests for MFA domain value objects."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from atlas_mfa.domain import (
    MfaCredential,
    PendingMfaSession,
    TrustedDevice,
    as_utc,
)
from conftest import T0

WINDOW = timedelta(minutes=5)


def make_session(**overrides: object) -> PendingMfaSession:
    fields: dict[str, object] = {
        "session_id": "s-1",
        "account_id": "acct-1",
        "issued_at": T0,
        "expires_at": T0 + timedelta(minutes=10),
    }
    fields.update(overrides)
    return PendingMfaSession(**fields)  # type: ignore[arg-type]


class TestMfaCredential:
    def test_enabled_requires_enrolled_at(self) -> None:
        with pytest.raises(ValidationError, match="enrolled_at"):
            MfaCredential(account_id="a", totp_secret_encrypted="x", enabled=True)

    def test_disabled_without_enrolled_at(self) -> None:
        credential = MfaCredential(account_id="a", totp_secret_encrypted="x")
        assert credential.enabled is False

    def test_is_immutable(self) -> None:
        credential = MfaCredential(account_id="a", totp_secret_encrypted="x")
        with pytest.raises(ValidationError):
            credential.enabled = True  # type: ignore[misc]

    def test_structural_equality(self) -> None:
        a = MfaCredential(account_id="a", totp_secret_encrypted="x")
        b = MfaCredential(account_id="a", totp_secret_encrypted="x")
        assert a == b
        assert hash(a) == hash(b)


class TestTrustedDevice:
    def make(self, **overrides: object) -> TrustedDevice:
        fields: dict[str, object] = {
            "device_id": "d-1",
            "account_id": "acct-1",
            "token_hash": "h",
            "trusted_at": T0,
            "expires_at": T0 + timedelta(days=30),
        }
        fields.update(overrides)
        return TrustedDevice(**fields)  # type: ignore[arg-type]

    def test_expiry_must_follow_trust(self) -> None:
        with pytest.raises(ValidationError, match="expires_at"):
            self.make(expires_at=T0)

    def test_active_until_expiry(self) -> None:
        device = self.make()

        assert device.is_active(T0 + timedelta(days=29))
        assert not device.is_active(T0 + timedelta(days=30))
        assert not device.is_active(T0 + timedelta(days=31))

    def test_naive_datetimes_are_utc(self) -> None:
        naive = datetime(2023, 11, 14, 22, 13, 30)
        device = self.make(trusted_at=naive, expires_at=naive + timedelta(days=1))

        assert device.is_active(as_utc(naive) + timedelta(hours=1))


class TestPendingMfaSession:
    def test_expiry(self) -> None:
        session = make_session()

        assert not session.is_expired(T0 + timedelta(minutes=9))
        assert session.is_expired(T0 + timedelta(minutes=10))

    def test_first_failure_opens_window(self) -> None:
        session = make_session().with_failure(T0, WINDOW)

        assert session.attempt_count == 1
        assert session.window_started_at == T0

    def test_failures_accumulate_inside_window(self) -> None:
        session = make_session()
        for seconds in (0, 60, 120):
            session = session.with_failure(T0 + timedelta(seconds=seconds), WINDOW)

        assert session.attempts_in_window(T0 + timedelta(minutes=3), WINDOW) == 3

    def test_window_lapses(self) -> None:
        session = make_session().with_failure(T0, WINDOW).with_failure(T0, WINDOW)
        later = T0 + timedelta(minutes=6)

        assert session.attempts_in_window(later, WINDOW) == 0
        restarted = session.with_failure(later, WINDOW)
        assert restarted.attempt_count == 1
        assert restarted.window_started_at == later

    def test_with_lock(self) -> None:
        session = make_session()
        locked = session.with_lock()

        assert locked.locked
        assert not session.locked

    def test_reserved_attempt_locks_at_limit(self) -> None:
        session = make_session()
        for _ in range(3):
            session = session.with_reserved_attempt(T0, WINDOW, 3)
        assert not session.locked

        locked = session.with_reserved_attempt(T0, WINDOW, 3)

        assert locked.locked
        assert locked.attempt_count == 3
        assert locked.with_reserved_attempt(T0 + timedelta(minutes=10), WINDOW, 3) == locked
