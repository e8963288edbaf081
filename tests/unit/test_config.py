"""Tests for MfaConfig validation."""

from __future__ import annotations

import dataclasses

import pytest

from atlas_mfa import MfaConfig


def test_defaults() -> None:
    config = MfaConfig()

    assert config.issuer == "Atlas Pharma"
    assert config.totp_interval == 30
    assert config.totp_valid_window == 1
    assert config.secret_length == 32
    assert config.backup_code_count == 10
    assert config.backup_code_length == 8
    assert config.max_attempts == 5
    assert config.attempt_window_seconds == 300
    assert config.trusted_device_ttl_days == 30
    assert config.revoke_devices_on_disable is True


def test_is_frozen() -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        MfaConfig().max_attempts = 10  # type: ignore[misc]


@pytest.mark.parametrize(
    "overrides",
    [
        {"issuer": ""},
        {"totp_interval": 0},
        {"totp_valid_window": -1},
        {"secret_length": 16},
        {"secret_length": 36},
        {"backup_code_count": 0},
        {"backup_code_length": 6},
        {"max_attempts": 0},
        {"attempt_window_seconds": 0},
        {"pending_session_ttl_seconds": -5},
        {"trusted_device_ttl_days": 0},
    ],
)
def test_invalid_values_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        MfaConfig(**overrides)  # type: ignore[arg-type]


def test_longer_secret_allowed() -> None:
    assert MfaConfig(secret_length=40).secret_length == 40
