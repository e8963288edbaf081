"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from atlas_mfa import (
    BackupCodeHasher,
    CodeGenerator,
    MfaConfig,
    MfaService,
    SecretCipher,
    TrustedDeviceRegistry,
)
from atlas_mfa.adapters.memory import (
    InMemoryCredentialStore,
    InMemoryPendingSessionStore,
)
from atlas_mfa.audit import InMemoryMfaAuditStore
from atlas_mfa.enrollment import EnrollmentService
from atlas_mfa.verification import VerificationEngine

# Falls exactly on a 30-second step boundary
T0 = datetime.fromtimestamp(1_700_000_010, timezone.utc)

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
ACCOUNT = "acct-1"
PASSWORD = "correct horse battery staple"
PEPPER = "test-pepper-0123456789abcdef"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that exercise a real database driver",
    )


class FrozenClock:
    """Controllable time source."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeIdentityGateway:
    """Identity gateway double recording every call."""

    def __init__(self, passwords: dict[str, str] | None = None) -> None:
        self.passwords = passwords if passwords is not None else {ACCOUNT: PASSWORD}
        self.reauth_calls: list[str] = []
        self.issued: list[str] = []

    async def reauthenticate(self, account_id: str, password: str) -> bool:
        self.reauth_calls.append(account_id)
        return self.passwords.get(account_id) == password

    async def issue_session_token(self, account_id: str) -> str:
        token = f"session-{account_id}-{len(self.issued) + 1}"
        self.issued.append(token)
        return token


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def config() -> MfaConfig:
    return MfaConfig()


@pytest.fixture
def generator(config: MfaConfig) -> CodeGenerator:
    return CodeGenerator.from_config(config)


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher(SecretCipher.generate_key())


@pytest.fixture
def hasher() -> BackupCodeHasher:
    return BackupCodeHasher(PEPPER)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def sessions(clock: FrozenClock) -> InMemoryPendingSessionStore:
    return InMemoryPendingSessionStore(clock=clock)


@pytest.fixture
def audit_store() -> InMemoryMfaAuditStore:
    return InMemoryMfaAuditStore()


@pytest.fixture
def identity() -> FakeIdentityGateway:
    return FakeIdentityGateway()


@pytest.fixture
def devices(
    store: InMemoryCredentialStore,
    audit_store: InMemoryMfaAuditStore,
    clock: FrozenClock,
) -> TrustedDeviceRegistry:
    return TrustedDeviceRegistry(store, ttl_days=30, audit_store=audit_store, clock=clock)


@pytest.fixture
def enrollment_service(
    generator: CodeGenerator,
    cipher: SecretCipher,
    hasher: BackupCodeHasher,
    store: InMemoryCredentialStore,
    identity: FakeIdentityGateway,
    audit_store: InMemoryMfaAuditStore,
    clock: FrozenClock,
) -> EnrollmentService:
    return EnrollmentService(
        generator=generator,
        cipher=cipher,
        hasher=hasher,
        store=store,
        identity=identity,
        audit_store=audit_store,
        clock=clock,
    )


@pytest.fixture
def engine(
    generator: CodeGenerator,
    cipher: SecretCipher,
    hasher: BackupCodeHasher,
    store: InMemoryCredentialStore,
    sessions: InMemoryPendingSessionStore,
    devices: TrustedDeviceRegistry,
    config: MfaConfig,
    audit_store: InMemoryMfaAuditStore,
    clock: FrozenClock,
) -> VerificationEngine:
    return VerificationEngine(
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


@pytest.fixture
def service(
    identity: FakeIdentityGateway,
    store: InMemoryCredentialStore,
    sessions: InMemoryPendingSessionStore,
    audit_store: InMemoryMfaAuditStore,
    config: MfaConfig,
    clock: FrozenClock,
) -> MfaService:
    return MfaService.create(
        encryption_key=SecretCipher.generate_key(),
        backup_code_pepper=PEPPER,
        identity=identity,
        store=store,
        sessions=sessions,
        audit_store=audit_store,
        config=config,
        clock=clock,
    )


@pytest.fixture
def backup_codes(generator: CodeGenerator) -> list[str]:
    return generator.generate_backup_codes()


@pytest.fixture
async def enrolled(
    enrollment_service: EnrollmentService,
    generator: CodeGenerator,
    backup_codes: list[str],
    clock: FrozenClock,
) -> list[str]:
    """Enroll ACCOUNT with SECRET at T0; returns the plaintext backup codes."""
    await enrollment_service.complete_enrollment(
        ACCOUNT, SECRET, generator.compute_totp(SECRET, clock()), backup_codes
    )
    return backup_codes


@pytest.fixture
def wrong_code(generator: CodeGenerator) -> Callable[[str, datetime], str]:
    """Build a 6-digit code that is invalid for the secret at the given time."""

    def build(secret: str, at: datetime) -> str:
        valid = {
            generator.compute_totp(secret, at + timedelta(seconds=offset))
            for offset in (-60, -30, 0, 30, 60)
        }
        for digit in "0123456789":
            candidate = digit * 6
            if candidate not in valid:
                return candidate
        raise AssertionError("unreachable")

    return build
