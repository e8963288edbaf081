"""atlas-mfa: multi-factor authentication for password-authenticated sessions.

Provides TOTP enrollment, second-factor verification with single-use
backup codes, server-side attempt limiting and trusted-device exemptions.

Quick start:
    ```python
    from atlas_mfa import MfaService

    service = MfaService.create(
        encryption_key=FERNET_KEY,
        backup_code_pepper=PEPPER,
        identity=my_identity_gateway,
    )

    ticket = await service.start_enrollment("acct-1", password)
    await service.complete_enrollment(
        "acct-1", ticket.secret, code_from_app, ticket.backup_codes
    )

    outcome = await service.login.start_login("acct-1")
    if not outcome.authenticated:
        outcome = await service.login.complete_login(
            outcome.pending_session_id, code_from_app
        )
    ```

Persistence adapters live in ``atlas_mfa.adapters`` (in-memory, SQLAlchemy);
the HTTP router in ``atlas_mfa.contrib.fastapi``.
"""

from __future__ import annotations

from .config import BACKUP_CODE_ALPHABET, MfaConfig
from .crypto import BackupCodeHasher, SecretCipher, hash_token
from .devices import TrustedDeviceRegistry
from .domain import (
    BackupCode,
    CandidateKind,
    ConsumeResult,
    EnrollmentTicket,
    IssuedDeviceToken,
    MfaCredential,
    MfaStatus,
    PendingMfaSession,
    TrustedDevice,
    VerificationResult,
)
from .enrollment import EnrollmentService, EnrollmentState, EnrollmentWizard
from .exceptions import (
    AlreadyEnrolledError,
    AlreadyUsedError,
    AtlasMfaError,
    CredentialStoreError,
    DeviceNotTrustedError,
    DomainError,
    EnrollmentStateError,
    InfrastructureError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidFormatError,
    MfaError,
    NotEnrolledError,
    PendingSessionExpiredError,
    RateLimitedError,
    SecretDecryptionError,
)
from .generator import CodeGenerator, classify_candidate, normalize_candidate
from .orchestrator import LoginOrchestrator, LoginOutcome, LoginStatus
from .ports import (
    ICredentialStore,
    IIdentityGateway,
    IMfaAuditStore,
    IPendingSessionStore,
)
from .service import MfaService
from .verification import VerificationEngine

__version__ = "0.1.0"

__all__: list[str] = [
    "__version__",
    # Facade
    "MfaService",
    "MfaConfig",
    "BACKUP_CODE_ALPHABET",
    # Components
    "CodeGenerator",
    "classify_candidate",
    "normalize_candidate",
    "SecretCipher",
    "BackupCodeHasher",
    "hash_token",
    "EnrollmentService",
    "EnrollmentState",
    "EnrollmentWizard",
    "VerificationEngine",
    "TrustedDeviceRegistry",
    "LoginOrchestrator",
    "LoginOutcome",
    "LoginStatus",
    # Domain
    "MfaCredential",
    "BackupCode",
    "TrustedDevice",
    "PendingMfaSession",
    "MfaStatus",
    "EnrollmentTicket",
    "IssuedDeviceToken",
    "VerificationResult",
    "CandidateKind",
    "ConsumeResult",
    # Ports
    "IIdentityGateway",
    "ICredentialStore",
    "IPendingSessionStore",
    "IMfaAuditStore",
    # Exceptions
    "AtlasMfaError",
    "DomainError",
    "InfrastructureError",
    "MfaError",
    "InvalidCredentialsError",
    "InvalidCodeError",
    "AlreadyUsedError",
    "InvalidFormatError",
    "RateLimitedError",
    "NotEnrolledError",
    "AlreadyEnrolledError",
    "DeviceNotTrustedError",
    "PendingSessionExpiredError",
    "EnrollmentStateError",
    "SecretDecryptionError",
    "CredentialStoreError",
]
