"""MFA domain and infrastructure exceptions.

Every MFA failure inherits from MfaError, which extends DomainError, so
callers can catch the whole family or a single failure kind. Each error
carries a stable ``code`` and a ``user_message`` that is safe to show to
the end user without revealing which internal check failed.
"""

from __future__ import annotations

GENERIC_CODE_MESSAGE = "Invalid code, please try again."


class AtlasMfaError(Exception):
    """Root exception for the atlas-mfa package."""

    code: str = "MFA_ERROR"
    user_message: str = "Multi-factor authentication failed."


class DomainError(AtlasMfaError):
    """Base class for all domain-related errors."""


class InfrastructureError(AtlasMfaError):
    """Base class for all infrastructure-related errors."""


# ═══════════════════════════════════════════════════════════════
# MFA ERRORS
# ═══════════════════════════════════════════════════════════════


class MfaError(DomainError):
    """Base class for MFA protocol errors."""


class InvalidCredentialsError(MfaError):
    """Raised when the password re-check fails (enrollment start, disable)."""

    code = "INVALID_CREDENTIALS"
    user_message = "The password you entered is incorrect."


class InvalidCodeError(MfaError):
    """Raised when a TOTP or backup code fails verification."""

    code = "INVALID_CODE"
    user_message = GENERIC_CODE_MESSAGE


class AlreadyUsedError(MfaError):
    """Raised when a backup code has already been consumed."""

    code = "ALREADY_USED"
    user_message = GENERIC_CODE_MESSAGE


class InvalidFormatError(MfaError):
    """Raised when a submitted value matches no known code shape."""

    code = "INVALID_FORMAT"
    user_message = GENERIC_CODE_MESSAGE


class RateLimitedError(MfaError):
    """Raised when too many failed attempts were made in a pending session.

    Terminal for the pending session: the user has to restart login.

    Attributes:
        failed_attempts: Number of failed attempts that triggered the limit.
    """

    code = "RATE_LIMITED"
    user_message = (
        "Too many failed attempts. Please wait a few minutes and log in again."
    )

    def __init__(
        self,
        message: str = "Too many failed verification attempts",
        failed_attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.failed_attempts = failed_attempts


class NotEnrolledError(MfaError):
    """Raised when verification or disable is attempted without a credential."""

    code = "NOT_ENROLLED"
    user_message = "Multi-factor authentication is not enabled for this account."


class AlreadyEnrolledError(MfaError):
    """Raised when enrollment would replace an enabled credential.

    Re-enrollment goes through ``disable`` first, which re-checks the
    password and a current code.
    """

    code = "ALREADY_ENROLLED"
    user_message = "Multi-factor authentication is already enabled for this account."


class DeviceNotTrustedError(MfaError):
    """Raised when a device token is invalid, expired or unknown."""

    code = "DEVICE_NOT_TRUSTED"
    user_message = "This device is not trusted."


class PendingSessionExpiredError(MfaError):
    """Raised when the pending verification session is missing or expired."""

    code = "PENDING_SESSION_EXPIRED"
    user_message = "Your verification session has expired. Please log in again."


class EnrollmentStateError(MfaError):
    """Raised when the enrollment wizard is driven through an illegal transition."""

    code = "ENROLLMENT_STATE"
    user_message = "Enrollment was interrupted. Please start again."


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE ERRORS
# ═══════════════════════════════════════════════════════════════


class SecretDecryptionError(InfrastructureError):
    """Raised when a stored TOTP secret cannot be decrypted.

    Usually means the encryption key was rotated without re-encrypting.
    """

    code = "SECRET_DECRYPTION"


class CredentialStoreError(InfrastructureError):
    """Raised when the credential store backend fails."""

    code = "CREDENTIAL_STORE"


__all__: list[str] = [
    "GENERIC_CODE_MESSAGE",
    # Base
    "AtlasMfaError",
    "DomainError",
    "InfrastructureError",
    # MFA
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
    # Infrastructure
    "SecretDecryptionError",
    "CredentialStoreError",
]
