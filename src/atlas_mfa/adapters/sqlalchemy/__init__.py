"""SQLAlchemy async adapter for MFA credential persistence.

Requires ``pip install atlas-mfa[sqlalchemy]``.
"""

from .models import Base, BackupCodeModel, MfaCredentialModel, TrustedDeviceModel
from .store import SQLAlchemyCredentialStore

__all__: list[str] = [
    "Base",
    "MfaCredentialModel",
    "BackupCodeModel",
    "TrustedDeviceModel",
    "SQLAlchemyCredentialStore",
]
