from .credential_store import InMemoryCredentialStore
from .pending_sessions import InMemoryPendingSessionStore

__all__ = [
    "InMemoryCredentialStore",
    "InMemoryPendingSessionStore",
]
