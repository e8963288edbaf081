"""FastAPI integration for atlas-mfa."""

from .router import create_mfa_router, to_http_exception

__all__: list[str] = [
    "create_mfa_router",
    "to_http_exception",
]
