"""FastAPI router exposing the MFA service over HTTP.

Errors are mapped to HTTP status codes with the error's ``user_message``;
code-related failures share one generic response so clients cannot tell a
wrong code from a reused or malformed one.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ...exceptions import (
    AlreadyEnrolledError,
    AlreadyUsedError,
    DeviceNotTrustedError,
    EnrollmentStateError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidFormatError,
    MfaError,
    NotEnrolledError,
    PendingSessionExpiredError,
    RateLimitedError,
)
from ...service import MfaService

_STATUS_BY_ERROR: tuple[tuple[type[MfaError], int], ...] = (
    (InvalidCredentialsError, 401),
    (PendingSessionExpiredError, 401),
    (InvalidCodeError, 400),
    (AlreadyUsedError, 400),
    (InvalidFormatError, 400),
    (RateLimitedError, 429),
    (DeviceNotTrustedError, 404),
    (AlreadyEnrolledError, 409),
    (NotEnrolledError, 409),
    (EnrollmentStateError, 409),
)

_GENERIC_CODE_ERRORS = (InvalidCodeError, AlreadyUsedError, InvalidFormatError)


def to_http_exception(exc: MfaError) -> HTTPException:
    """Translate an MFA error into an HTTPException.

    Example:
        ```python
        try:
            await service.verify(session_id, code)
        except MfaError as e:
            raise to_http_exception(e) from e
        ```
    """
    status_code = 400
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break

    error_code = InvalidCodeError.code if isinstance(exc, _GENERIC_CODE_ERRORS) else exc.code
    headers: dict[str, str] | None = None
    if isinstance(exc, PendingSessionExpiredError):
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(
        status_code=status_code,
        detail={"code": error_code, "message": exc.user_message},
        headers=headers,
    )


# ── Request / response models ────────────────────────────────────


class PasswordRequest(BaseModel):
    password: str = Field(min_length=1)


class DisableRequest(PasswordRequest):
    mfa_code: str = Field(min_length=1)


class EnrollStartRequest(PasswordRequest):
    account_label: str | None = None
    include_qr: bool = False


class EnrollStartResponse(BaseModel):
    secret: str
    provisioning_uri: str
    manual_key: str
    backup_codes: list[str]
    qr_code_png_base64: str | None = None


class EnrollCompleteRequest(BaseModel):
    secret: str
    code: str
    backup_codes: list[str]


class VerifyRequest(BaseModel):
    session_id: str
    code: str
    trust_device: bool = False
    device_fingerprint: str | None = None
    device_name: str | None = Field(default=None, max_length=255)


class VerifyResponse(BaseModel):
    account_id: str
    session_token: str
    method: str
    trusted_device_token: str | None = None
    backup_codes_remaining: int | None = None


class StatusResponse(BaseModel):
    enabled: bool
    enrolled_at: datetime | None = None
    backup_codes_remaining: int = 0
    trusted_device_count: int = 0


class TrustedDeviceResponse(BaseModel):
    device_id: str
    device_name: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    trusted_at: datetime
    expires_at: datetime
    last_used_at: datetime | None = None


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]


def create_mfa_router(
    service: MfaService,
    current_account_id: Callable[..., Any],
    *,
    prefix: str = "/mfa",
    tags: list[str] | None = None,
) -> APIRouter:
    """Build the MFA router.

    Args:
        service: Configured MFA service.
        current_account_id: FastAPI dependency returning the authenticated
            account id (after password login). Not used by ``/verify``,
            which is authorized by the pending session id.
        prefix: Route prefix.
        tags: OpenAPI tags.

    Returns:
        APIRouter with the MFA endpoints.

    Example:
        ```python
        def account_id(principal = Depends(get_principal)) -> str:
            return principal.user_id

        app.include_router(create_mfa_router(mfa_service, account_id))
        ```
    """
    router = APIRouter(prefix=prefix, tags=tags or ["mfa"])

    @router.get("/status", response_model=StatusResponse)
    async def get_status(
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> StatusResponse:
        status = await service.status(account_id)
        return StatusResponse(**status.model_dump())

    @router.post("/enroll/start", response_model=EnrollStartResponse)
    async def enroll_start(
        body: EnrollStartRequest,
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> EnrollStartResponse:
        try:
            ticket = await service.start_enrollment(
                account_id, body.password, body.account_label
            )
        except MfaError as e:
            raise to_http_exception(e) from e
        return EnrollStartResponse(
            secret=ticket.secret,
            provisioning_uri=ticket.provisioning_uri,
            manual_key=ticket.manual_key,
            backup_codes=list(ticket.backup_codes),
            qr_code_png_base64=(
                service.render_qr_code(ticket.provisioning_uri) if body.include_qr else None
            ),
        )

    @router.post("/enroll/complete", response_model=StatusResponse)
    async def enroll_complete(
        body: EnrollCompleteRequest,
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> StatusResponse:
        try:
            await service.complete_enrollment(
                account_id, body.secret, body.code, body.backup_codes
            )
        except MfaError as e:
            raise to_http_exception(e) from e
        status = await service.status(account_id)
        return StatusResponse(**status.model_dump())

    @router.post("/verify", response_model=VerifyResponse)
    async def verify(body: VerifyRequest, request: Request) -> VerifyResponse:
        try:
            outcome = await service.login.complete_login(
                body.session_id,
                body.code,
                trust_device=body.trust_device,
                device_fingerprint=body.device_fingerprint,
                device_name=body.device_name,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
        except MfaError as e:
            raise to_http_exception(e) from e
        if outcome.session_token is None or outcome.method is None:
            raise HTTPException(status_code=500, detail="Login did not complete")
        return VerifyResponse(
            account_id=outcome.account_id,
            session_token=outcome.session_token,
            method=outcome.method.value,
            trusted_device_token=outcome.trusted_device_token,
            backup_codes_remaining=outcome.backup_codes_remaining,
        )

    @router.post("/disable", status_code=204)
    async def disable(
        body: DisableRequest,
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> None:
        try:
            await service.disable(account_id, body.password, body.mfa_code)
        except MfaError as e:
            raise to_http_exception(e) from e

    @router.post("/backup-codes/regenerate", response_model=BackupCodesResponse)
    async def regenerate_backup_codes(
        body: PasswordRequest,
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> BackupCodesResponse:
        try:
            codes = await service.regenerate_backup_codes(account_id, body.password)
        except MfaError as e:
            raise to_http_exception(e) from e
        return BackupCodesResponse(backup_codes=codes)

    @router.get("/trusted-devices", response_model=list[TrustedDeviceResponse])
    async def list_trusted_devices(
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> list[TrustedDeviceResponse]:
        devices = await service.list_trusted_devices(account_id)
        return [
            TrustedDeviceResponse(
                device_id=d.device_id,
                device_name=d.device_name,
                ip_address=d.ip_address,
                user_agent=d.user_agent,
                trusted_at=d.trusted_at,
                expires_at=d.expires_at,
                last_used_at=d.last_used_at,
            )
            for d in devices
        ]

    @router.delete("/trusted-devices/{device_id}", status_code=204)
    async def revoke_trusted_device(
        device_id: str,
        account_id: str = Depends(current_account_id),  # noqa: B008
    ) -> None:
        try:
            await service.revoke_trusted_device(account_id, device_id)
        except MfaError as e:
            raise to_http_exception(e) from e

    return router


__all__: list[str] = [
    "create_mfa_router",
    "to_http_exception",
    "PasswordRequest",
    "DisableRequest",
    "EnrollStartRequest",
    "EnrollStartResponse",
    "EnrollCompleteRequest",
    "VerifyRequest",
    "VerifyResponse",
    "StatusResponse",
    "TrustedDeviceResponse",
    "BackupCodesResponse",
]
