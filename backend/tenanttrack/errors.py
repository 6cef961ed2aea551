"""
Typed errors raised by the lease, payment and scoping services.

Every error carries a machine-readable ``code``, a short human-readable
message (rendered to clients verbatim) and the HTTP status it maps to.

    TenantTrackError
    +-- ValidationError      400  guard violation (dates, amounts, state)
    +-- ConflictError        400  duplicate unit number, tenant already leased
    +-- AuthenticationError  401  no usable credentials
    +-- AuthorizationError   403  row outside the caller's scope
    +-- NotFoundError        404  id does not resolve
    +-- GatewayError         503  payment gateway failure, safe to retry
"""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class TenantTrackError(Exception):
    code: str = "error"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.retryable:
            out["retryable"] = True
        return out


class ValidationError(TenantTrackError):
    code = "validation_error"
    status_code = 400


class ConflictError(TenantTrackError):
    code = "conflict"
    status_code = 400


class AuthenticationError(TenantTrackError):
    code = "not_authenticated"
    status_code = 401


class AuthorizationError(TenantTrackError):
    code = "forbidden"
    status_code = 403


class NotFoundError(TenantTrackError):
    code = "not_found"
    status_code = 404


class GatewayError(TenantTrackError):
    code = "gateway_error"
    status_code = 503
    retryable = True


class IntentNotFoundError(ValidationError):
    """The gateway does not know the payment intent (unknown or expired id)."""

    code = "intent_not_found"


async def _handle(request: Request, exc: TenantTrackError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TenantTrackError, _handle)
