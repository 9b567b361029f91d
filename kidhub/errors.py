"""Error taxonomy for the ingestion gateway.

Every gate raises one of these before any state is touched. Routers let
them propagate; ``kidhub.main`` renders them with ``error_response``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


def error_response(
    status_code: int,
    *,
    error: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    payload: Dict[str, Any] = {"ok": False, "error": error, "code": code}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


class GatewayError(Exception):
    """Base class: carries the HTTP status, a short message and a stable code."""

    status_code = 500
    default_error = "Request failed"
    default_code = "GATEWAY_ERROR"

    def __init__(
        self,
        error: Optional[str] = None,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.error = error or self.default_error
        super().__init__(self.error)
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_response(self) -> JSONResponse:
        return error_response(
            self.status_code,
            error=self.error,
            code=self.code,
            details=self.details,
        )


class AuthenticityError(GatewayError):
    """Bad or missing signature or token."""

    status_code = 403
    default_error = "Authentication failed"
    default_code = "AUTHENTICITY_ERROR"


class NotFoundError(GatewayError):
    status_code = 404
    default_error = "Not found"
    default_code = "NOT_FOUND"


class ExpiredOrInactiveError(GatewayError):
    status_code = 403
    default_error = "Session is no longer valid"
    default_code = "SESSION_INVALID"


class DuplicateError(GatewayError):
    """Reference already processed. Success-shaped so the provider stops retrying."""

    status_code = 200
    default_error = "Duplicate"
    default_code = "DUPLICATE"


class ValidationError(GatewayError):
    status_code = 400
    default_error = "Invalid request"
    default_code = "VALIDATION_ERROR"


class UpstreamError(GatewayError):
    status_code = 502
    default_error = "Payment provider request failed"
    default_code = "UPSTREAM_ERROR"


class InternalError(GatewayError):
    status_code = 500
    default_error = "Server error"
    default_code = "INTERNAL_ERROR"
