"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain exceptions for moderation, contacts and SMS delivery
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Usage:
    from backend.app.core.errors import NotFoundError, InvalidTransitionError

    raise NotFoundError("Zone", id="9f2c...")

Errors raised inside notification fanout (SMSDeliveryError,
ProviderUnavailableError, PartialFanoutFailure) are isolated per recipient
and only logged; they never reach an HTTP response for a moderation action.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class RedZoneError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(RedZoneError):
    """Malformed or missing input (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class InvalidPhoneError(ValidationError):
    """Phone input rejected by the normalizer (422)."""

    def __init__(self, raw: Any, reason: str = "not a dialable phone number"):
        super().__init__(f"Invalid phone number: {reason}", field="phone", value=repr(raw))
        self.error_code = "INVALID_PHONE"


class UnauthorizedError(RedZoneError):
    """Missing or invalid bearer identity (401)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHORIZED",
        )


class ForbiddenError(RedZoneError):
    """Actor lacks the privilege for this action (403)."""

    def __init__(self, action: str, **details: Any):
        super().__init__(
            message=f"Moderator privilege required to {action}",
            status_code=403,
            error_code="FORBIDDEN",
            details={"action": action, **details},
        )


class NotFoundError(RedZoneError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class InvalidTransitionError(RedZoneError):
    """Zone state machine rule violated (409)."""

    def __init__(self, zone_id: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move zone from '{current}' to '{target}'",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"zone_id": zone_id, "current_status": current, "target_status": target},
        )


class ProviderUnavailableError(RedZoneError):
    """SMS backend unreachable or misconfigured (503)."""

    def __init__(self, provider: str, message: str = ""):
        super().__init__(
            message=f"SMS provider '{provider}' unavailable: {message}",
            status_code=503,
            error_code="PROVIDER_UNAVAILABLE",
            details={"provider": provider},
        )


class SMSDeliveryError(RedZoneError):
    """The provider rejected a single message (502)."""

    def __init__(self, phone: str, message: str = "", **details: Any):
        super().__init__(
            message=f"SMS to {phone} rejected: {message}",
            status_code=502,
            error_code="SMS_DELIVERY_ERROR",
            details={"phone": phone, **details},
        )


class PartialFanoutFailure(RedZoneError):
    """Some recipients of a notification job could not be reached."""

    def __init__(self, job_ref: str, attempted: int, failed: int):
        super().__init__(
            message=f"Notification {job_ref}: {failed}/{attempted} recipients failed",
            status_code=500,
            error_code="PARTIAL_FANOUT_FAILURE",
            details={"attempted": attempted, "failed": failed},
        )
        self.attempted = attempted
        self.failed = failed


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(RedZoneError)
    async def handle_redzone_error(request: Request, exc: RedZoneError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", errors)
        return _build_error_response(
            422, "VALIDATION_ERROR", "Request validation failed",
            {"errors": errors}, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(
            500, "INTERNAL_ERROR", message, None, request,
        )
