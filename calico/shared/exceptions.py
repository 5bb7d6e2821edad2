"""Error taxonomy of the booking core and its JSON rendering.

Every error carries a stable ``code``; ``details`` holds structured context
(slot id, unavailability reasons) that clients can act on.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


class NotFoundException(AppException):
    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    status_code = 409
    code = "conflict"


class UnauthorizedException(AppException):
    """Actor is not allowed to act on this resource."""

    status_code = 403
    code = "forbidden"


class BusinessRuleException(AppException):
    status_code = 422
    code = "business_rule_violation"


class SlotAlreadyBookedException(ConflictException):
    """Another booking holds the slot; retry with a different slot, never the same one."""

    code = "slot_already_booked"

    def __init__(
        self,
        message: str = "This time is no longer available, pick another slot",
        slot_id: str | None = None,
    ) -> None:
        if slot_id is None:
            super().__init__(message)
        else:
            super().__init__(message, slot_id=slot_id)


class InvalidStateTransitionException(ConflictException):
    code = "invalid_state_transition"


class SlotUnavailableException(BusinessRuleException):
    """Slot exists and is free but cannot be claimed (past, too soon, other tutor)."""

    code = "slot_unavailable"


class TooLateToCancelException(BusinessRuleException):
    code = "too_late_to_cancel"


class ExternalServiceException(AppException):
    """A primary operation (calendar sync) failed on its external dependency."""

    status_code = 502
    code = "external_service_error"


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Render framework HTTP errors (auth, 503 readiness) in the same envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
        headers=exc.headers,
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
