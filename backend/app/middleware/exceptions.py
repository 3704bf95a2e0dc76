"""Workflow error taxonomy and the handlers that map it onto responses.

Every failure the engine reports belongs to exactly one kind:

  MalformedInputError     → 422  bad identifier, bad field, missing notes
  PreconditionViolation   → 409  names the invariant that blocked the operation
  TransientFailure        → 503  storage slow or unavailable; caller may retry
  ResourceNotFoundError   → 404
  UnknownStationError     → 400  programmer error, raised immediately

Handlers emit one envelope:
    {"error": {"code": "...", "message": "...", "details": {...}}}
"""

import logging
import math
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class PanelTraceException(Exception):
    """Base exception for production workflow errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


# ── Malformed input ──────────────────────────────────────────

class MalformedInputError(PanelTraceException):
    """Input rejected before any state was read or written."""

    def __init__(
        self,
        message: str,
        error_code: str = "MALFORMED_INPUT",
        details: dict | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            details=details,
        )


class MalformedIdentifier(MalformedInputError):
    """Identifier code that does not match the grammar; names the first bad field."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(
            message=message,
            error_code="MALFORMED_IDENTIFIER",
            details={"field": field},
        )


class ValueOutOfRange(MalformedInputError):
    """Numeric reading outside its physical bounds (never clamped)."""

    def __init__(self, field: str, value: float, lower: float, upper: float):
        self.field = field
        self.value = value
        super().__init__(
            message=f"{field}={value} is outside the valid range ({lower}, {upper}]",
            error_code="VALUE_OUT_OF_RANGE",
            details={
                "field": field,
                "value": value if math.isfinite(value) else str(value),
                "min_exclusive": lower,
                "max": upper,
            },
        )


# ── Precondition violations ──────────────────────────────────

class PreconditionViolation(PanelTraceException):
    """The operation would break a workflow invariant; nothing was written."""

    error_code = "PRECONDITION_VIOLATION"
    invariant = "workflow"

    def __init__(self, message: str, invariant: str | None = None):
        self.invariant = invariant or type(self).invariant
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=type(self).error_code,
            details={"invariant": self.invariant},
        )


class DuplicateIdentifier(PreconditionViolation):
    error_code = "DUPLICATE_IDENTIFIER"
    invariant = "unique_identifier"


class DuplicateInspection(PreconditionViolation):
    error_code = "DUPLICATE_INSPECTION"
    invariant = "one_inspection_per_station"


class StationOutOfOrder(PreconditionViolation):
    error_code = "STATION_OUT_OF_ORDER"
    invariant = "station_progression"


class PanelTerminal(PreconditionViolation):
    error_code = "PANEL_TERMINAL"
    invariant = "terminal_status"


class ReworkReentryMismatch(PreconditionViolation):
    error_code = "REWORK_REENTRY_MISMATCH"
    invariant = "rework_reentry_station"


class ElectricalDataMissing(PreconditionViolation):
    error_code = "ELECTRICAL_DATA_MISSING"
    invariant = "completed_requires_electrical_data"


class ReworkLimitReached(PreconditionViolation):
    error_code = "REWORK_LIMIT_REACHED"
    invariant = "max_rework_attempts"


class OrderClosed(PreconditionViolation):
    error_code = "ORDER_CLOSED"
    invariant = "order_closed"


class OrderNotAccepting(PreconditionViolation):
    error_code = "ORDER_NOT_ACCEPTING"
    invariant = "order_accepts_panels"


class PanelTypeMismatch(PreconditionViolation):
    error_code = "PANEL_TYPE_MISMATCH"
    invariant = "order_panel_type"


class OrderCompletionForbidden(PreconditionViolation):
    error_code = "ORDER_COMPLETION_FORBIDDEN"
    invariant = "order_completed_only_at_target"


class NotCompleted(PreconditionViolation):
    error_code = "NOT_COMPLETED"
    invariant = "pallet_accepts_completed_panels"


class AlreadyAssigned(PreconditionViolation):
    error_code = "ALREADY_ASSIGNED"
    invariant = "one_pallet_per_panel"


class PalletClosed(PreconditionViolation):
    error_code = "PALLET_CLOSED"
    invariant = "pallet_closed"


class PalletFull(PreconditionViolation):
    error_code = "PALLET_FULL"
    invariant = "pallet_capacity"


class PalletOrderMismatch(PreconditionViolation):
    error_code = "PALLET_ORDER_MISMATCH"
    invariant = "pallet_order"


class AlreadyClosed(PreconditionViolation):
    error_code = "ALREADY_CLOSED"
    invariant = "pallet_closed"


class ManualCloseNotConfirmed(PreconditionViolation):
    error_code = "MANUAL_CLOSE_NOT_CONFIRMED"
    invariant = "explicit_operator_intent"


# ── Transient / not found / fatal ────────────────────────────

class TransientFailure(PanelTraceException):
    """Storage did not answer within the bound; safe to retry."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="TRANSIENT_FAILURE",
            details={"retryable": True},
        )


class ResourceNotFoundError(PanelTraceException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class UnknownStationError(PanelTraceException):
    """Reference to a station outside the fixed registry."""

    def __init__(self, station: object):
        super().__init__(
            message=f"Unknown station: {station!r}",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="UNKNOWN_STATION",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response."""
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def paneltrace_exception_handler(
    request: Request,
    exc: PanelTraceException,
) -> JSONResponse:
    """Handle workflow exceptions."""
    logger.warning(
        f"Rejected: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors as malformed input."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="MALFORMED_INPUT",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Integrity errors that a service did not translate itself."""
    logger.error(
        f"Database integrity error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_409_CONFLICT,
        message="Database constraint violation",
        error_code="PRECONDITION_VIOLATION",
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, etc.)."""
    logger.error(
        f"Database operational error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="TRANSIENT_FAILURE",
        details={"retryable": True},
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(PanelTraceException, paneltrace_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
