"""Global exception handlers for the FastAPI application.

Cell and router failures arrive as ``CellGatewayError`` subclasses and are
mapped to HTTP statuses by type. Framework errors (unknown routes, malformed
bodies) and unexpected exceptions are rendered in the same ``ErrorResponse``
envelope, so a client sees one error shape whichever layer failed.
"""

import traceback
from typing import Any, Final

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from cellgate.api.constants import HTTP_500_INTERNAL_SERVER_ERROR
from cellgate.api.schemas.errors import ErrorResponse, ServiceInfo
from cellgate.api.utils.responses import ORJSONResponse
from cellgate.core.config import Settings, get_settings
from cellgate.core.context import RequestContext, generate_request_id
from cellgate.core.error_context import (
    sanitize_dict,
    sanitize_error_context,
    sanitize_headers,
)
from cellgate.core.exceptions import (
    BusinessRuleError,
    CellGatewayError,
    ConflictError,
    ErrorCode,
    InvocationError,
    NotFoundError,
    PermissionDeniedError,
    StoreUnavailableError,
    UnauthorizedError,
    ValidationError,
)

# Checked in order; the first matching type decides the status
GATEWAY_ERROR_STATUS: Final[tuple[tuple[type[CellGatewayError], int], ...]] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (BusinessRuleError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvocationError, status.HTTP_502_BAD_GATEWAY),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

# Framework HTTP errors by status: (error code, severity)
HTTP_EXCEPTION_CODES: Final[dict[int, tuple[ErrorCode, str]]] = {
    status.HTTP_400_BAD_REQUEST: (ErrorCode.VALIDATION_ERROR, "LOW"),
    status.HTTP_401_UNAUTHORIZED: (ErrorCode.UNAUTHORIZED, "HIGH"),
    status.HTTP_403_FORBIDDEN: (ErrorCode.PERMISSION_DENIED, "MEDIUM"),
    status.HTTP_404_NOT_FOUND: (ErrorCode.NOT_FOUND, "LOW"),
    status.HTTP_405_METHOD_NOT_ALLOWED: (ErrorCode.NOT_FOUND, "LOW"),
}


def get_service_info(settings: Settings) -> ServiceInfo:
    """Create ServiceInfo from application settings."""
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def status_code_for(exc: CellGatewayError) -> int:
    """HTTP status for a gateway error; unknown subclasses map to 500."""
    for error_type, status_code in GATEWAY_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _request_fields(request: Request) -> dict[str, Any]:
    """Method, path and, for cell routes, the addressed cell and action."""
    fields: dict[str, Any] = {
        "request_method": request.method,
        "request_path": str(request.url.path),
    }
    params = request.path_params
    if "group" in params and "name" in params:
        fields["destination"] = f"{params['group']}/{params['name']}"
    if "action" in params:
        fields["action"] = params["action"]
    return fields


def _render(
    settings: Settings,
    status_code: int,
    *,
    error_code: str,
    message: str,
    severity: str,
    details: dict[str, Any] | None = None,
    debug_info: dict[str, Any] | None = None,
) -> Response:
    error_response = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=severity,
        service_info=get_service_info(settings),
        debug_info=debug_info,
    )
    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


async def gateway_error_handler(request: Request, exc: Exception) -> Response:
    """Render a ``CellGatewayError`` raised by the router or a cell.

    Expected errors (bad payloads, missing permissions, unknown cells) are
    logged as warnings. HIGH and CRITICAL errors are logged as errors bound
    with ``alert=True`` so an alerting sink can pick them out. In development
    the response carries the stack trace, fingerprint, cause and the request
    headers with credentials redacted.

    Raises:
        TypeError: If exc is not a CellGatewayError instance
    """
    if not isinstance(exc, CellGatewayError):
        raise TypeError(f"Expected CellGatewayError, got {type(exc).__name__}")

    settings = get_settings()
    status_code = status_code_for(exc)
    error_context = sanitize_error_context(
        exc, {**_request_fields(request), "error_code": exc.error_code}
    )

    bound = logger.bind(alert=exc.should_alert)
    log = bound.warning if exc.is_expected else bound.error
    log(
        "Cell call failed with {}: {}",
        type(exc).__name__,
        exc.message,
        status_code=status_code,
        **error_context,
    )

    details = sanitize_dict(exc.context) if exc.context else None

    debug_info = None
    if settings.environment == "development":
        debug_info = {
            "stack_trace": exc.stack_trace,
            "error_context": details or {},
            "exception_type": type(exc).__name__,
            "fingerprint": exc.fingerprint,
            "request_headers": sanitize_headers(dict(request.headers)),
        }
        if exc.cause:
            debug_info["cause"] = {
                "type": type(exc.cause).__name__,
                "message": str(exc.cause),
            }

    return _render(
        settings,
        status_code,
        error_code=exc.error_code,
        message=exc.message,
        severity=exc.severity.value,
        details=details,
        debug_info=debug_info,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Render a FastAPI ``RequestValidationError`` as a 422.

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    # Messages grouped by field path, without the leading 'body'/'path' segment
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = error.get("loc", ())
        field_name = ".".join(str(part) for part in location[1:] if part != "__root__")
        field_errors.setdefault(field_name or "root", []).append(
            error.get("msg", "Invalid value")
        )

    logger.warning(
        "Request rejected before reaching a cell",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        **sanitize_error_context(
            exc, {**_request_fields(request), "validation_errors": field_errors}
        ),
    )

    return _render(
        get_settings(),
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Request validation failed",
        severity="LOW",
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Render a Starlette ``HTTPException`` with its own status.

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    default_severity = "HIGH" if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR else "MEDIUM"
    error_code, severity = HTTP_EXCEPTION_CODES.get(
        exc.status_code, (ErrorCode.INTERNAL_ERROR, default_severity)
    )

    logger.warning(
        "HTTP {} for {}",
        exc.status_code,
        request.url.path,
        **sanitize_error_context(exc, {**_request_fields(request), "detail": exc.detail}),
    )

    return _render(
        get_settings(),
        exc.status_code,
        error_code=error_code.value,
        message=str(exc.detail),
        severity=severity,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Render an exception no other handler claimed as a 500.

    In production the response names no internals.
    """
    settings = get_settings()

    logger.exception(
        "Unhandled {} outside the router",
        type(exc).__name__,
        **sanitize_error_context(exc, _request_fields(request)),
    )

    details = None
    debug_info = None
    message = "An internal server error occurred"
    if settings.environment != "production":
        message = f"Internal server error: {type(exc).__name__}"
        details = {"error": str(exc), "type": type(exc).__name__}
        debug_info = {
            "stack_trace": traceback.format_tb(exc.__traceback__),
            "error_context": {
                "error_message": str(exc),
                "error_args": [repr(arg) for arg in exc.args],
            },
            "exception_type": type(exc).__name__,
            "request_headers": sanitize_headers(dict(request.headers)),
        }

    return _render(
        settings,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message=message,
        severity="CRITICAL",
        details=details,
        debug_info=debug_info,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(CellGatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
