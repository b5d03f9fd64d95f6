"""
Global Exception Handlers

Every error leaves the API in the same envelope:

{
    "error": {
        "status_code": 409,
        "error_code": "CONFLICT_STALE_WRITE",
        "message": "Slot configuration draft was modified concurrently; reload and retry",
        "type": "Conflict",
        "details": {"resource_type": "Slot configuration draft", ...},
        "path": "/api/v1/slot-configurations/draft/cart"
    }
}

The editor UI branches on `error_code` (reload and retry, show the slot
error, or give up), and on `details.field` / `details.slot_id` to point at
the offending input. Request-body validation errors from FastAPI carry the
same `details.field` as domain validation errors.
"""

import logging
from typing import Any, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.exceptions import ErrorCode, StorefrontError

logger = logging.getLogger(__name__)

ERROR_TYPES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}

# Error codes for errors raised by FastAPI/Starlette rather than the services
HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_FAILED,
    401: ErrorCode.AUTH_FAILED,
    403: ErrorCode.AUTH_PERMISSION_DENIED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.VALIDATION_DUPLICATE_RESOURCE,
    422: ErrorCode.VALIDATION_FAILED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def error_body(
    status_code: int,
    message: str,
    error_code: ErrorCode | str,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "status_code": status_code,
        "error_code": error_code.value if isinstance(error_code, ErrorCode) else error_code,
        "message": message,
        "type": ERROR_TYPES.get(status_code, "Error"),
    }
    if details:
        error["details"] = details
    if path:
        error["path"] = path
    return {"error": error}


def create_error_response(
    status_code: int,
    message: str,
    error_code: ErrorCode | str,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(status_code, message, error_code, details, path))


async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """
    Render a domain error raised by a service or dependency.

    Client errors (stale drafts, protected slots, unknown stores) are part
    of normal editor traffic and logged at WARNING; 5xx at ERROR.
    """
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "%s on %s %s: %s",
        exc.error_code.value,
        request.method,
        request.url.path,
        exc.message,
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details, request.url.path)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("HTTP %d on %s: %s", exc.status_code, request.url.path, exc.detail)
    return create_error_response(
        exc.status_code,
        str(exc.detail),
        HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR),
        path=request.url.path,
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Flatten pydantic errors; the first failing field is lifted into details.field."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query", "path", "header"))
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})

    logger.warning("Request validation failed on %s: %d error(s)", request.url.path, len(errors))
    details: dict[str, Any] = {"validation_errors": errors}
    if errors:
        details["field"] = errors[0]["field"]
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        ErrorCode.VALIDATION_FAILED,
        details,
        request.url.path,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Internal details are logged, never returned."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
        extra={"path": request.url.path, "method": request.method},
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        ErrorCode.INTERNAL_ERROR,
        path=request.url.path,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StorefrontError, storefront_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
