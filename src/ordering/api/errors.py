"""Exception handlers translating ordering errors into JSON responses.

Every error body has the same shape::

    {"error": true, "code": ..., "message": ..., "details": ..., "status_code": ...}
"""

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from ordering.errors import (
    ConflictError,
    ExternalDependencyError,
    Forbidden,
    InvariantViolation,
    OrderingError,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    Forbidden: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    ExternalDependencyError: status.HTTP_503_SERVICE_UNAVAILABLE,
    InvariantViolation: status.HTTP_409_CONFLICT,
}


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "code": code,
            "message": message,
            "details": details,
            "status_code": status_code,
        },
    )


def _code_for(exc: Exception) -> str:
    """Snake-case error code for a ValidationError subclass."""
    name = type(exc).__name__
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name).lstrip("_")


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    details = dict(getattr(exc, "messages", {}) or {})
    if hasattr(exc, "reasons"):
        details["reasons"] = list(exc.reasons)
    if hasattr(exc, "bound"):
        details["bound"] = exc.bound

    logger.info("Request rejected", path=request.url.path, error=_code_for(exc), details=details)
    return _error_response(status.HTTP_400_BAD_REQUEST, _code_for(exc), "Validation error", details)


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("Resource not found", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


async def version_conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Concurrent modification", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_409_CONFLICT, ConflictError.code, "Resource was modified concurrently")


async def ordering_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    details = dict(exc.context)
    if isinstance(exc, InvariantViolation):
        details.setdefault("needs_review", True)
        logger.error("Order needs manual reconciliation", path=request.url.path, **details)
    else:
        logger.warning("Request failed", path=request.url.path, error=exc.code, message=exc.message)

    return _error_response(status_code, exc.code, exc.message, details)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    code = {401: "unauthorized", 403: "forbidden", 404: "not_found"}.get(http_exc.status_code, "http_error")
    return _error_response(http_exc.status_code, code, str(http_exc.detail))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", method=request.method, path=request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
    app.add_exception_handler(ExpectedVersionError, version_conflict_handler)
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
