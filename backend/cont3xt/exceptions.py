"""Cont3xt errors and their HTTP rendering.

Every error the service raises derives from ``Cont3xtException``. Subclasses
carry a machine-readable ``code`` and the HTTP status the API answers with;
errors that are recovered inside the orchestrator (timeouts, fetch errors,
cache failures) never reach a handler.
"""

import logging
from collections.abc import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# =============================================================================
# Error Response Model
# =============================================================================


class ErrorDetail(BaseModel):
    """One field-level problem in a rejected request."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """JSON body of every error answer."""

    success: bool = False
    error: str
    message: str
    code: str
    status_code: int
    request_id: str
    details: list[ErrorDetail] | None = None
    path: str | None = None


# =============================================================================
# Exceptions
# =============================================================================


class Cont3xtException(Exception):
    """Base exception for Cont3xt errors."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal error"

    def __init__(self, message: str | None = None, details: list[ErrorDetail] | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ConfigError(Cont3xtException):
    """Unreadable or invalid startup configuration. Fatal."""

    code = "CONFIG_ERROR"
    default_message = "Invalid configuration"


class DuplicateSourceError(Cont3xtException):
    """Two integrations registered under the same id. Fatal at startup."""

    code = "DUPLICATE_SOURCE"

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Integration '{source_id}' is already registered")


class SourceTimeoutError(Cont3xtException):
    """A single source exceeded its timeout."""

    code = "SOURCE_TIMEOUT"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT

    def __init__(self, source_id: str, timeout: float):
        self.source_id = source_id
        self.timeout = timeout
        super().__init__(f"Integration '{source_id}' timed out after {timeout}s")


class SourceFetchError(Cont3xtException):
    """A source driver call failed (network, upstream error, bad credentials)."""

    code = "SOURCE_FETCH_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(message)


class CacheBackendError(Cont3xtException):
    """The cache store is unreachable or returned garbage."""

    code = "CACHE_BACKEND_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Cache backend unavailable"


class SecretDecodeError(Cont3xtException):
    """A stored secret could not be decrypted with the configured key."""

    code = "SECRET_DECODE_ERROR"
    default_message = "Unable to decrypt stored secret"


class ServiceUnavailableError(Cont3xtException):
    """The document store cannot be reached."""

    code = "SERVICE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, service: str, message: str | None = None):
        self.service = service
        super().__init__(message or f"Service '{service}' is unavailable")


class NotFoundError(Cont3xtException):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: str | None = None):
        if identifier:
            super().__init__(f"{resource} '{identifier}' not found")
        else:
            super().__init__(f"{resource} not found")


class ValidationError(Cont3xtException):
    """Malformed indicator or request parameters."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class AuthenticationError(Cont3xtException):
    code = "AUTHENTICATION_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class AuthorizationError(Cont3xtException):
    """Caller lacks the role required for the operation."""

    code = "PERMISSION_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Permission denied"


# =============================================================================
# Handlers
# =============================================================================


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    code: str,
    details: list[ErrorDetail] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        code=code,
        status_code=status_code,
        request_id=getattr(request.state, "request_id", None) or str(uuid4()),
        details=details,
        path=request.url.path,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def cont3xt_exception_handler(request: Request, exc: Cont3xtException) -> JSONResponse:
    return error_response(
        request, exc.status_code, type(exc).__name__, exc.message, exc.code, exc.details
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed bodies and query parameters with a 400."""
    details = [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "ValidationError",
        "Request validation failed",
        ValidationError.code,
        details,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s: %s", request.url.path, exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        Cont3xtException.code,
    )


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag each request with an id, echoed back in ``X-Request-ID``."""
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the error handlers and request-id middleware on ``app``."""
    app.add_exception_handler(Cont3xtException, cont3xt_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.middleware("http")(request_id_middleware)
