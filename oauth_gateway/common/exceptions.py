"""
Unified exception hierarchy (single entry point)

- **Exception classes**: every gateway failure derives from `AppException(HTTPException)`.
  Each `AuthError` subclass fixes its HTTP status and a public `error` label; the
  `message` is the sanitized text returned to the caller while `context` carries
  diagnostic detail that is only ever logged.
- **Global handlers**: FastAPI exception handlers plus `register_exception_handlers`,
  so every failure leaves the service as `oauth_gateway.common.response.error_response`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from oauth_gateway.common.response import error_response

LOG_PREFIX = "[Errors]"


class AppException(HTTPException):
    """Application base exception"""

    error: str
    context: Any

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error: str = "Internal error",
        message: Optional[str] = None,
        *,
        context: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message or error, headers=headers)
        self.error = error
        self.context = context

    @property
    def message(self) -> str:
        return str(self.detail)


class AuthError(AppException):
    """Base for the gateway error taxonomy; subclasses only set `http_status` and `label`."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    label: str = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        context: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.http_status,
            error=self.label,
            message=message,
            context=context,
            headers=headers,
        )


# Configuration

class ConfigError(AuthError):
    """Invalid or unreadable configuration. Fatal at startup."""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    label = "Configuration error"


class InvalidUrl(AuthError):
    http_status = status.HTTP_404_NOT_FOUND
    label = "Malformed url"


# Request

class UnsupportedProvider(AuthError):
    http_status = status.HTTP_400_BAD_REQUEST
    label = "Invalid oauth provider"


class ProjectIdError(AuthError):
    http_status = status.HTTP_400_BAD_REQUEST
    label = "Require a valid project id"


class MissingParameter(AuthError):
    http_status = status.HTTP_400_BAD_REQUEST
    label = "The request is missing a parameter"


# Session state (recoverable by restarting the flow)

class MissingSession(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Missing session"


class MissingChallenge(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Missing credentials"


class CsrfMismatch(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "State mismatch"


class ReadSessionError(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Could not read from session"


class WriteSessionError(AuthError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    label = "Could not write to session"


# Exchange / resource

class TokenCreation(AuthError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    label = "Token creation error"


class InvalidResponse(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Response failed to validate"


class Unauthorized(AuthError):
    """The provider rejected the bearer token; the caller has to authorize again."""

    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Missing credentials"

    def __init__(self, message: Optional[str] = None, *, context: Any = None):
        super().__init__(message, context=context, headers={"WWW-Authenticate": "Bearer"})


class DriveTokenError(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Failed to retrieve token"


class JsonParsingError(AuthError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    label = "Parsing the response body failed"


class MissingProperty(AuthError):
    http_status = status.HTTP_400_BAD_REQUEST
    label = "Missing data from the provider"


# Downstream registrar

class RegistrarError(AuthError):
    http_status = status.HTTP_400_BAD_REQUEST
    label = "Could not create a session"


class MissingCookie(AuthError):
    http_status = status.HTTP_401_UNAUTHORIZED
    label = "Failed to request a session token"


class InternalError(AuthError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    label = "Internal error"


# Error response construction & global handlers

def create_error_response(
    *,
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Build the unified error response."""
    return JSONResponse(
        status_code=status_code,
        content=error_response(error=error, message=message),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> Response:
    """Handle AppException; the context is logged and never returned."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    if exc.context is not None:
        log(f"{LOG_PREFIX} {type(exc).__name__}: {exc.message} | {exc.context}")
    else:
        log(f"{LOG_PREFIX} {type(exc).__name__}: {exc.message}")

    return create_error_response(
        status_code=exc.status_code,
        error=exc.error,
        message=exc.message,
        headers=getattr(exc, "headers", None),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Handle Starlette HTTPException (not AppException), unmatched routes included."""
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return create_error_response(
            status_code=exc.status_code,
            error="Not found",
            message="Auth service 404",
        )
    return create_error_response(
        status_code=exc.status_code,
        error=str(exc.detail),
        message=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


def _format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> List[str]:
    formatted: List[str] = []
    for err in errors:
        loc = err.get("loc", ())
        field_path = ".".join(str(x) for x in loc)
        formatted.append(f"{field_path}: {err.get('msg')}")
    return formatted


async def request_validation_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle RequestValidationError / PydanticValidationError."""
    errors: List[str] = []
    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        errors = _format_validation_errors(exc.errors())

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        error=MissingParameter.label,
        message="; ".join(errors) if errors else MissingParameter.label,
    )


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle uncaught exceptions (500)."""
    logger.exception("Unhandled exception: {}", exc)

    handle = getattr(request.app.state, "config", None)
    debug = bool(handle is not None and handle.loaded and handle.current().settings.options.debug)

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=InternalError.label,
        message=str(exc) if debug else InternalError.label,
    )


def register_exception_handlers(app: Any) -> None:
    """
    Register all exception handlers on a FastAPI app.

    Kept free of FastAPI type imports to avoid import cycles.
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
