"""Centralized error handling and logging for the DocQuiz API.

This module provides:
- Global exception handler for FastAPI
- Structured logging with correlation IDs
- Environment-aware error responses (generic in production, detailed in dev)
- Redaction of credentials and raw document data from logs
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.redaction import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse
from schemas.generation import ErrorCode
from services.generation.exceptions import StudyGenerationError


# Context variable for correlation ID tracking across async calls
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

# HTTP status for each domain error code when it is raised before streaming
ERROR_CODE_STATUS: dict[ErrorCode, int] = {
    ErrorCode.NO_DOCUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_MODE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNSUPPORTED_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_DOCUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorCode.SCHEMA_VALIDATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.BACKEND_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracing."""
    correlation_id: str | None = _correlation_id_var.get()
    if correlation_id is None or correlation_id == "":
        new_id = str(uuid.uuid4())
        _correlation_id_var.set(new_id)
        return new_id
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Structured logger that includes correlation IDs and sanitized data."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _log_with_context(
        self,
        level: int,
        message: str,
        extra_data: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        correlation_id = get_correlation_id()
        log_data = {
            "correlation_id": correlation_id,
            "message": message,
            **self._sanitize_data(extra_data or {}),
        }

        # The JSON formatter picks structured_data up in production; in
        # development the prefix keeps the id visible in plain-text logs.
        if get_settings().ENVIRONMENT == "production":
            rendered = message
        else:
            rendered = f"[{correlation_id}] {message}"
        self.logger.log(
            level,
            rendered,
            extra={"structured_data": log_data},
            exc_info=exc_info,
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Remove or mask sensitive data from log entries."""
        if not isinstance(data, dict):
            return {}
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if is_sensitive_key(key):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = self._sanitize_value(value)
        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list):
            return [self._sanitize_value(item) for item in value]
        if isinstance(value, str) and value.startswith("data:"):
            # Inline data URLs are whole documents
            return "[REDACTED]"
        return value

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info level message."""
        self._log_with_context(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning level message."""
        self._log_with_context(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error level message."""
        self._log_with_context(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log_with_context(logging.ERROR, message, kwargs, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Catch any uncaught Exception and delegate to global_exception_handler."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def build_error_response(
    *,
    message: str,
    error_type: str,
    status_code: int,
    environment: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Construct a sanitized JSON error body respecting environment rules."""
    environment = environment or get_settings().ENVIRONMENT
    allowed_fields = get_allowed_error_fields(environment)
    body = ErrorResponse(
        error=message,
        type=error_type,
        correlation_id=get_correlation_id(),
        details=details if "details" in allowed_fields and details else None,
    )
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


def domain_error_response(exc: StudyGenerationError) -> JSONResponse:
    """Map a generation domain error to its HTTP error body."""
    return build_error_response(
        message=exc.message,
        error_type=exc.error_code.value,
        status_code=ERROR_CODE_STATUS.get(
            exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler providing structured, sanitized responses."""
    environment = get_settings().ENVIRONMENT

    if isinstance(exc, StudyGenerationError):
        structured_logger.warning(
            "Generation error",
            error_type=exc.error_code.value,
            path=request.url.path,
        )
        return domain_error_response(exc)

    if isinstance(exc, StarletteHTTPException):
        detail = getattr(exc, "detail", "An error occurred")
        return build_error_response(
            message=detail if isinstance(detail, str) else "An HTTP error occurred",
            error_type="http_error",
            status_code=exc.status_code,
            environment=environment,
            details={"exception_type": exc.__class__.__name__},
        )

    if isinstance(exc, ValidationError | RequestValidationError):
        # errors() may hold non-JSON values (e.g. ctx exceptions)
        validation_errors = json.loads(json.dumps(exc.errors(), default=str))
        structured_logger.warning(
            "Validation error", validation_errors=validation_errors
        )
        return build_error_response(
            message="Invalid request data provided",
            error_type="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            environment=environment,
            details={"validation_errors": validation_errors},
        )

    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    details: dict[str, Any] | None = None
    if environment != "production":
        import traceback as _tb

        details = {
            "exception_type": exc.__class__.__name__,
            "traceback": "".join(_tb.format_exception(exc)).strip(),
        }
    return build_error_response(
        message="An internal error occurred",
        error_type="internal_server_error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        environment=environment,
        details=details,
    )


def setup_logging() -> None:
    """Configure application logging; JSON in production, plain text otherwise."""
    settings = get_settings()
    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO
    root_logger = logging.getLogger()

    # Idempotent: uvicorn reloads and tests may call this repeatedly
    if root_logger.handlers:
        return

    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)

    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
