"""Custom exceptions and helpers for consistent error responses."""

import functools
import json
import uuid
from typing import Any, Callable, Dict, Optional

import pydantic

from codshield.utils.logging_config import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


class UnresolvableIdentity(AppError):
    """A raw phone/email could not be normalized into a canonical form."""

    def __init__(self, kind: str, reason: str = "cannot be normalized"):
        super().__init__(f"{kind} identifier {reason}", status_code=422)
        self.kind = kind
        self.reason = reason


class UnidentifiableEvent(AppError):
    """No usable identity candidate was supplied at all."""

    def __init__(self, message: str = "No resolvable identity candidate", rejected=None):
        super().__init__(message, status_code=422)
        self.rejected = list(rejected or [])


class CorrelationNotFound(AppError):
    """Checkout correlation is absent or can no longer be matched."""

    def __init__(self, message: str = "Checkout correlation not found", status_code: int = 404):
        super().__init__(message, status_code=status_code)


class CorrelationExpired(CorrelationNotFound):
    """Checkout correlation exists but is past its expiry."""

    def __init__(self, message: str = "Checkout correlation expired"):
        super().__init__(message, status_code=410)


class ConcurrentUpdateConflict(AppError):
    """Optimistic write lost a race; callers retry internally."""

    def __init__(self, message: str = "Concurrent update conflict"):
        super().__init__(message, status_code=409)


class ServiceUnavailableError(AppError):
    """Transient failure the external transport should retry."""

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message, status_code=503)


class ConfigurationInvalid(AppError):
    """Risk or service configuration is inconsistent; never applied silently."""

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, status_code=500)


def json_response(status_code: int, body: Any, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Format a JSON API Gateway HTTP API response."""
    merged = {"Content-Type": "application/json"}
    if headers:
        merged.update(headers)
    return {
        "statusCode": status_code,
        "headers": merged,
        "body": body if isinstance(body, str) else json.dumps(body, default=str),
    }


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body = {"message": str(error), "status": "error", "error": type(error).__name__}
    if correlation_id:
        body["correlation_id"] = correlation_id
    return json_response(error.status_code, body)


def handle_errors(func: Callable) -> Callable:
    """
    Wrap a Lambda handler so failures become consistent JSON responses.

    AppError keeps its own status; request validation is a 422; anything
    unexpected is logged with a correlation id and returned as a 500.
    """

    @functools.wraps(func)
    def wrapper(event, context):
        try:
            return func(event, context)
        except AppError as exc:
            if exc.status_code >= 500:
                logger.error(str(exc), extra={"error": type(exc).__name__})
            return to_response(exc)
        except pydantic.ValidationError as exc:
            return json_response(
                422,
                {
                    "message": "Invalid request",
                    "status": "error",
                    "error": "ValidationError",
                    "details": exc.errors(include_url=False, include_input=False),
                },
            )
        except Exception:
            correlation_id = str(uuid.uuid4())
            logger.exception("Unhandled handler error", extra={"correlation_id": correlation_id})
            return json_response(
                500,
                {"message": "Internal error", "status": "error", "correlation_id": correlation_id},
            )

    return wrapper
