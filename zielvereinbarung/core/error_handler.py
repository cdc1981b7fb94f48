"""
Error handling and sanitization middleware

- Database errors → generic message
- Stack traces → logged only, not returned to client
- Authentication failures → 401 without the reason, cookies cleared
- Rate limits → 429 with retry headers
"""
import logging
import traceback
from typing import Union

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.cookies import clear_session_cookies
from zielvereinbarung.core.exceptions import NotAuthenticatedError, RateLimitExceededError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Ein Fehler ist aufgetreten. Bitte versuchen Sie es später erneut."

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "key",
    "credential",
    "sqlalchemy",
    "asyncpg",
    "postgresql",
    "sqlite",
    "traceback",
    "file \"",
    "line ",
]


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Sanitize an error message for safe client exposure.

    Args:
        error: The error string or exception

    Returns:
        Sanitized error message safe for client
    """
    message = error if isinstance(error, str) else str(error)

    # In debug mode, return full message
    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return GENERIC_ERROR_MESSAGE

    # Truncate very long messages
    if len(message) > 200:
        return message[:200] + "..."

    return message


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            # Let FastAPI handle HTTPExceptions normally
            raise
        except Exception as e:
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if settings.DEBUG:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    },
                )
            return JSONResponse(
                status_code=500,
                content={
                    "error": GENERIC_ERROR_MESSAGE,
                    "error_id": error_id,
                },
            )


async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
    response = JSONResponse(status_code=401, content={"error": "Unauthorized"})
    clear_session_cookies(response)
    return response


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Structured 429 with Retry-After and X-RateLimit-* headers."""
    result = exc.result
    logger.warning(f"Rate limit exceeded on {request.url.path} (retry after {result.retry_after}s)")
    return JSONResponse(
        status_code=429,
        content={"error": result.message, "retryAfter": result.retry_after},
        headers=result.headers(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException detail is returned under "error"; server errors are sanitized."""
    detail = exc.detail
    if exc.status_code >= 500 and isinstance(detail, str):
        detail = sanitize_error_message(detail)
    content = detail if isinstance(detail, dict) else {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation → 400 with per-field messages."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Ungültige Eingabe", "details": details})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(NotAuthenticatedError, not_authenticated_handler)
    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
