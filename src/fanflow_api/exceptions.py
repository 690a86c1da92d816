"""FastAPI exception handlers for converting WebhookError to HTTP responses.

Every rejection renders the same small body, ``{success, message,
processed}``, so the provider never sees stack traces or internal detail.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: Malformed transport or payload, missing payment data
- 401 Unauthorized: Missing or invalid signature, stale timestamp
- 405 Method Not Allowed: Anything but POST on the ingestion endpoints
- 500 Internal Server Error: Missing secret, reconciliation failure

Usage:
    Register handlers in FastAPI app:

    from fanflow_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from fanflow_shared.models import ERROR_MESSAGES, ErrorCode, WebhookError, WebhookErrorBody

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Transport/format and validation errors -> 400 Bad Request
    ErrorCode.INVALID_CONTENT_TYPE: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_JSON: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_EVENT_STRUCTURE: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_PAYMENT_DATA: HTTP_400_BAD_REQUEST,
    # Authentication errors -> 401 Unauthorized
    ErrorCode.MISSING_SIGNATURE: HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_SIGNATURE: HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_TIMESTAMP: HTTP_401_UNAUTHORIZED,
    # Server-side errors -> 500 Internal Server Error
    ErrorCode.SECRET_NOT_CONFIGURED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.RECONCILIATION_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.PAYMENT_PROCESSING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.METHOD_NOT_ALLOWED: HTTP_405_METHOD_NOT_ALLOWED,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode.

    Args:
        code: The ErrorCode to map

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


def _error_response(
    status_code: int,
    body: WebhookErrorBody,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    """Handle WebhookError exceptions and convert to JSON response.

    Args:
        request: The incoming request (unused but required by FastAPI)
        exc: The WebhookError exception

    Returns:
        JSONResponse with the uniform error body and mapped status code.
    """
    status_code = get_http_status_for_error(exc.code)
    if exc.details:
        logger.info("Request rejected | code=%s | status=%d | details=%s", exc.code.value, status_code, exc.details)
    return _error_response(status_code, exc.to_body())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (404, 405 from routing) in the uniform body."""
    if exc.status_code == HTTP_405_METHOD_NOT_ALLOWED:
        message = ERROR_MESSAGES[ErrorCode.METHOD_NOT_ALLOWED]
    else:
        message = str(exc.detail)
    return _error_response(exc.status_code, WebhookErrorBody(message=message), exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors as 400 with no field-level detail."""
    logger.info("Request validation failed: %d error(s)", len(exc.errors()))
    return _error_response(
        HTTP_400_BAD_REQUEST,
        WebhookErrorBody(message=ERROR_MESSAGES[ErrorCode.INVALID_EVENT_STRUCTURE]),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with a generic error response.

    Args:
        request: The incoming request (unused but required by FastAPI)
        exc: The uncaught exception

    Returns:
        JSONResponse with 500 status and generic error message.
    """
    logger.exception("Unhandled exception: %s", exc)

    # Return generic error to client (don't expose internal details)
    return _error_response(
        HTTP_500_INTERNAL_SERVER_ERROR,
        WebhookErrorBody(message=ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR]),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Call this function during app initialization to enable
    consistent error handling across all routes.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(WebhookError, webhook_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
