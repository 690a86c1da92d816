"""Standard error codes for the webhook ingestion pipeline.

Every rejection the ingestion endpoint can produce has a code here. The API
layer maps codes to HTTP status codes; the provider only ever sees the
message, never internal detail.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Webhook and payment error codes."""

    # Transport/format errors (ERR_WH_001-ERR_WH_003)
    INVALID_CONTENT_TYPE = "ERR_WH_001"
    INVALID_JSON = "ERR_WH_002"
    INVALID_EVENT_STRUCTURE = "ERR_WH_003"

    # Authentication errors (ERR_WH_AUTH_001-ERR_WH_AUTH_003)
    MISSING_SIGNATURE = "ERR_WH_AUTH_001"
    INVALID_SIGNATURE = "ERR_WH_AUTH_002"
    INVALID_TIMESTAMP = "ERR_WH_AUTH_003"

    # Server-side errors (ERR_WH_SRV_001-ERR_WH_SRV_003)
    SECRET_NOT_CONFIGURED = "ERR_WH_SRV_001"
    RECONCILIATION_FAILED = "ERR_WH_SRV_002"
    INTERNAL_ERROR = "ERR_WH_SRV_003"

    # Direct payment update errors (ERR_PAY_001-ERR_PAY_002)
    MISSING_PAYMENT_DATA = "ERR_PAY_001"
    PAYMENT_PROCESSING_FAILED = "ERR_PAY_002"

    METHOD_NOT_ALLOWED = "ERR_METHOD"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_CONTENT_TYPE: "Invalid content type",
    ErrorCode.INVALID_JSON: "Invalid JSON payload",
    ErrorCode.INVALID_EVENT_STRUCTURE: "Invalid webhook event structure",
    ErrorCode.MISSING_SIGNATURE: "Missing signature header",
    ErrorCode.INVALID_SIGNATURE: "Invalid signature",
    ErrorCode.INVALID_TIMESTAMP: "Invalid timestamp",
    ErrorCode.SECRET_NOT_CONFIGURED: "Webhook secret not configured",
    ErrorCode.RECONCILIATION_FAILED: "Internal server error",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
    ErrorCode.MISSING_PAYMENT_DATA: "Missing required payment data",
    ErrorCode.PAYMENT_PROCESSING_FAILED: "Payment processing failed",
    ErrorCode.METHOD_NOT_ALLOWED: "Method not allowed",
}


class WebhookErrorBody(BaseModel):
    """Response body for every rejected webhook request."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    message: str
    processed: bool = False


class WebhookError(Exception):
    """Raised by the ingestion pipeline to reject a request.

    Carries an ErrorCode; the API layer decides the HTTP status.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> WebhookErrorBody:
        """Convert this exception to the provider-facing response body."""
        return WebhookErrorBody(message=self.message)


class ReconciliationError(Exception):
    """Raised when a planned action sequence did not fully succeed."""

    def __init__(self, event_id: str, failed_actions: list[str]) -> None:
        self.event_id = event_id
        self.failed_actions = failed_actions
        super().__init__(
            f"Reconciliation failed for {event_id}: {', '.join(failed_actions) or 'unknown'}"
        )
