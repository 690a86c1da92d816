"""Shared API response models.

Every endpoint answers with a small JSON body; rejected requests use
ErrorResponse so the provider never sees internal detail.
"""

from pydantic import BaseModel, ConfigDict, Field

from fanflow_shared.models import WebhookErrorBody, WebhookResponse

# Re-exported: the webhook endpoint's success and error bodies
ErrorResponse = WebhookErrorBody

__all__ = [
    "ErrorResponse",
    "PaymentUpdateResponse",
    "PingResponse",
    "WebhookResponse",
]


class PaymentUpdateResponse(BaseModel):
    """Response of POST /api/update-payment."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = Field(..., examples=["Payment processed: 100 gems purchased for $10.00"])
    transaction_id: str | None = Field(
        default=None,
        alias="transactionId",
        description="Ledger entry ID",
    )


class PingResponse(BaseModel):
    """Liveness check response."""

    status: str = "ok"
    timestamp: str
    service: str
