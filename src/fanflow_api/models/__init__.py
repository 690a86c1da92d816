"""API-specific request/response models.

Domain models (CanonicalWebhookEvent, LedgerEntry, etc.) are in
fanflow_shared.models and are reused here where appropriate.

Modules:
- common: Response bodies shared by the webhook and payment endpoints
"""

from fanflow_api.models.common import (
    ErrorResponse,
    PaymentUpdateResponse,
    PingResponse,
    WebhookResponse,
)

__all__ = [
    "ErrorResponse",
    "PaymentUpdateResponse",
    "PingResponse",
    "WebhookResponse",
]
