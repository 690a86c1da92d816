"""Pydantic models for the FanFlow webhook pipeline."""

from .enums import (
    Action,
    LedgerStatus,
    LedgerTransactionType,
    PaymentStatus,
    ProcessingOutcome,
    SchemaVersion,
    TransactionType,
)
from .errors import (
    ERROR_MESSAGES,
    ErrorCode,
    ReconciliationError,
    WebhookError,
    WebhookErrorBody,
)
from .ledger import (
    AuditLogCreate,
    AuditLogRecord,
    LedgerEntry,
    LedgerEntryCreate,
    LedgerEntryUpdate,
)
from .webhook_event import (
    DEFAULT_CURRENCY,
    BatchEventItem,
    BatchWebhookEvent,
    CanonicalWebhookEvent,
    IdempotencyRecord,
    LegacyEventData,
    LegacyWebhookEvent,
    WebhookResponse,
)

__all__ = [
    # Enums
    "Action",
    "LedgerStatus",
    "LedgerTransactionType",
    "PaymentStatus",
    "ProcessingOutcome",
    "SchemaVersion",
    "TransactionType",
    # Errors
    "ERROR_MESSAGES",
    "ErrorCode",
    "ReconciliationError",
    "WebhookError",
    "WebhookErrorBody",
    # Ledger
    "AuditLogCreate",
    "AuditLogRecord",
    "LedgerEntry",
    "LedgerEntryCreate",
    "LedgerEntryUpdate",
    # Webhook events
    "DEFAULT_CURRENCY",
    "BatchEventItem",
    "BatchWebhookEvent",
    "CanonicalWebhookEvent",
    "IdempotencyRecord",
    "LegacyEventData",
    "LegacyWebhookEvent",
    "WebhookResponse",
]
