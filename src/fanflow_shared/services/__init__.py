"""Services for the FanFlow webhook ingestion pipeline."""

from .dynamodb import DynamoDBService
from .idempotency import (
    DynamoDBIdempotencyCache,
    IdempotencyCache,
    IdempotencyLedger,
    InMemoryIdempotencyCache,
)
from .ledger_store import LedgerStore
from .payment_update import PaymentUpdate, PaymentUpdateResult, PaymentUpdateService
from .reconciliation import ExecutionResult, ReconciliationExecutor
from .ssm_service import SSMService, SSMServiceError, get_ssm_service, resolve_webhook_secret
from .webhook_handler import WebhookIngestionHandler
from .xano_client import XanoClient, XanoClientError

__all__ = [
    "DynamoDBService",
    "DynamoDBIdempotencyCache",
    "IdempotencyCache",
    "IdempotencyLedger",
    "InMemoryIdempotencyCache",
    "LedgerStore",
    "PaymentUpdate",
    "PaymentUpdateResult",
    "PaymentUpdateService",
    "ExecutionResult",
    "ReconciliationExecutor",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "resolve_webhook_secret",
    "WebhookIngestionHandler",
    "XanoClient",
    "XanoClientError",
]
