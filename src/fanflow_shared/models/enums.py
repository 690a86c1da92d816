"""Enumeration types for webhook and ledger data models."""

from enum import Enum


class PaymentStatus(str, Enum):
    """Canonical lifecycle state of a webhook payment event."""

    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    """Product purchased through the payment widgets."""

    GEMS = "gems"
    POKE = "poke"
    MEDIA = "media"
    SUBSCRIPTION = "subscription"


class SchemaVersion(str, Enum):
    """Inbound webhook envelope formats."""

    LEGACY = "legacy"  # {type, data: {...}}
    BATCH = "batch"  # {topic, timestamp, data: [...]}


class LedgerStatus(str, Enum):
    """Status vocabulary of the ff_transaction table."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class LedgerTransactionType(str, Enum):
    """Type vocabulary of the ff_transaction table."""

    CHAT = "chat"
    SCRIPT = "script"
    MEDIA = "media"
    SUBSCRIPTION = "subscription"


class ProcessingOutcome(str, Enum):
    """Result of one reconciliation attempt."""

    SUCCESS = "success"
    FAILURE = "failure"


class Action(str, Enum):
    """Side effects derived from a canonical event, in execution order."""

    UPDATE_LEDGER_STATUS = "UPDATE_LEDGER_STATUS"
    WRITE_AUDIT_LOG = "WRITE_AUDIT_LOG"
    CREDIT_BALANCE = "CREDIT_BALANCE"
    HANDLE_FAILURE_CLEANUP = "HANDLE_FAILURE_CLEANUP"
    HANDLE_CANCELLATION_CLEANUP = "HANDLE_CANCELLATION_CLEANUP"
