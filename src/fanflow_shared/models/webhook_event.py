"""Webhook event models: provider envelopes and the canonical event.

The two provider envelopes are parsed once at the normalization boundary.
Everything downstream of the normalizer only sees CanonicalWebhookEvent.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import PaymentStatus, ProcessingOutcome, TransactionType

DEFAULT_CURRENCY = "USDC"


# === Provider envelopes ===


class LegacyEventData(BaseModel):
    """Payload object of a legacy single-event webhook."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1, description="Provider event ID")
    amount: Any = Field(default=None, description="Decimal amount as sent by provider")
    currency: str | None = None
    status: str | None = None
    metadata: dict[str, Any] | None = None
    customer: dict[str, Any] | None = None
    created_at: Any = Field(default=None, description="Provider event time")


class LegacyWebhookEvent(BaseModel):
    """Legacy envelope: ``{type, data: {...}}``."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, examples=["payment.completed"])
    data: LegacyEventData


class BatchEventItem(BaseModel):
    """One on-chain transaction inside a batch envelope."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    type: str | None = Field(default=None, examples=["transaction"])
    status: str | None = Field(default=None, examples=["new"])
    data: dict[str, Any] = Field(default_factory=dict)


class BatchWebhookEvent(BaseModel):
    """Topic/batch envelope: ``{topic, timestamp, data: [...]}``."""

    model_config = ConfigDict(extra="allow")

    topic: str = Field(..., min_length=1, examples=["v1.transactions"])
    timestamp: Any
    data: list[BatchEventItem] = Field(..., min_length=1)


# === Canonical event ===


class CanonicalWebhookEvent(BaseModel):
    """Schema-independent representation of one payment notification.

    ``event_id`` is the idempotency key for the whole pipeline.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(..., min_length=1, description="Idempotency key")
    event_type: str = Field(..., examples=["payment.completed"])
    transaction_id: str = Field(..., description="Provider transaction reference")
    amount: Decimal = Field(..., description="Finite, non-negative amount")
    currency: str = Field(default=DEFAULT_CURRENCY)
    status: PaymentStatus
    customer_wallet_address: str = Field(default="")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @field_validator("amount")
    @classmethod
    def _amount_is_finite_and_non_negative(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value < 0:
            raise ValueError("amount must be a finite, non-negative number")
        return value

    @property
    def agency_id(self) -> str | None:
        value = self.metadata.get("agencyId")
        return str(value) if value not in (None, "") else None

    @property
    def creator_id(self) -> str | None:
        value = self.metadata.get("creatorId")
        return str(value) if value not in (None, "") else None

    @property
    def transaction_type(self) -> TransactionType | None:
        try:
            return TransactionType(self.metadata.get("transactionType"))
        except ValueError:
            return None

    @property
    def gems_purchased(self) -> Any:
        return self.metadata.get("gems_purchased")


class IdempotencyRecord(BaseModel):
    """Outcome of the last reconciliation attempt for an event."""

    event_id: str
    processed: bool = True
    outcome: ProcessingOutcome
    recorded_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.processed and self.outcome == ProcessingOutcome.SUCCESS


class WebhookResponse(BaseModel):
    """Body returned to the provider for an accepted delivery."""

    success: bool = True
    message: str
    processed: bool = True
