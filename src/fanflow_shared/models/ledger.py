"""Ledger and audit-log models for the Xano ff_transaction / ff_webhook_event tables."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .enums import LedgerStatus, LedgerTransactionType

MONEY_FIELDS = ("amount", "fee", "net_amount")


class LedgerEntry(BaseModel):
    """A financial transaction row owned by the external ledger store."""

    model_config = ConfigDict(extra="allow")

    id: int = Field(..., description="Store-assigned primary key")
    idempotency_key: str
    amount: Decimal
    fee: Decimal = Decimal("0")
    net_amount: Decimal
    status: LedgerStatus
    type: LedgerTransactionType
    payment_method: str | None = None
    thirdweb_transaction_id: str | None = None
    agency: int | None = None
    creator: int | None = None
    wallet_address: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int | None = Field(default=None, description="Xano epoch ms")
    updated_at: int | None = Field(default=None, description="Xano epoch ms")


class LedgerEntryCreate(BaseModel):
    """Data required to create a ledger entry.

    ``net_amount`` is always derived as ``amount - fee``; a caller-supplied
    value is overwritten.
    """

    idempotency_key: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    net_amount: Decimal | None = None
    status: LedgerStatus = LedgerStatus.PENDING
    type: LedgerTransactionType
    payment_method: str | None = None
    thirdweb_transaction_id: str | None = None
    agency: int
    creator: int | None = None
    wallet_address: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _derive_net_amount(self) -> "LedgerEntryCreate":
        self.net_amount = self.amount - self.fee
        return self

    @field_serializer(*MONEY_FIELDS, when_used="json")
    def _money_as_number(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None


class LedgerEntryUpdate(BaseModel):
    """Partial update of a ledger entry; unset fields are left untouched."""

    status: LedgerStatus | None = None
    thirdweb_transaction_id: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    fee: Decimal | None = Field(default=None, ge=0)
    net_amount: Decimal | None = None
    metadata: dict[str, Any] | None = None

    @field_serializer(*MONEY_FIELDS, when_used="json")
    def _money_as_number(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None


class AuditLogRecord(BaseModel):
    """An immutable row of the ff_webhook_event table."""

    model_config = ConfigDict(extra="allow")

    id: int
    event_type: str | None = None
    transaction: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    signature: str | None = None
    processed: bool = False
    error: str | None = None
    created_at: int | None = None

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_defaults_to_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class AuditLogCreate(BaseModel):
    """Data required to append an audit-log record."""

    event_type: str | None = None
    transaction: int | None = None
    payload: dict[str, Any]
    signature: str | None = None
    processed: bool = True
    error: str | None = None
