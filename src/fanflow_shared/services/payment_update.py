"""Direct payment updates reported by the checkout widgets.

The widgets confirm on-chain payments client-side and post them here; the
webhook pipeline later reconciles the same payment from the provider side.
"""

import time
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from fanflow_shared.models import (
    AuditLogCreate,
    ErrorCode,
    LedgerEntry,
    LedgerEntryCreate,
    LedgerStatus,
    TransactionType,
    WebhookError,
)
from fanflow_shared.utils.logging import get_logger, log_ledger_operation

from .ledger_store import LedgerStore
from .reconciliation import to_ledger_type

logger = get_logger(__name__)

PROCESSING_FEE_RATE = Decimal("0.025")
DIRECT_PAYMENT_METHOD = "crypto"
DIRECT_PAYMENT_EVENT_TYPE = "payment.completed"
MONEY_QUANTUM = Decimal("0.000001")


class PaymentUpdate(BaseModel):
    """A client-confirmed payment."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    amount: Decimal | None = None
    gems: int | None = None
    agency_id: str | None = Field(default=None, alias="agencyId")
    creator_id: str | None = Field(default=None, alias="creatorId")
    wallet_address: str | None = Field(default=None, alias="walletAddress")
    transaction_hash: str | None = Field(default=None, alias="transactionHash")
    transaction_type: TransactionType = Field(
        default=TransactionType.GEMS, alias="transactionType"
    )


class PaymentUpdateResult(BaseModel):
    """Outcome of a payment update."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    transaction_id: str | None = Field(default=None, serialization_alias="transactionId")


def processing_fee(amount: Decimal) -> Decimal:
    """The 2.5% processing fee on a payment amount."""
    return (amount * PROCESSING_FEE_RATE).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def idempotency_key_for(payment: PaymentUpdate, now_ms: int) -> str:
    """Key payments by transaction hash when known, else by payer, amount and time."""
    if payment.transaction_hash:
        return f"tx_{payment.transaction_hash}"
    return f"payment_{payment.wallet_address}_{payment.amount}_{now_ms}"


class PaymentUpdateService:
    """Records client-confirmed payments in the ledger."""

    def __init__(
        self,
        store: LedgerStore,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._store = store
        self._clock_ms = clock_ms

    def record_payment(self, payment: PaymentUpdate) -> PaymentUpdateResult:
        """Create a completed ledger entry for a payment, once per idempotency key.

        Raises:
            WebhookError: MISSING_PAYMENT_DATA for incomplete input,
                PAYMENT_PROCESSING_FAILED when the ledger store fails
        """
        if not _is_complete(payment):
            logger.warning(
                "Rejected payment update with missing data | wallet=%s | agency=%s",
                payment.wallet_address,
                payment.agency_id,
            )
            raise WebhookError(ErrorCode.MISSING_PAYMENT_DATA)

        try:
            agency = int(payment.agency_id)
            creator = int(payment.creator_id) if payment.creator_id else None
        except ValueError as e:
            raise WebhookError(ErrorCode.MISSING_PAYMENT_DATA, {"error": str(e)}) from e

        key = idempotency_key_for(payment, self._clock_ms())

        try:
            existing = self._store.find_by_idempotency_key(key)
            if existing is not None:
                logger.info("Payment already recorded | idempotency_key=%s | ledger_id=%s", key, existing.id)
                return self._result(payment, existing)

            entry = self._store.create_ledger_entry(
                LedgerEntryCreate(
                    idempotency_key=key,
                    amount=payment.amount,
                    fee=processing_fee(payment.amount),
                    status=LedgerStatus.COMPLETED,
                    type=to_ledger_type(payment.transaction_type),
                    payment_method=DIRECT_PAYMENT_METHOD,
                    thirdweb_transaction_id=payment.transaction_hash,
                    agency=agency,
                    creator=creator,
                    wallet_address=payment.wallet_address,
                    metadata=_payment_metadata(payment),
                )
            )
            self._store.append_audit_log(
                AuditLogCreate(
                    event_type=DIRECT_PAYMENT_EVENT_TYPE,
                    transaction=entry.id,
                    payload={
                        "transactionType": payment.transaction_type.value,
                        "amount": str(payment.amount),
                        "walletAddress": payment.wallet_address,
                        "transactionHash": payment.transaction_hash,
                        "timestamp": datetime.now(UTC).isoformat(),
                    },
                    processed=True,
                )
            )
        except Exception as e:
            log_ledger_operation(logger, "RECORD_PAYMENT", event_id=key, error=str(e))
            raise WebhookError(ErrorCode.PAYMENT_PROCESSING_FAILED) from e

        log_ledger_operation(
            logger,
            "RECORD_PAYMENT",
            event_id=key,
            ledger_id=entry.id,
            status=entry.status.value,
            amount=str(entry.amount),
            fee=str(entry.fee),
            net_amount=str(entry.net_amount),
            gems=payment.gems,
        )
        return self._result(payment, entry)

    @staticmethod
    def _result(payment: PaymentUpdate, entry: LedgerEntry) -> PaymentUpdateResult:
        return PaymentUpdateResult(
            message=f"Payment processed: {payment.gems} gems purchased for ${payment.amount}",
            transaction_id=str(entry.id),
        )


def _is_complete(payment: PaymentUpdate) -> bool:
    return bool(
        payment.amount
        and payment.amount > 0
        and payment.gems
        and payment.gems > 0
        and payment.agency_id
        and payment.wallet_address
    )


def _payment_metadata(payment: PaymentUpdate) -> dict[str, Any]:
    if payment.transaction_type == TransactionType.GEMS and payment.gems:
        return {"message_count": payment.gems}
    if payment.transaction_type == TransactionType.POKE:
        return {"message_count": 1}
    return {}
