"""Unit tests for direct payment updates.

Test categories:
- Required-field validation
- Ledger entry contents (fee, net amount, type, metadata)
- Idempotency by transaction hash
- Store failures
"""

from decimal import Decimal
from typing import Any

import pytest

from fakes import TEST_WALLET, InMemoryLedgerStore
from fanflow_shared.models import ErrorCode, LedgerStatus, LedgerTransactionType, WebhookError
from fanflow_shared.services.payment_update import (
    PaymentUpdate,
    PaymentUpdateService,
    idempotency_key_for,
    processing_fee,
)

NOW_MS = 1772366400000


def _payment(**overrides: Any) -> PaymentUpdate:
    body: dict[str, Any] = {
        "amount": "10.00",
        "gems": 100,
        "agencyId": "7",
        "creatorId": "42",
        "walletAddress": TEST_WALLET,
        "transactionHash": "0xfeed",
        "transactionType": "gems",
    }
    body.update(overrides)
    return PaymentUpdate.model_validate({k: v for k, v in body.items() if v is not None})


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def service(store: InMemoryLedgerStore) -> PaymentUpdateService:
    return PaymentUpdateService(store, clock_ms=lambda: NOW_MS)


# === Validation ===


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": None},
            {"amount": "0"},
            {"gems": None},
            {"gems": 0},
            {"agencyId": None},
            {"walletAddress": None},
            {"agencyId": "acme"},
        ],
    )
    def test_incomplete_payment_is_rejected(
        self, service: PaymentUpdateService, store: InMemoryLedgerStore, overrides: dict[str, Any]
    ) -> None:
        with pytest.raises(WebhookError) as exc_info:
            service.record_payment(_payment(**overrides))

        assert exc_info.value.code == ErrorCode.MISSING_PAYMENT_DATA
        assert store.entries == {}

    def test_numeric_agency_id_is_accepted(self) -> None:
        assert _payment(agencyId=7).agency_id == "7"


# === Ledger Entry ===


class TestRecordPayment:
    def test_creates_completed_entry_with_fee(self, service: PaymentUpdateService, store: InMemoryLedgerStore) -> None:
        result = service.record_payment(_payment())

        [entry] = store.entries.values()
        assert result.success is True
        assert result.transaction_id == str(entry.id)
        assert result.message == "Payment processed: 100 gems purchased for $10.00"
        assert entry.idempotency_key == "tx_0xfeed"
        assert entry.status == LedgerStatus.COMPLETED
        assert entry.fee == Decimal("0.25")
        assert entry.net_amount == Decimal("9.75")
        assert entry.type == LedgerTransactionType.CHAT
        assert entry.payment_method == "crypto"
        assert entry.agency == 7
        assert entry.creator == 42
        assert entry.metadata == {"message_count": 100}

    def test_appends_audit_log_linked_to_entry(self, service: PaymentUpdateService, store: InMemoryLedgerStore) -> None:
        service.record_payment(_payment())

        [entry] = store.entries.values()
        [record] = store.audit_logs
        assert record.transaction == entry.id
        assert record.event_type == "payment.completed"
        assert record.payload["transactionHash"] == "0xfeed"

    def test_poke_counts_one_message(self, service: PaymentUpdateService, store: InMemoryLedgerStore) -> None:
        service.record_payment(_payment(transactionType="poke"))

        [entry] = store.entries.values()
        assert entry.metadata == {"message_count": 1}

    def test_media_has_no_message_count(self, service: PaymentUpdateService, store: InMemoryLedgerStore) -> None:
        service.record_payment(_payment(transactionType="media"))

        [entry] = store.entries.values()
        assert entry.type == LedgerTransactionType.MEDIA
        assert entry.metadata == {}

    def test_same_transaction_hash_is_recorded_once(
        self, service: PaymentUpdateService, store: InMemoryLedgerStore
    ) -> None:
        first = service.record_payment(_payment())
        second = service.record_payment(_payment())

        assert first.transaction_id == second.transaction_id
        assert len(store.entries) == 1
        assert len(store.audit_logs) == 1

    def test_store_failure(self, service: PaymentUpdateService, store: InMemoryLedgerStore) -> None:
        store.fail("create_ledger_entry")

        with pytest.raises(WebhookError) as exc_info:
            service.record_payment(_payment())

        assert exc_info.value.code == ErrorCode.PAYMENT_PROCESSING_FAILED


# === Helpers ===


class TestHelpers:
    def test_processing_fee(self) -> None:
        assert processing_fee(Decimal("10")) == Decimal("0.25")
        assert processing_fee(Decimal("0.99")) == Decimal("0.024750")

    def test_key_without_hash_uses_wallet_amount_and_time(self) -> None:
        payment = _payment(transactionHash=None)

        assert idempotency_key_for(payment, NOW_MS) == f"payment_{TEST_WALLET}_10.00_{NOW_MS}"
