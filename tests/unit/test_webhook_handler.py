"""Unit tests for the webhook ingestion state machine.

Drives WebhookIngestionHandler directly with in-memory collaborators; the
HTTP mapping is covered by the contract tests.

Test categories:
- Rejections in check order (content type, signature, secret, JSON, freshness, structure)
- Idempotent short-circuit
- Retry and failure outcomes
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from fakes import (
    TEST_WEBHOOK_SECRET,
    InMemoryLedgerStore,
    SleepRecorder,
    create_batch_event,
    create_legacy_event,
    encode,
    sign,
)
from fanflow_shared.models import ErrorCode, LedgerStatus, ProcessingOutcome, WebhookError
from fanflow_shared.services.idempotency import IdempotencyLedger, InMemoryIdempotencyCache
from fanflow_shared.services.reconciliation import ReconciliationExecutor
from fanflow_shared.services.webhook_handler import (
    ACCEPTED_MESSAGE,
    DUPLICATE_MESSAGE,
    WebhookIngestionHandler,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
JSON = "application/json"


def _build(
    store: InMemoryLedgerStore,
    cache: InMemoryIdempotencyCache,
    sleep: SleepRecorder,
    secret: str | None = TEST_WEBHOOK_SECRET,
) -> WebhookIngestionHandler:
    return WebhookIngestionHandler(
        idempotency=IdempotencyLedger(cache, store),
        executor=ReconciliationExecutor(store, default_agency_id=1),
        secret_provider=lambda: secret,
        sleep=sleep,
        clock=lambda: NOW,
    )


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def cache() -> InMemoryIdempotencyCache:
    return InMemoryIdempotencyCache()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def handler(store: InMemoryLedgerStore, cache: InMemoryIdempotencyCache, sleep: SleepRecorder) -> WebhookIngestionHandler:
    return _build(store, cache, sleep)


def _deliver(handler: WebhookIngestionHandler, payload: Any, **kwargs: Any) -> Any:
    body = payload if isinstance(payload, bytes) else encode(payload)
    kwargs.setdefault("content_type", JSON)
    kwargs.setdefault("signature_header", sign(body))
    return handler.handle(body, **kwargs)


def _rejection(handler: WebhookIngestionHandler, payload: Any, **kwargs: Any) -> ErrorCode:
    with pytest.raises(WebhookError) as exc_info:
        _deliver(handler, payload, **kwargs)
    return exc_info.value.code


# === Rejections ===


class TestRejections:
    @pytest.mark.parametrize("content_type", [None, "text/plain", "application/x-www-form-urlencoded"])
    def test_content_type(self, handler: WebhookIngestionHandler, content_type: str | None) -> None:
        code = _rejection(handler, create_legacy_event(created_at=NOW), content_type=content_type)

        assert code == ErrorCode.INVALID_CONTENT_TYPE

    def test_content_type_with_charset_is_accepted(self, handler: WebhookIngestionHandler) -> None:
        response = _deliver(handler, create_legacy_event(created_at=NOW), content_type="application/json; charset=utf-8")

        assert response.success is True

    def test_missing_signature(self, handler: WebhookIngestionHandler) -> None:
        assert _rejection(handler, create_legacy_event(created_at=NOW), signature_header=None) == ErrorCode.MISSING_SIGNATURE

    def test_missing_secret(self, store: InMemoryLedgerStore, cache: InMemoryIdempotencyCache, sleep: SleepRecorder) -> None:
        handler = _build(store, cache, sleep, secret=None)

        assert _rejection(handler, create_legacy_event(created_at=NOW)) == ErrorCode.SECRET_NOT_CONFIGURED

    def test_invalid_signature(self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore) -> None:
        body = encode(create_legacy_event(created_at=NOW))

        code = _rejection(handler, body, signature_header=sign(body, secret="wrong"))

        assert code == ErrorCode.INVALID_SIGNATURE
        assert store.calls == {}

    def test_signature_checked_before_json(self, handler: WebhookIngestionHandler) -> None:
        assert _rejection(handler, b"{not json", signature_header="sha256=00") == ErrorCode.INVALID_SIGNATURE

    def test_signed_invalid_json(self, handler: WebhookIngestionHandler) -> None:
        assert _rejection(handler, b"{not json") == ErrorCode.INVALID_JSON

    def test_non_object_json(self, handler: WebhookIngestionHandler) -> None:
        assert _rejection(handler, [1, 2]) == ErrorCode.INVALID_EVENT_STRUCTURE

    def test_stale_event(self, handler: WebhookIngestionHandler) -> None:
        stale = create_legacy_event(created_at=NOW - timedelta(minutes=10))

        assert _rejection(handler, stale) == ErrorCode.INVALID_TIMESTAMP

    def test_future_event(self, handler: WebhookIngestionHandler) -> None:
        future = create_legacy_event(created_at=NOW + timedelta(minutes=10))

        assert _rejection(handler, future) == ErrorCode.INVALID_TIMESTAMP

    def test_missing_timestamp(self, handler: WebhookIngestionHandler) -> None:
        payload = create_legacy_event(created_at=NOW)
        del payload["data"]["created_at"]

        assert _rejection(handler, payload) == ErrorCode.INVALID_TIMESTAMP

    def test_unknown_status_is_rejected(self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore) -> None:
        payload = create_legacy_event(event_type="payment.refunded", created_at=NOW)

        assert _rejection(handler, payload) == ErrorCode.INVALID_EVENT_STRUCTURE
        assert store.entries == {}


# === Processing ===


class TestProcessing:
    def test_legacy_event_is_reconciled(self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore) -> None:
        response = _deliver(handler, create_legacy_event(event_id="evt_42", created_at=NOW))

        assert response.message == ACCEPTED_MESSAGE
        assert response.processed is True
        [entry] = store.entries_for_key("evt_42")
        assert entry.status == LedgerStatus.COMPLETED
        assert store.audit_logs[0].payload["event_id"] == "evt_42"

    def test_batch_event_is_reconciled(self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore) -> None:
        response = _deliver(handler, create_batch_event(event_id="tx_42", timestamp=int(NOW.timestamp())))

        assert response.message == ACCEPTED_MESSAGE
        assert len(store.entries_for_key("tx_42")) == 1

    def test_x_signature_style_bare_hex(self, handler: WebhookIngestionHandler) -> None:
        body = encode(create_legacy_event(created_at=NOW))

        assert _deliver(handler, body, signature_header=sign(body, prefix="")).success is True

    def test_duplicate_short_circuits(self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore) -> None:
        payload = create_legacy_event(created_at=NOW)
        _deliver(handler, payload)
        writes = store.calls["create_ledger_entry"]

        response = _deliver(handler, payload)

        assert response.message == DUPLICATE_MESSAGE
        assert store.calls["create_ledger_entry"] == writes
        assert len(store.audit_logs) == 1

    def test_duplicate_found_in_audit_log(self, store: InMemoryLedgerStore, sleep: SleepRecorder) -> None:
        payload = create_legacy_event(created_at=NOW)
        _deliver(_build(store, InMemoryIdempotencyCache(), sleep), payload)

        # A fresh cache, as after a cold start
        response = _deliver(_build(store, InMemoryIdempotencyCache(), sleep), payload)

        assert response.message == DUPLICATE_MESSAGE

    def test_transient_failure_is_retried(
        self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore, sleep: SleepRecorder
    ) -> None:
        store.fail("find_by_idempotency_key", times=2)

        response = _deliver(handler, create_legacy_event(created_at=NOW))

        assert response.success is True
        assert sleep.delays == [1.0, 2.0]
        assert store.calls["find_by_idempotency_key"] == 3
        assert len(store.entries_for_key("evt_1")) == 1

    def test_persistent_failure_marks_failure(
        self,
        handler: WebhookIngestionHandler,
        store: InMemoryLedgerStore,
        cache: InMemoryIdempotencyCache,
        sleep: SleepRecorder,
    ) -> None:
        store.fail_always("find_by_idempotency_key")

        code = _rejection(handler, create_legacy_event(created_at=NOW))

        assert code == ErrorCode.RECONCILIATION_FAILED
        assert sleep.delays == [1.0, 2.0]
        assert cache.get("evt_1").outcome == ProcessingOutcome.FAILURE  # type: ignore[union-attr]

    def test_redelivery_after_failure_is_processed(
        self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore
    ) -> None:
        payload = create_legacy_event(created_at=NOW)
        store.fail("find_by_idempotency_key", times=3)
        _rejection(handler, payload)

        response = _deliver(handler, payload)

        assert response.message == ACCEPTED_MESSAGE
        assert len(store.entries_for_key("evt_1")) == 1

    def test_redelivery_after_failure_on_cold_cache_is_processed(
        self, handler: WebhookIngestionHandler, store: InMemoryLedgerStore, sleep: SleepRecorder
    ) -> None:
        payload = create_legacy_event(created_at=NOW)
        store.fail("create_ledger_entry", times=3)
        assert _rejection(handler, payload) == ErrorCode.RECONCILIATION_FAILED
        assert [log.processed for log in store.audit_logs] == [False, False, False]

        # A fresh cache, as after a cold start
        response = _deliver(_build(store, InMemoryIdempotencyCache(), sleep), payload)

        assert response.message == ACCEPTED_MESSAGE
        assert len(store.entries_for_key("evt_1")) == 1
        assert store.audit_logs[-1].processed is True
