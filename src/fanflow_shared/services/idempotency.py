"""Idempotency ledger: short-circuits redelivered webhook events.

A fast cache (in-process or shared DynamoDB table) fronts the durable
audit log kept in the ledger store. The cache is an optimisation only;
the audit log stays authoritative after cache entries expire.
"""

import logging
import time
from datetime import UTC, datetime
from typing import Any, Callable, Protocol

from fanflow_shared.models import IdempotencyRecord, ProcessingOutcome

from .dynamodb import DynamoDBService, get_dynamodb_service
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300


class IdempotencyCache(Protocol):
    """Short-lived store of recent processing outcomes."""

    def get(self, event_id: str) -> IdempotencyRecord | None: ...

    def set(self, record: IdempotencyRecord) -> None: ...

    def evict(self, event_id: str) -> None: ...

    def evict_expired(self) -> int: ...


class InMemoryIdempotencyCache:
    """Process-local TTL cache.

    Expired entries are invisible to get() and are purged by a sweep that
    runs at most once per TTL window, triggered from set().
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, IdempotencyRecord]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at > self._ttl

    def get(self, event_id: str) -> IdempotencyRecord | None:
        entry = self._entries.get(event_id)
        if entry is None:
            return None
        stored_at, record = entry
        if self._is_expired(stored_at, self._clock()):
            self._entries.pop(event_id, None)
            return None
        return record

    def set(self, record: IdempotencyRecord) -> None:
        now = self._clock()
        # Last write wins
        self._entries[record.event_id] = (now, record)
        if now - self._last_sweep >= self._ttl:
            self.evict_expired()

    def evict(self, event_id: str) -> None:
        self._entries.pop(event_id, None)

    def evict_expired(self) -> int:
        """Purge expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        self._last_sweep = now
        expired = [
            event_id
            for event_id, (stored_at, _) in self._entries.items()
            if self._is_expired(stored_at, now)
        ]
        for event_id in expired:
            del self._entries[event_id]
        if expired:
            logger.info(
                "Cleaned up processed events cache | cleaned=%d | remaining=%d",
                len(expired),
                len(self._entries),
            )
        return len(expired)


class DynamoDBIdempotencyCache:
    """Cache shared by every process instance, backed by a DynamoDB table.

    Items carry an ``expires_at`` epoch attribute for DynamoDB native TTL.
    Since TTL deletion is lazy, reads also ignore items past their expiry.
    """

    TABLE = "webhook-idempotency"

    def __init__(
        self,
        db: DynamoDBService | None = None,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db or get_dynamodb_service()
        self._ttl = ttl_seconds
        self._clock = clock

    def get(self, event_id: str) -> IdempotencyRecord | None:
        item = self._db.get_item(self.TABLE, {"event_id": event_id})
        if not item or int(item.get("expires_at", 0)) <= self._clock():
            return None
        return _item_to_record(item)

    def set(self, record: IdempotencyRecord) -> None:
        self._db.put_item(
            self.TABLE,
            {
                "event_id": record.event_id,
                "processed": record.processed,
                "outcome": record.outcome.value,
                "recorded_at": record.recorded_at.isoformat(),
                "expires_at": int(self._clock() + self._ttl),
            },
        )

    def evict(self, event_id: str) -> None:
        self._db.delete_item(self.TABLE, {"event_id": event_id})

    def evict_expired(self) -> int:
        # DynamoDB TTL deletes expired items server-side
        return 0


def _item_to_record(item: dict[str, Any]) -> IdempotencyRecord:
    return IdempotencyRecord(
        event_id=item["event_id"],
        processed=bool(item.get("processed", True)),
        outcome=ProcessingOutcome(item["outcome"]),
        recorded_at=datetime.fromisoformat(item["recorded_at"]),
    )


class IdempotencyLedger:
    """Tracks which canonical events have been durably applied.

    Only a ``success`` outcome short-circuits a delivery. A cached
    ``failure`` lets the provider's redelivery run the pipeline again.
    """

    def __init__(self, cache: IdempotencyCache, store: LedgerStore) -> None:
        self._cache = cache
        self._store = store

    def is_processed(self, event_id: str) -> bool:
        """Check whether an event was already applied.

        Reads the cache first; on a miss, scans the durable audit log for a
        record carrying this event id and caches what it finds. Any lookup
        error counts as "not processed": reprocessing is safe because the
        ledger write is keyed by the same event id, dropping a payment is not.
        """
        try:
            cached = self._cache.get(event_id)
        except Exception as e:
            logger.error("Idempotency cache lookup failed for %s: %s", event_id, e)
            cached = None

        if cached is not None:
            logger.info(
                "Event found in cache | event_id=%s | outcome=%s",
                event_id,
                cached.outcome.value,
            )
            return cached.succeeded

        try:
            audit_logs = self._store.list_audit_logs()
        except Exception as e:
            logger.error("Error checking event idempotency for %s: %s", event_id, e)
            return False

        matches = [log for log in audit_logs if log.payload.get("event_id") == event_id]
        if not matches:
            return False

        processed = any(log.processed for log in matches)
        record = IdempotencyRecord(
            event_id=event_id,
            processed=processed,
            outcome=ProcessingOutcome.SUCCESS if processed else ProcessingOutcome.FAILURE,
            recorded_at=datetime.now(UTC),
        )
        logger.info("Event found in audit log | event_id=%s | processed=%s", event_id, processed)
        self._remember(record)
        return record.succeeded

    def mark_processed(self, event_id: str, outcome: ProcessingOutcome) -> IdempotencyRecord:
        """Record the outcome of a reconciliation attempt in the cache.

        Durable persistence happens through the executor's audit-log action.
        """
        record = IdempotencyRecord(
            event_id=event_id,
            processed=True,
            outcome=outcome,
            recorded_at=datetime.now(UTC),
        )
        self._remember(record)
        logger.info("Event marked as processed | event_id=%s | result=%s", event_id, outcome.value)
        return record

    def _remember(self, record: IdempotencyRecord) -> None:
        try:
            self._cache.set(record)
        except Exception as e:
            # Cache write failures leave the audit log authoritative
            logger.error("Idempotency cache write failed for %s: %s", record.event_id, e)
