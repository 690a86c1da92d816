"""Webhook ingestion handler: the request state machine behind /api/webhook.

RECEIVED -> AUTHENTICATED -> NORMALIZED -> DUPLICATE | PLANNED -> EXECUTED
-> ACKED_SUCCESS | ACKED_FAILURE

Every rejection is raised as a WebhookError; the API layer turns its code
into an HTTP status. Only the status and a short message ever reach the
provider.
"""

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fanflow_shared.models import (
    Action,
    CanonicalWebhookEvent,
    ErrorCode,
    ProcessingOutcome,
    ReconciliationError,
    WebhookError,
    WebhookResponse,
)
from fanflow_shared.utils.logging import (
    get_logger,
    log_processing_metrics,
    log_security_event,
    log_webhook_event,
)
from fanflow_shared.utils.retry import DEFAULT_ATTEMPTS, DEFAULT_INITIAL_DELAY_SECONDS, with_retry

from . import signature
from .idempotency import IdempotencyLedger
from .normalizer import extract_event_id, extract_event_timestamp, normalize
from .planner import plan
from .reconciliation import ExecutionResult, ReconciliationExecutor

logger = get_logger(__name__)

SIGNATURE_HEADERS = ("x-webhook-signature", "x-signature")
DELIVERY_ID_HEADER = "x-webhook-id"
JSON_CONTENT_TYPE = "application/json"
UNKNOWN_EVENT_ID = "unknown"

ACCEPTED_MESSAGE = "Webhook received successfully"
DUPLICATE_MESSAGE = "Event already processed (idempotent)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookIngestionHandler:
    """Authenticates, deduplicates and reconciles one webhook delivery."""

    def __init__(
        self,
        idempotency: IdempotencyLedger,
        executor: ReconciliationExecutor,
        secret_provider: Callable[[], str | None],
        *,
        replay_window: timedelta = signature.DEFAULT_REPLAY_WINDOW,
        retry_attempts: int = DEFAULT_ATTEMPTS,
        retry_initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the handler.

        Args:
            idempotency: Processed-event ledger
            executor: Applies planned actions to the ledger store
            secret_provider: Returns the shared webhook secret, None if unset
            replay_window: Allowed skew between event time and server time
            retry_attempts: Attempts around the reconciliation step
            retry_initial_delay: First backoff delay in seconds, doubled per attempt
            sleep: Backoff sleep function, injectable for tests
            clock: Current time for the freshness check
        """
        self._idempotency = idempotency
        self._executor = executor
        self._secret_provider = secret_provider
        self._replay_window = replay_window
        self._retry_attempts = retry_attempts
        self._retry_initial_delay = retry_initial_delay
        self._sleep = sleep
        self._clock = clock

    def handle(
        self,
        raw_body: bytes,
        *,
        content_type: str | None,
        signature_header: str | None,
        delivery_id: str | None = None,
    ) -> WebhookResponse:
        """Process one delivery end to end.

        Args:
            raw_body: Request body exactly as received
            content_type: Content-Type header
            signature_header: Value of x-webhook-signature or x-signature
            delivery_id: Optional provider delivery id (x-webhook-id)

        Returns:
            WebhookResponse for a processed or already-processed event

        Raises:
            WebhookError: On any rejection or reconciliation failure
        """
        started = time.perf_counter()
        event_id = UNKNOWN_EVENT_ID
        succeeded = False

        try:
            event = self._authenticate(raw_body, content_type, signature_header, delivery_id)
            event_id = event.event_id

            if self._idempotency.is_processed(event_id):
                log_webhook_event(logger, event.event_type, event_id, result="duplicate")
                succeeded = True
                return WebhookResponse(message=DUPLICATE_MESSAGE)

            actions = plan(event)
            log_webhook_event(
                logger,
                event.event_type,
                event_id,
                result="planned",
                status=event.status.value,
                amount=str(event.amount),
                actions=",".join(a.value for a in actions),
            )

            try:
                with_retry(
                    lambda: self._reconcile(event, actions),
                    attempts=self._retry_attempts,
                    initial_delay=self._retry_initial_delay,
                    sleep=self._sleep,
                )
            except Exception as e:
                self._idempotency.mark_processed(event_id, ProcessingOutcome.FAILURE)
                log_webhook_event(logger, event.event_type, event_id, result="error", error=str(e))
                raise WebhookError(ErrorCode.RECONCILIATION_FAILED, {"event_id": event_id}) from e

            self._idempotency.mark_processed(event_id, ProcessingOutcome.SUCCESS)
            log_webhook_event(logger, event.event_type, event_id, result="success")
            succeeded = True
            return WebhookResponse(message=ACCEPTED_MESSAGE)

        except WebhookError:
            raise
        except Exception as e:
            logger.exception("Webhook processing error | event_id=%s", event_id)
            if event_id != UNKNOWN_EVENT_ID:
                self._idempotency.mark_processed(event_id, ProcessingOutcome.FAILURE)
            raise WebhookError(ErrorCode.INTERNAL_ERROR) from e
        finally:
            log_processing_metrics(
                logger, event_id, (time.perf_counter() - started) * 1000, succeeded
            )

    # === State transitions ===

    def _authenticate(
        self,
        raw_body: bytes,
        content_type: str | None,
        signature_header: str | None,
        delivery_id: str | None,
    ) -> CanonicalWebhookEvent:
        """RECEIVED -> AUTHENTICATED -> NORMALIZED."""
        if not content_type or JSON_CONTENT_TYPE not in content_type.lower():
            log_webhook_event(
                logger, None, UNKNOWN_EVENT_ID, result="rejected", content_type=content_type
            )
            raise WebhookError(ErrorCode.INVALID_CONTENT_TYPE)

        if not signature_header:
            log_security_event(logger, "MISSING_SIGNATURE", delivery_id=delivery_id)
            raise WebhookError(ErrorCode.MISSING_SIGNATURE)

        secret = self._secret_provider()
        if not secret:
            log_security_event(
                logger,
                "MISSING_WEBHOOK_SECRET",
                event_id=_peek_event_id(raw_body),
                delivery_id=delivery_id,
            )
            raise WebhookError(ErrorCode.SECRET_NOT_CONFIGURED)

        # Checked before parsing so forged bodies are rejected regardless of content
        if not signature.verify(raw_body, signature_header, secret):
            log_security_event(
                logger,
                "INVALID_SIGNATURE",
                event_id=_peek_event_id(raw_body),
                signature=signature_header,
                delivery_id=delivery_id,
            )
            raise WebhookError(ErrorCode.INVALID_SIGNATURE)

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            log_webhook_event(logger, None, UNKNOWN_EVENT_ID, result="rejected", error=str(e))
            raise WebhookError(ErrorCode.INVALID_JSON) from e

        if not isinstance(payload, dict):
            log_webhook_event(logger, None, UNKNOWN_EVENT_ID, result="rejected", error="not an object")
            raise WebhookError(ErrorCode.INVALID_EVENT_STRUCTURE)

        event_id = extract_event_id(payload)
        timestamp = extract_event_timestamp(payload)
        if not signature.is_fresh(timestamp, now=self._clock(), window=self._replay_window):
            log_security_event(
                logger,
                "INVALID_TIMESTAMP",
                event_id=event_id,
                signature=signature_header,
                timestamp=timestamp.isoformat() if timestamp else None,
            )
            raise WebhookError(ErrorCode.INVALID_TIMESTAMP)

        log_security_event(
            logger,
            "WEBHOOK_AUTHENTICATED",
            event_id=event_id,
            type=payload.get("type") or payload.get("topic"),
        )

        event = normalize(payload)
        if event is None:
            log_webhook_event(logger, payload.get("type"), event_id or UNKNOWN_EVENT_ID, result="rejected")
            raise WebhookError(ErrorCode.INVALID_EVENT_STRUCTURE)

        log_webhook_event(logger, event.event_type, event.event_id, result="normalized")
        return event

    def _reconcile(self, event: CanonicalWebhookEvent, actions: list[Action]) -> ExecutionResult:
        result = self._executor.execute(event, actions)
        if not result.success:
            raise ReconciliationError(event.event_id, result.failed_actions)
        return result


def _peek_event_id(raw_body: bytes) -> str | None:
    """Event id for audit logs from a body that may not be trusted or valid."""
    try:
        payload: Any = json.loads(raw_body)
    except ValueError:
        return None
    return extract_event_id(payload)
