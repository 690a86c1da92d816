"""Reconciliation executor: applies planned actions to the ledger store.

Actions run in order and each reports success independently. A failing
action is logged and does not stop the ones after it; nothing is rolled
back. Every action must therefore be safe to apply again on redelivery:
the ledger write is an upsert keyed by the event id.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

from fanflow_shared.models import (
    Action,
    AuditLogCreate,
    CanonicalWebhookEvent,
    LedgerEntryCreate,
    LedgerEntryUpdate,
    LedgerStatus,
    LedgerTransactionType,
    PaymentStatus,
    TransactionType,
)
from fanflow_shared.utils.logging import get_logger, log_ledger_operation

from .ledger_store import LedgerStore
from .normalizer import parse_amount

logger = get_logger(__name__)

WEBHOOK_PAYMENT_METHOD = "thirdweb"

# The ledger has no cancelled state
LEDGER_STATUS_BY_PAYMENT_STATUS: dict[PaymentStatus, LedgerStatus] = {
    PaymentStatus.COMPLETED: LedgerStatus.COMPLETED,
    PaymentStatus.FAILED: LedgerStatus.FAILED,
    PaymentStatus.PENDING: LedgerStatus.PENDING,
    PaymentStatus.CANCELLED: LedgerStatus.FAILED,
}

LEDGER_TYPE_BY_TRANSACTION_TYPE: dict[TransactionType, LedgerTransactionType] = {
    TransactionType.GEMS: LedgerTransactionType.CHAT,
    TransactionType.POKE: LedgerTransactionType.CHAT,
    TransactionType.MEDIA: LedgerTransactionType.MEDIA,
    TransactionType.SUBSCRIPTION: LedgerTransactionType.SUBSCRIPTION,
}

# Event metadata keys copied onto the ledger entry, applied in order
LEDGER_METADATA_KEYS: tuple[tuple[str, str], ...] = (
    ("gems_purchased", "message_count"),
    ("message_count", "message_count"),
    ("access_type", "access_type"),
    ("access_duration_days", "access_duration_days"),
    ("billing_period", "billing_period"),
    ("creators_count", "creators_count"),
)


@dataclass
class ActionResult:
    """Outcome of one planned action."""

    action: Action
    success: bool
    error: str | None = None


@dataclass
class ExecutionResult:
    """Outcome of one execute() call."""

    event_id: str
    results: list[ActionResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failed_actions(self) -> list[str]:
        return [r.action.value for r in self.results if not r.success]


def _ledger_error(result: ExecutionResult) -> str | None:
    for r in result.results:
        if r.action is Action.UPDATE_LEDGER_STATUS and not r.success:
            return r.error or "ledger update failed"
    return None


def to_ledger_status(status: PaymentStatus) -> LedgerStatus:
    return LEDGER_STATUS_BY_PAYMENT_STATUS.get(status, LedgerStatus.PENDING)


def to_ledger_type(transaction_type: TransactionType | None) -> LedgerTransactionType:
    if transaction_type is None:
        return LedgerTransactionType.CHAT
    return LEDGER_TYPE_BY_TRANSACTION_TYPE.get(transaction_type, LedgerTransactionType.CHAT)


def to_ledger_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    ledger_metadata: dict[str, Any] = {}
    for source, target in LEDGER_METADATA_KEYS:
        if metadata.get(source):
            ledger_metadata[target] = metadata[source]
    return ledger_metadata


class ReconciliationExecutor:
    """Applies planned actions for a canonical event against the ledger store."""

    def __init__(self, store: LedgerStore, default_agency_id: int = 1) -> None:
        """Initialize the executor.

        Args:
            store: Ledger store (Xano client in production)
            default_agency_id: Agency attributed to events without an agencyId
        """
        self._store = store
        self._default_agency_id = default_agency_id
        self._handlers: dict[Action, Callable[[CanonicalWebhookEvent], bool]] = {
            Action.UPDATE_LEDGER_STATUS: self.update_ledger_status,
            Action.WRITE_AUDIT_LOG: self.write_audit_log,
            Action.CREDIT_BALANCE: self.credit_balance,
            Action.HANDLE_FAILURE_CLEANUP: self.handle_failure_cleanup,
            Action.HANDLE_CANCELLATION_CLEANUP: self.handle_cancellation_cleanup,
        }

    def execute(self, event: CanonicalWebhookEvent, actions: list[Action]) -> ExecutionResult:
        """Attempt every planned action exactly once.

        Args:
            event: Normalized webhook event
            actions: Ordered actions from the planner

        Returns:
            ExecutionResult; success only if every action succeeded
        """
        result = ExecutionResult(event_id=event.event_id)

        for action in actions:
            handler = self._handlers.get(action)
            if handler is None:
                logger.warning("Unknown reconciliation action: %s", action)
                result.results.append(ActionResult(action, False, "unknown action"))
                continue
            try:
                if action is Action.WRITE_AUDIT_LOG:
                    # The record is what a cold cache falls back on
                    success = self.write_audit_log(event, ledger_error=_ledger_error(result))
                else:
                    success = handler(event)
                error = None if success else "action reported failure"
            except Exception as e:
                success = False
                error = str(e)
            if not success:
                log_ledger_operation(logger, action.value, event_id=event.event_id, error=error)
            result.results.append(ActionResult(action, success, error))

        logger.info(
            "Reconciliation summary | event_id=%s | total_actions=%d | successful=%d | all_successful=%s",
            event.event_id,
            len(actions),
            sum(1 for r in result.results if r.success),
            result.success,
        )
        return result

    # === Actions ===

    def update_ledger_status(self, event: CanonicalWebhookEvent) -> bool:
        """Upsert the ledger entry keyed by the event id."""
        ledger_status = to_ledger_status(event.status)
        existing = self._store.find_by_idempotency_key(event.event_id)

        if existing is None:
            entry = self._build_ledger_entry(event, ledger_status)
            try:
                created = self._store.create_ledger_entry(entry)
            except Exception:
                # A concurrent delivery may have created it first
                existing = self._store.find_by_idempotency_key(event.event_id)
                if existing is None:
                    raise
            else:
                log_ledger_operation(
                    logger,
                    Action.UPDATE_LEDGER_STATUS.value,
                    event_id=event.event_id,
                    ledger_id=created.id,
                    status=ledger_status.value,
                    result="created",
                    amount=str(event.amount),
                )
                return True

        updated = self._store.update_ledger_entry(
            existing.id,
            LedgerEntryUpdate(
                status=ledger_status,
                thirdweb_transaction_id=event.transaction_id,
            ),
        )
        log_ledger_operation(
            logger,
            Action.UPDATE_LEDGER_STATUS.value,
            event_id=event.event_id,
            ledger_id=updated.id,
            status=ledger_status.value,
            result="updated",
        )
        return True

    def write_audit_log(self, event: CanonicalWebhookEvent, ledger_error: str | None = None) -> bool:
        """Persist an immutable record of the event.

        The record is marked processed only when the ledger write it
        follows succeeded; otherwise it carries that error, so a redelivery
        checked against the audit log is reconciled again.
        """
        record = self._store.append_audit_log(
            AuditLogCreate(
                event_type=event.event_type,
                payload={
                    "event_id": event.event_id,
                    "transaction_id": event.transaction_id,
                    "status": event.status.value,
                    "amount": str(event.amount),
                    "currency": event.currency,
                    "customerWalletAddress": event.customer_wallet_address,
                    "metadata": event.metadata,
                    "timestamp": event.timestamp.isoformat(),
                },
                processed=ledger_error is None,
                error=ledger_error,
            )
        )
        log_ledger_operation(
            logger,
            Action.WRITE_AUDIT_LOG.value,
            event_id=event.event_id,
            audit_log_id=record.id,
            processed=ledger_error is None,
        )
        return True

    def credit_balance(self, event: CanonicalWebhookEvent) -> bool:
        """Validate a gem purchase and log the balance credit.

        User balances live in a store this service does not own; only the
        intent is recorded here.
        """
        if event.transaction_type != TransactionType.GEMS or not event.gems_purchased:
            logger.warning("Not a gem purchase, skipping balance update: %s", event.event_id)
            return True
        if event.status != PaymentStatus.COMPLETED:
            logger.warning("Payment not completed, skipping balance update: %s", event.event_id)
            return True

        gems = parse_amount(event.gems_purchased)
        if gems is None or gems <= 0:
            logger.error("Invalid gems amount %r for %s", event.gems_purchased, event.event_id)
            return False

        logger.info(
            "Balance credit requested | event_id=%s | wallet=%s | gems=%s",
            event.event_id,
            event.customer_wallet_address,
            gems,
        )
        return True

    def handle_failure_cleanup(self, event: CanonicalWebhookEvent) -> bool:
        # TODO: send failure notifications once the notification service exposes an API
        logger.info(
            "Handling payment failure | event_id=%s | amount=%s | wallet=%s",
            event.event_id,
            event.amount,
            event.customer_wallet_address,
        )
        return True

    def handle_cancellation_cleanup(self, event: CanonicalWebhookEvent) -> bool:
        logger.info(
            "Handling payment cancellation | event_id=%s | amount=%s | wallet=%s",
            event.event_id,
            event.amount,
            event.customer_wallet_address,
        )
        return True

    # === Helpers ===

    def _build_ledger_entry(
        self, event: CanonicalWebhookEvent, ledger_status: LedgerStatus
    ) -> LedgerEntryCreate:
        return LedgerEntryCreate(
            idempotency_key=event.event_id,
            amount=event.amount,
            fee=Decimal("0"),
            status=ledger_status,
            type=to_ledger_type(event.transaction_type),
            payment_method=WEBHOOK_PAYMENT_METHOD,
            thirdweb_transaction_id=event.transaction_id,
            agency=self._resolve_agency(event),
            creator=_parse_reference(event.creator_id),
            wallet_address=event.customer_wallet_address or None,
            metadata=to_ledger_metadata(event.metadata),
        )

    def _resolve_agency(self, event: CanonicalWebhookEvent) -> int:
        if event.agency_id is None:
            logger.warning(
                "Event %s has no agencyId, attributing to default agency %d",
                event.event_id,
                self._default_agency_id,
            )
            return self._default_agency_id
        agency = _parse_reference(event.agency_id)
        if agency is None:
            raise ValueError(f"Invalid agencyId {event.agency_id!r}")
        return agency


def _parse_reference(value: str | None) -> int | None:
    """Parse a foreign-key reference; None when absent or non-numeric."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None
