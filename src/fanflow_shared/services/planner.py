"""Action planner: derives the ordered side effects for a canonical event.

Ledger status is written first so the audit record reflects final state;
credit and cleanup actions run last because they may depend on a persisted
ledger entry.
"""

import logging

from fanflow_shared.models import Action, CanonicalWebhookEvent, PaymentStatus, TransactionType

logger = logging.getLogger(__name__)

_BASE_ACTIONS = (Action.UPDATE_LEDGER_STATUS, Action.WRITE_AUDIT_LOG)

_TRAILING_ACTIONS: dict[PaymentStatus, tuple[Action, ...]] = {
    PaymentStatus.COMPLETED: (),
    PaymentStatus.PENDING: (),
    PaymentStatus.FAILED: (Action.HANDLE_FAILURE_CLEANUP,),
    PaymentStatus.CANCELLED: (Action.HANDLE_CANCELLATION_CLEANUP,),
}


def plan(event: CanonicalWebhookEvent) -> list[Action]:
    """Map an event to the actions required to reconcile it.

    Args:
        event: Normalized webhook event

    Returns:
        Non-empty ordered action list
    """
    trailing = _TRAILING_ACTIONS.get(event.status)
    if trailing is None:
        logger.warning("Unknown status %r, only logging event %s", event.status, event.event_id)
        return [Action.WRITE_AUDIT_LOG]

    actions = [*_BASE_ACTIONS, *trailing]
    if (
        event.status == PaymentStatus.COMPLETED
        and event.transaction_type == TransactionType.GEMS
        and event.gems_purchased not in (None, "", 0)
    ):
        actions.append(Action.CREDIT_BALANCE)
    return actions
