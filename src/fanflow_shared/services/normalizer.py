"""Event normalizer: provider envelopes to CanonicalWebhookEvent.

Two envelopes are accepted:
- legacy single event: ``{type, data: {id, amount, currency, customer, ...}}``
- topic/batch: ``{topic, timestamp, data: [{id, type, status, data}]}``

Statuses that do not map to one of the four canonical values fail
normalization. They are never defaulted to ``pending``.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from fanflow_shared.models import (
    DEFAULT_CURRENCY,
    BatchWebhookEvent,
    CanonicalWebhookEvent,
    LegacyWebhookEvent,
    PaymentStatus,
    SchemaVersion,
    TransactionType,
)

logger = logging.getLogger(__name__)

LEGACY_EVENT_TYPES: dict[str, PaymentStatus] = {
    "payment.completed": PaymentStatus.COMPLETED,
    "payment.failed": PaymentStatus.FAILED,
    "payment.pending": PaymentStatus.PENDING,
    "payment.cancelled": PaymentStatus.CANCELLED,
}

BATCH_ITEM_STATUSES: dict[str, PaymentStatus] = {
    "new": PaymentStatus.COMPLETED,
    "confirmed": PaymentStatus.COMPLETED,
    "success": PaymentStatus.COMPLETED,
    "succeeded": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "reverted": PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING,
    "cancelled": PaymentStatus.CANCELLED,
    "dropped": PaymentStatus.CANCELLED,
    "replaced": PaymentStatus.CANCELLED,
}

BATCH_ITEM_TYPE = "transaction"
DEFAULT_TOKEN_DECIMALS = 6  # USDC

# Provider spellings lifted onto the canonical metadata keys
METADATA_ALIASES: dict[str, tuple[str, ...]] = {
    "agencyId": ("agency_id", "agency"),
    "creatorId": ("creator_id", "creator"),
    "transactionType": ("transaction_type",),
    "gems_purchased": ("gemsPurchased", "gems"),
}

# Epoch values above this are treated as milliseconds
_EPOCH_MS_THRESHOLD = 10**11


def detect_schema(payload: dict[str, Any]) -> SchemaVersion:
    """Pick the envelope format: batch when both ``topic`` and ``timestamp`` are present."""
    if "topic" in payload and "timestamp" in payload:
        return SchemaVersion.BATCH
    return SchemaVersion.LEGACY


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds/milliseconds into an aware datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        if isinstance(value, (int, float)):
            epoch = float(value)
            if abs(epoch) >= _EPOCH_MS_THRESHOLD:
                epoch /= 1000
            return datetime.fromtimestamp(epoch, tz=timezone.utc)
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return None
            if raw.lstrip("-").replace(".", "", 1).isdigit():
                return parse_timestamp(float(raw))
            if raw.endswith(("Z", "z")):
                raw = raw[:-1] + "+00:00"
            parsed = datetime.fromisoformat(raw)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def parse_amount(value: Any) -> Decimal | None:
    """Parse a provider amount into a finite, non-negative Decimal."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def extract_event_id(payload: Any) -> str | None:
    """Best-effort event id from a raw payload, for logging before normalization."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict) and data.get("id"):
        return str(data["id"])
    return None


def extract_event_timestamp(payload: dict[str, Any]) -> datetime | None:
    """Provider-asserted event time used for the replay-window check."""
    if detect_schema(payload) == SchemaVersion.BATCH:
        return parse_timestamp(payload.get("timestamp"))
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    return parse_timestamp(data.get("created_at"))


def lift_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Copy provider metadata, adding canonical keys for known aliases.

    Unknown keys pass through unchanged; existing canonical keys win.
    """
    lifted = dict(metadata or {})
    for canonical, aliases in METADATA_ALIASES.items():
        if lifted.get(canonical) not in (None, ""):
            continue
        for alias in aliases:
            if lifted.get(alias) not in (None, ""):
                lifted[canonical] = lifted[alias]
                break
    return lifted


def normalize(
    raw_payload: Any,
    schema_version: SchemaVersion | None = None,
) -> CanonicalWebhookEvent | None:
    """Normalize a provider payload into a canonical event.

    Args:
        raw_payload: Decoded JSON body
        schema_version: Envelope format; detected from the payload when None

    Returns:
        The canonical event, or None when the payload is invalid
    """
    if not isinstance(raw_payload, dict):
        logger.error("Webhook payload is not a JSON object")
        return None

    schema_version = schema_version or detect_schema(raw_payload)
    try:
        if schema_version == SchemaVersion.BATCH:
            return _normalize_batch(BatchWebhookEvent.model_validate(raw_payload))
        return _normalize_legacy(LegacyWebhookEvent.model_validate(raw_payload))
    except ValidationError as e:
        logger.error(
            "Invalid %s webhook structure: %d validation error(s)",
            schema_version.value,
            e.error_count(),
        )
        return None


def _normalize_legacy(event: LegacyWebhookEvent) -> CanonicalWebhookEvent | None:
    data = event.data

    status = LEGACY_EVENT_TYPES.get(event.type)
    if status is None:
        logger.error("Unknown webhook event type: %s", event.type)
        return None

    amount = parse_amount(data.amount)
    if amount is None:
        logger.error("Invalid amount in webhook %s: %r", data.id, data.amount)
        return None

    timestamp = parse_timestamp(data.created_at)
    if timestamp is None:
        logger.error("Invalid timestamp in webhook %s: %r", data.id, data.created_at)
        return None

    customer = data.customer or {}
    transaction_id = getattr(data, "transaction_id", None) or data.id

    return CanonicalWebhookEvent(
        event_id=data.id,
        event_type=event.type,
        transaction_id=str(transaction_id),
        amount=amount,
        currency=data.currency or DEFAULT_CURRENCY,
        status=status,
        customer_wallet_address=customer.get("wallet_address") or "",
        metadata=lift_metadata(data.metadata),
        timestamp=timestamp,
    )


def _normalize_batch(event: BatchWebhookEvent) -> CanonicalWebhookEvent | None:
    # Only the first transaction of a batch is reconciled
    item = event.data[0]

    if item.type != BATCH_ITEM_TYPE:
        logger.error("Unsupported batch item type %r in webhook %s", item.type, item.id)
        return None

    status = BATCH_ITEM_STATUSES.get((item.status or "").lower())
    if status is None:
        logger.error("Unknown transaction status %r in webhook %s", item.status, item.id)
        return None

    tx = item.data
    amount = _base_units_to_amount(tx.get("value", "0"), tx.get("decimals"))
    if amount is None:
        logger.error("Invalid transaction value in webhook %s: %r", item.id, tx.get("value"))
        return None

    timestamp = parse_timestamp(event.timestamp)
    if timestamp is None:
        logger.error("Invalid timestamp in webhook %s: %r", item.id, event.timestamp)
        return None

    metadata = lift_metadata(tx.get("metadata") if isinstance(tx.get("metadata"), dict) else None)
    metadata.setdefault("transactionType", TransactionType.GEMS.value)
    metadata["topic"] = event.topic
    for key in ("blockNumber", "gasUsed", "gasPrice"):
        if key in tx:
            metadata[key] = tx[key]

    return CanonicalWebhookEvent(
        event_id=item.id,
        event_type=f"transaction.{status.value}",
        transaction_id=str(tx.get("transactionHash") or item.id),
        amount=amount,
        currency=tx.get("currency") or DEFAULT_CURRENCY,
        status=status,
        customer_wallet_address=tx.get("from") or "",
        metadata=metadata,
        timestamp=timestamp,
    )


def _base_units_to_amount(value: Any, decimals: Any) -> Decimal | None:
    """Convert an integer token amount in base units to a decimal amount."""
    units = parse_amount(value)
    if units is None or units != units.to_integral_value():
        return None
    try:
        places = DEFAULT_TOKEN_DECIMALS if decimals is None else int(decimals)
    except (TypeError, ValueError):
        return None
    if places < 0:
        return None
    return units.scaleb(-places)
