"""Logging for the webhook pipeline.

Log lines are prefixed with the request's correlation id, taken from the
CorrelationIdMiddleware, so one delivery can be followed from receipt to
ledger write. The ``log_*`` helpers emit one ``key=value`` line per
pipeline transition and pass the same fields as ``extra`` for structured
handlers.

Usage:
    from fanflow_shared.utils.logging import get_logger, log_webhook_event

    logger = get_logger(__name__)
    log_webhook_event(logger, "payment.completed", "evt_123", result="success")
"""

import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Propagates into threadpool workers and asyncio tasks
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

NO_CORRELATION_ID = "no-correlation-id"
SIGNATURE_LOG_PREFIX_LENGTH = 16
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current context, generating one if none is given.

    Returns:
        The bound correlation id
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Stamps each record with the bound correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes formatted records with ``[correlation_id]``."""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = getattr(record, "correlation_id", None) or get_correlation_id() or NO_CORRELATION_ID
        return f"[{correlation_id}] {super().format(record)}"


def configure_logging(level: str | int = "INFO") -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; existing root handlers are reformatted
    rather than duplicated.

    Args:
        level: Root log level name or number
    """
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    root.setLevel(level.upper() if isinstance(level, str) else level)


def get_logger(name: str) -> logging.Logger:
    """Module logger with the correlation id filter attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def truncate_signature(signature: str | None) -> str:
    """Return a log-safe fragment of a signature header."""
    if not signature:
        return ""
    return signature[:SIGNATURE_LOG_PREFIX_LENGTH] + "..."


def _format_message(prefix: str, context: dict[str, Any], skip: tuple[str, ...]) -> str:
    msg_parts = [prefix]
    for key, value in context.items():
        if key not in skip:
            msg_parts.append(f"{key}={value}")
    return " | ".join(msg_parts)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str | None,
    event_id: str,
    *,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook pipeline transition with structured context.

    Args:
        logger: Logger instance
        event_type: Provider event type (e.g., "payment.completed")
        event_id: Canonical event ID, or "unknown" before normalization
        result: Transition result (received, authenticated, duplicate,
            planned, success, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "event_id": event_id,
    }
    if result:
        context["result"] = result
    if error:
        context["error"] = error
    context.update(extra)

    message = _format_message(
        f"Webhook event: {event_type} ({event_id})",
        context,
        skip=("event_type", "event_id"),
    )

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("duplicate", "rejected"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_security_event(
    logger: logging.Logger,
    event: str,
    *,
    event_id: str | None = None,
    signature: str | None = None,
    **extra: Any,
) -> None:
    """Log a security-relevant event for audit.

    Only a truncated fragment of the signature is ever logged; the secret
    must never be passed here.

    Args:
        logger: Logger instance
        event: Security event name (e.g., "INVALID_SIGNATURE")
        event_id: Event ID if it could be determined
        signature: Raw signature header; truncated before logging
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "security_event": event,
        "event_id": event_id or "unknown",
        "logged_at": datetime.now(UTC).isoformat(),
    }
    if signature:
        context["signature"] = truncate_signature(signature)
    context.update(extra)

    message = _format_message(f"Security event: {event}", context, skip=("security_event",))

    if event == "WEBHOOK_AUTHENTICATED":
        logger.info(message, extra=context)
    else:
        logger.warning(message, extra=context)


def log_ledger_operation(
    logger: logging.Logger,
    operation: str,
    *,
    event_id: str,
    ledger_id: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a ledger store mutation with structured context.

    Args:
        logger: Logger instance
        operation: Action name (e.g., "UPDATE_LEDGER_STATUS")
        event_id: Canonical event ID (the ledger idempotency key)
        ledger_id: Ledger entry ID if available
        status: Ledger status written
        error: Error message if the operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation, "event_id": event_id}
    if ledger_id is not None:
        context["ledger_id"] = ledger_id
    if status:
        context["status"] = status
    if error:
        context["error"] = error
    context.update(extra)

    message = _format_message(f"Ledger operation: {operation}", context, skip=("operation",))

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_processing_metrics(
    logger: logging.Logger,
    event_id: str,
    processing_time_ms: float,
    success: bool,
) -> None:
    """Log the elapsed processing time of one webhook delivery."""
    context = {
        "event_id": event_id,
        "processing_time_ms": round(processing_time_ms, 2),
        "success": success,
    }
    logger.info(
        _format_message("Webhook processing metrics", context, skip=()),
        extra=context,
    )
