"""Webhook authenticity and freshness checks.

Thirdweb signs the raw request body with HMAC-SHA256 keyed by the shared
webhook secret and sends the hex digest, optionally prefixed with
``sha256=``, in the ``x-webhook-signature`` or ``x-signature`` header.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
DEFAULT_REPLAY_WINDOW = timedelta(minutes=5)


def compute_signature(raw_body: bytes | str, shared_secret: str) -> str:
    """Compute the hex HMAC-SHA256 digest of a request body."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    return hmac.new(shared_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: bytes | str, signature_header: str | None, shared_secret: str | None) -> bool:
    """Check a webhook signature against the body and shared secret.

    Both digests are re-keyed through HMAC before the constant-time compare,
    so buffers of any supplied length are compared at a fixed size and a
    wrong-length signature takes the same path as a wrong-value one.

    Args:
        raw_body: Request body exactly as received
        signature_header: Signature header value, with or without "sha256="
        shared_secret: Webhook secret

    Returns:
        True only for a valid signature. Never raises.
    """
    try:
        if not signature_header or not shared_secret:
            return False

        supplied = signature_header.strip()
        if supplied[: len(SIGNATURE_PREFIX)].lower() == SIGNATURE_PREFIX:
            supplied = supplied[len(SIGNATURE_PREFIX):]

        expected = compute_signature(raw_body, shared_secret)

        key = shared_secret.encode("utf-8")
        expected_mac = hmac.new(key, expected.encode("ascii"), hashlib.sha256).digest()
        supplied_mac = hmac.new(key, supplied.lower().encode("utf-8"), hashlib.sha256).digest()
        return hmac.compare_digest(expected_mac, supplied_mac)
    except Exception as e:
        logger.error("Webhook signature verification error: %s", e)
        return False


def is_fresh(
    timestamp: datetime | None,
    now: datetime | None = None,
    window: timedelta = DEFAULT_REPLAY_WINDOW,
) -> bool:
    """Check that an event timestamp lies within the replay window.

    Skew is measured in both directions, so events dated too far in the
    future are rejected just like stale ones.

    Args:
        timestamp: Provider-asserted event time (naive values are UTC)
        now: Current time, defaults to datetime.now(timezone.utc)
        window: Maximum allowed skew

    Returns:
        False for a missing timestamp or one outside the window
    """
    if timestamp is None:
        return False
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return abs(now - timestamp) <= window
