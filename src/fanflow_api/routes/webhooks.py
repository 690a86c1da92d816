"""Webhook endpoint for Thirdweb payment notifications.

This endpoint does NOT require JWT authentication: deliveries are
authenticated by the HMAC signature of the raw body. Any method other than
POST is answered with 405 by the router.
"""

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from fanflow_api.dependencies import get_webhook_handler
from fanflow_api.models.common import ErrorResponse, WebhookResponse
from fanflow_shared.services.webhook_handler import (
    DELIVERY_ID_HEADER,
    SIGNATURE_HEADERS,
    WebhookIngestionHandler,
)
from fanflow_shared.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


def _signature_header(request: Request) -> str | None:
    for name in SIGNATURE_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return None


@router.post(
    "/webhook",
    summary="Receive Thirdweb payment webhooks",
    description="""
Endpoint for Thirdweb payment notifications in either envelope:
- legacy: `{type, data: {id, amount, currency, customer, created_at, ...}}`
- batch: `{topic, timestamp, data: [{id, type, status, data}]}`

**No authentication required** - the body must be signed with the shared
webhook secret (`x-webhook-signature` or `x-signature` header).

**Idempotent**: redelivered events (same event id) return 200 without
touching the ledger again.
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event processed or already processed", "model": WebhookResponse},
        400: {"description": "Invalid content type, JSON or event structure", "model": ErrorResponse},
        401: {"description": "Missing or invalid signature, stale timestamp", "model": ErrorResponse},
        405: {"description": "Method not allowed", "model": ErrorResponse},
        500: {"description": "Secret not configured or reconciliation failed", "model": ErrorResponse},
    },
)
async def receive_webhook(
    request: Request,
    handler: WebhookIngestionHandler = Depends(get_webhook_handler),
) -> WebhookResponse:
    """Authenticate, deduplicate and reconcile one delivery."""
    raw_body = await request.body()
    delivery_id = request.headers.get(DELIVERY_ID_HEADER)
    log_webhook_event(logger, None, "unknown", result="received", delivery_id=delivery_id, size=len(raw_body))

    # Ledger calls and retry backoff block; keep them off the event loop
    return await run_in_threadpool(
        handler.handle,
        raw_body,
        content_type=request.headers.get("content-type"),
        signature_header=_signature_header(request),
        delivery_id=delivery_id,
    )
