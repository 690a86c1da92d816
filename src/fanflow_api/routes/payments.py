"""Payment update endpoint used by the checkout widgets.

Records a client-confirmed crypto payment directly in the ledger. The
provider webhook for the same payment is reconciled separately.
"""

import json

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from fanflow_api.dependencies import get_payment_update_service
from fanflow_api.models.common import ErrorResponse, PaymentUpdateResponse
from fanflow_shared.models import ErrorCode, WebhookError
from fanflow_shared.services.payment_update import PaymentUpdate, PaymentUpdateService
from fanflow_shared.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


@router.post(
    "/update-payment",
    summary="Record a confirmed payment",
    description="""
Record a payment confirmed by the checkout widget.

**Notes:**
- `amount`, `gems`, `agencyId` and `walletAddress` are required
- A 2.5% processing fee is deducted; net amount = amount - fee
- Payments with a `transactionHash` are recorded once per hash
""",
    response_model=PaymentUpdateResponse,
    responses={
        200: {"description": "Payment recorded (or already recorded)"},
        400: {"description": "Missing required payment data", "model": ErrorResponse},
        405: {"description": "Method not allowed", "model": ErrorResponse},
        500: {"description": "Payment processing failed", "model": ErrorResponse},
    },
)
async def update_payment(
    request: Request,
    service: PaymentUpdateService = Depends(get_payment_update_service),
) -> PaymentUpdateResponse:
    """Create a completed ledger entry for a client-confirmed payment."""
    try:
        payment = PaymentUpdate.model_validate(json.loads(await request.body()))
    except (ValueError, ValidationError) as e:
        logger.warning("Invalid payment update body: %s", e)
        raise WebhookError(ErrorCode.MISSING_PAYMENT_DATA) from e

    logger.info(
        "Payment update received | amount=%s | gems=%s | agency=%s | type=%s",
        payment.amount,
        payment.gems,
        payment.agency_id,
        payment.transaction_type.value,
    )
    result = await run_in_threadpool(service.record_payment, payment)
    return PaymentUpdateResponse(
        success=result.success,
        message=result.message,
        transaction_id=result.transaction_id,
    )
