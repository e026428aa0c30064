"""
Payments API Endpoints.

The payment provider confirms orders through the webhook; staff can confirm
manually. Both paths go through the same idempotent completion, so repeated
confirmations are harmless.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from api.deps import get_actor, get_runtime, reply_to_response
from api.models import ActionResponse, PaymentConfirmRequest
from domain.actor import Actor
from services.events import MarkPaid, PaymentConfirmed
from services.runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/payments/confirm",
    response_model=ActionResponse,
    summary="Payment Confirmation Webhook",
    description="Mark the scope's order as paid. Requires X-Webhook-Secret when a secret is configured."
)
async def confirm_payment(
    request: PaymentConfirmRequest,
    x_webhook_secret: Optional[str] = Header(None),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Confirm payment for a scope's order.

    **Example request:**
    ```json
    {"scope": "bloodlines-123456789", "transaction_ref": "TX-0001"}
    ```

    Confirming an order that is already completed, released or unknown is a
    no-op and reports `completed: false`.
    """
    expected = runtime.settings.payment_webhook_secret
    if expected and not (x_webhook_secret and secrets.compare_digest(x_webhook_secret, expected)):
        logger.warning("Rejected payment confirmation for %s: bad webhook secret", request.scope)
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Invalid webhook secret."},
        )

    reply = await runtime.dispatcher.submit(
        PaymentConfirmed(scope=request.scope, transaction_ref=request.transaction_ref)
    )
    return reply_to_response(reply, runtime.engine)


@router.post(
    "/scopes/{scope}/order/mark-paid",
    response_model=ActionResponse,
    summary="Mark Paid (Staff)",
    description="Staff fallback for confirming a payment by hand."
)
async def mark_paid(scope: str, actor: Actor = Depends(get_actor), runtime: Runtime = Depends(get_runtime)):
    reply = await runtime.dispatcher.submit(MarkPaid(scope=scope, actor=actor))
    return reply_to_response(reply, runtime.engine)
