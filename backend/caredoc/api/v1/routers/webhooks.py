# caredoc/api/v1/routers/webhooks.py
import logging

import stripe
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request, status

from caredoc.services.payments import payment_service
from caredoc.services.reconciler import handle_event

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments")
async def payments_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None),
):
    """
    Stripe webhook endpoint.

    Signature failure is the only error response (400, nothing applied, the
    provider retries). Every verified event is acknowledged with 200 even if
    applying it fails.
    """
    payload = await request.body()
    try:
        event = payment_service.construct_event(payload, stripe_signature)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("[webhook] rejected payload: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "BAD_WEBHOOK", "message": "Invalid webhook signature or payload"},
        )

    await handle_event(event, background_tasks)
    return {"received": True}
