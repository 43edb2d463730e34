# caredoc/api/v1/routers/billing.py
import logging

from fastapi import APIRouter, Depends

from caredoc.api.v1.deps import get_current_user
from caredoc.config import settings
from caredoc.core.errors import InputError, NotFoundError, UpstreamPaymentError
from caredoc.models.entitlement import PRODUCT_CODES
from caredoc.models.user import User
from caredoc.schemas.billing import CheckoutIn, RedirectOut
from caredoc.services import ledger
from caredoc.services.payments import payment_service

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/checkout", response_model=RedirectOut)
async def create_checkout(body: CheckoutIn, user: User = Depends(get_current_user)):
    """
    Start a Stripe Checkout for one product.

    The free trial is offered only while no ledger row exists for
    (email, product), so each product can be trialled once per email.
    """
    if body.productCode not in PRODUCT_CODES:
        raise InputError(f"productCode must be one of {', '.join(PRODUCT_CODES)}", field="productCode")
    price_id = settings.stripe_prices.get(body.productCode)
    if not price_id:
        raise UpstreamPaymentError(f"no price configured for {body.productCode}")

    existing = await ledger.get_entitlement(user.email, body.productCode)
    trial_days = settings.checkout_trial_days if existing is None else None

    url = await payment_service.create_checkout_session(
        email=user.email,
        product_code=body.productCode,
        user_id=str(user.id),
        price_id=price_id,
        trial_days=trial_days,
    )
    logger.info("[billing] checkout created user=%s product=%s trial=%s", user.id, body.productCode, trial_days)
    return RedirectOut(url=url)


@router.post("/portal", response_model=RedirectOut)
async def create_portal(user: User = Depends(get_current_user)):
    """
    Open the Stripe billing portal.

    The customer id on the user row may lag behind the ledger; the ledger is
    the fallback.
    """
    customer_id = user.stripe_customer_id or await ledger.find_customer_id(user.email)
    if not customer_id:
        raise NotFoundError("No billing account for this user")
    url = await payment_service.create_portal_session(customer_id)
    return RedirectOut(url=url)
