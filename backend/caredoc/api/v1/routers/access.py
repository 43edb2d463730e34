# caredoc/api/v1/routers/access.py
from fastapi import APIRouter

from caredoc.core.errors import InputError
from caredoc.models.entitlement import PRODUCT_CODES
from caredoc.schemas.access import (
    AccessCheckIn,
    AccessCheckOut,
    EntitlementCheckIn,
    EntitlementCheckOut,
    ResolveAppIn,
    ResolveAppOut,
)
from caredoc.services import evaluator, identity, ledger

router = APIRouter(tags=["access"])


def _product_code(code: str | None, *, required: bool) -> str | None:
    if code is None and not required:
        return None
    if code not in PRODUCT_CODES:
        raise InputError(f"productCode must be one of {', '.join(PRODUCT_CODES)}", field="productCode")
    return code


@router.post("/access/check", response_model=AccessCheckOut)
async def access_check(body: AccessCheckIn):
    """
    Gate for every protected action: session validity first, then billing.

    Without productCode the user is allowed if any of their products allows
    access. Denials are normal 200 responses with a reason code.
    """
    product_code = _product_code(body.productCode, required=False)
    user = await identity.get_user(body.userId)
    valid = identity.session_matches(user, body.sessionToken)

    records = []
    if user is not None:
        if product_code:
            record = await ledger.get_entitlement(user.email, product_code)
            records = [record] if record else []
        else:
            records = await ledger.list_for_email(user.email)

    decision = evaluator.best_decision(valid, records)
    return AccessCheckOut(
        valid=valid,
        allowed=decision.allowed,
        reason=decision.reason.value if decision.reason else None,
    )


@router.post("/entitlement/check", response_model=EntitlementCheckOut, response_model_exclude_none=True)
async def entitlement_check(body: EntitlementCheckIn):
    """
    Entitlement-only check (no session) for one (email, product).

    Returns:
        {ok: true, mode, trialEnd?} or {ok: false, reason: not_granted | expired, status?}
    """
    product_code = _product_code(body.productCode, required=True)
    record = await ledger.get_entitlement(body.email, product_code)
    result = evaluator.check_product(record)
    return EntitlementCheckOut(
        ok=result.ok,
        mode=result.mode.value if result.mode else None,
        trialEnd=result.trial_end,
        reason=result.reason.value if result.reason else None,
        status=result.status,
    )


@router.post("/entitlement/resolve-app", response_model=ResolveAppOut)
async def resolve_app(body: ResolveAppIn):
    """Which edition of the web app to open for this email: facility or home."""
    records = await ledger.list_for_email(body.email)
    return ResolveAppOut(app=evaluator.resolve_app(records))
