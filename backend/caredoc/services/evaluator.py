"""
Access Evaluator

The one decision table for "may this request proceed?". Every entry point
(session-gated access checks, entitlement-only product checks, app
resolution, the /auth/me product list) calls `evaluate`; none re-derives it.

Priority order, first match wins:
  1. session invalid                         -> deny  session_invalid
  2. no entitlement                          -> deny  payment_required
  3. trial_end in the future                 -> allow (trial), whatever the status says
  4. status trialing / active                -> allow
     (deny expired instead when a billing period end is supplied and has passed)
  5. status canceled                         -> deny  subscription_canceled
  6. status past_due / unpaid / incomplete   -> deny  payment_required
  7. anything else                           -> deny  payment_required

Stored records get one more refinement in `evaluate_record`: a `trialing` row
whose trial_end has passed is `expired`. Manual grants are never revisited by
the payment provider, so nothing else would end them.

Pure: no I/O, never raises.
"""
import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from ..models.entitlement import EntitlementRecord, GRANTING_STATUSES, SubscriptionStatus

logger = logging.getLogger("uvicorn.error")

FACILITY_PRODUCT = "facility_monitoring"


class Reason(str, Enum):
    SESSION_INVALID = "session_invalid"
    PAYMENT_REQUIRED = "payment_required"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    EXPIRED = "expired"
    NOT_GRANTED = "not_granted"


class Mode(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[Reason] = None
    mode: Optional[Mode] = None


@dataclass(frozen=True)
class ProductAccess:
    """Entitlement-only view returned by /entitlement/check."""
    ok: bool
    mode: Optional[Mode] = None
    reason: Optional[Reason] = None
    status: Optional[str] = None
    trial_end: Optional[dt.datetime] = None


StatusLike = Union[SubscriptionStatus, str, None]


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _coerce_status(status: StatusLike) -> Optional[SubscriptionStatus]:
    if status is None:
        return None
    if isinstance(status, SubscriptionStatus):
        return status
    try:
        return SubscriptionStatus(str(status))
    except ValueError:
        return SubscriptionStatus.NONE


def _deny(reason: Reason) -> Decision:
    return Decision(allowed=False, reason=reason)


def evaluate(
    session_valid: bool,
    status: StatusLike,
    trial_end: Optional[dt.datetime],
    period_end: Optional[dt.datetime] = None,
    now: Optional[dt.datetime] = None,
) -> Decision:
    try:
        now = _as_utc(now) or dt.datetime.now(dt.timezone.utc)

        if not session_valid:
            return _deny(Reason.SESSION_INVALID)

        st = _coerce_status(status)
        if st is None:
            return _deny(Reason.PAYMENT_REQUIRED)

        te = _as_utc(trial_end)
        if te is not None and te > now:
            return Decision(allowed=True, mode=Mode.TRIAL)

        if st in GRANTING_STATUSES:
            pe = _as_utc(period_end)
            if pe is not None and pe <= now:
                return _deny(Reason.EXPIRED)
            mode = Mode.TRIAL if st is SubscriptionStatus.TRIALING else Mode.ACTIVE
            return Decision(allowed=True, mode=mode)

        if st is SubscriptionStatus.CANCELED:
            return _deny(Reason.SUBSCRIPTION_CANCELED)

        return _deny(Reason.PAYMENT_REQUIRED)
    except Exception as e:
        logger.error("[evaluator] unexpected input status=%r trial_end=%r: %s", status, trial_end, e)
        return _deny(Reason.PAYMENT_REQUIRED)


def evaluate_record(
    session_valid: bool, record: Optional[EntitlementRecord], now: Optional[dt.datetime] = None
) -> Decision:
    if record is None:
        return evaluate(session_valid, None, None, now=now)
    decision = evaluate(session_valid, record.status, record.trial_end, record.current_period_end, now)
    if decision.allowed and _trial_lapsed(record, now):
        return _deny(Reason.EXPIRED)
    return decision


def _trial_lapsed(record: EntitlementRecord, now: Optional[dt.datetime]) -> bool:
    if _coerce_status(record.status) is not SubscriptionStatus.TRIALING:
        return False
    te = _as_utc(record.trial_end)
    return te is not None and te <= (_as_utc(now) or dt.datetime.now(dt.timezone.utc))


def best_decision(
    session_valid: bool, records: Iterable[EntitlementRecord], now: Optional[dt.datetime] = None
) -> Decision:
    """
    Decision across several products of one subscriber.

    The first allowing record wins. Otherwise the denial of the first record is
    returned (callers pass records newest first).
    """
    decisions = [evaluate_record(session_valid, r, now) for r in records]
    for d in decisions:
        if d.allowed:
            return d
    return decisions[0] if decisions else evaluate_record(session_valid, None, now)


def check_product(record: Optional[EntitlementRecord], now: Optional[dt.datetime] = None) -> ProductAccess:
    """Entitlement-only check: the same table with the session row taken as valid."""
    if record is None:
        return ProductAccess(ok=False, reason=Reason.NOT_GRANTED)

    decision = evaluate_record(True, record, now)
    if decision.allowed:
        trial_end = record.trial_end if decision.mode is Mode.TRIAL else None
        return ProductAccess(ok=True, mode=decision.mode, trial_end=trial_end)

    status = record.status.value if isinstance(record.status, SubscriptionStatus) else record.status
    return ProductAccess(ok=False, reason=Reason.EXPIRED, status=status)


def resolve_app(records: Iterable[EntitlementRecord], now: Optional[dt.datetime] = None) -> str:
    """Facility edition when the facility product is currently usable, home edition otherwise."""
    for r in records:
        if r.product_code == FACILITY_PRODUCT and evaluate_record(True, r, now).allowed:
            return "facility"
    return "home"
