"""
Unit tests for services.evaluator.
The decision table is checked over its whole input domain.
"""
import datetime as dt
import itertools
from types import SimpleNamespace

import pytest

from caredoc.models.entitlement import SubscriptionStatus
from caredoc.services.evaluator import (
    Decision,
    Mode,
    Reason,
    best_decision,
    check_product,
    evaluate,
    resolve_app,
)

NOW = dt.datetime(2025, 4, 1, 9, 0, tzinfo=dt.timezone.utc)
FUTURE = NOW + dt.timedelta(days=1)
PAST = NOW - dt.timedelta(days=1)

STATUSES = [None, *SubscriptionStatus]
TRIAL_ENDS = [None, PAST, NOW, FUTURE]


def _expected(session_valid, status, trial_end) -> tuple[bool, Reason | None]:
    if not session_valid:
        return False, Reason.SESSION_INVALID
    if status is None:
        return False, Reason.PAYMENT_REQUIRED
    if trial_end is not None and trial_end > NOW:
        return True, None
    if status in (SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE):
        return True, None
    if status is SubscriptionStatus.CANCELED:
        return False, Reason.SUBSCRIPTION_CANCELED
    return False, Reason.PAYMENT_REQUIRED


def _record(product_code="monitoring", status=SubscriptionStatus.ACTIVE, trial_end=None, current_period_end=None):
    return SimpleNamespace(
        product_code=product_code,
        status=status,
        trial_end=trial_end,
        current_period_end=current_period_end,
    )


class TestDecisionTable:
    """evaluate() without a period end is exactly the priority table."""

    @pytest.mark.parametrize(
        "session_valid, status, trial_end",
        list(itertools.product([True, False], STATUSES, TRIAL_ENDS)),
    )
    def test_cross_product(self, session_valid, status, trial_end):
        decision = evaluate(session_valid, status, trial_end, now=NOW)
        assert isinstance(decision, Decision)
        assert (decision.allowed, decision.reason) == _expected(session_valid, status, trial_end)
        # Exactly one of: allowed with a mode, or denied with a reason
        if decision.allowed:
            assert decision.reason is None and decision.mode is not None
        else:
            assert decision.reason is not None and decision.mode is None

    def test_session_check_comes_first(self):
        decision = evaluate(False, SubscriptionStatus.ACTIVE, FUTURE, now=NOW)
        assert decision.reason is Reason.SESSION_INVALID

    def test_trial_window_beats_bad_status(self):
        for status in (SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE, SubscriptionStatus.NONE):
            decision = evaluate(True, status, FUTURE, now=NOW)
            assert decision == Decision(allowed=True, mode=Mode.TRIAL)

    def test_trial_window_does_not_rescue_missing_entitlement(self):
        assert evaluate(True, None, FUTURE, now=NOW).reason is Reason.PAYMENT_REQUIRED

    def test_modes(self):
        assert evaluate(True, SubscriptionStatus.TRIALING, None, now=NOW).mode is Mode.TRIAL
        assert evaluate(True, SubscriptionStatus.ACTIVE, PAST, now=NOW).mode is Mode.ACTIVE

    def test_string_statuses_are_accepted(self):
        assert evaluate(True, "active", None, now=NOW).allowed is True
        assert evaluate(True, "canceled", None, now=NOW).reason is Reason.SUBSCRIPTION_CANCELED
        assert evaluate(True, "bogus", None, now=NOW).reason is Reason.PAYMENT_REQUIRED


class TestPeriodEnd:
    def test_lapsed_period_is_expired(self):
        decision = evaluate(True, SubscriptionStatus.ACTIVE, None, period_end=PAST, now=NOW)
        assert decision == Decision(allowed=False, reason=Reason.EXPIRED)

    def test_running_period_is_allowed(self):
        decision = evaluate(True, SubscriptionStatus.ACTIVE, None, period_end=FUTURE, now=NOW)
        assert decision.allowed is True

    def test_trial_window_wins_over_lapsed_period(self):
        decision = evaluate(True, SubscriptionStatus.ACTIVE, FUTURE, period_end=PAST, now=NOW)
        assert decision.allowed is True

    def test_period_end_does_not_change_denials(self):
        decision = evaluate(True, SubscriptionStatus.CANCELED, None, period_end=FUTURE, now=NOW)
        assert decision.reason is Reason.SUBSCRIPTION_CANCELED


class TestRobustness:
    def test_naive_datetimes_are_treated_as_utc(self):
        naive_future = FUTURE.replace(tzinfo=None)
        assert evaluate(True, SubscriptionStatus.NONE, naive_future, now=NOW).allowed is True

    def test_garbage_input_never_raises(self):
        decision = evaluate(True, SubscriptionStatus.ACTIVE, "tomorrow", now=NOW)
        assert decision == Decision(allowed=False, reason=Reason.PAYMENT_REQUIRED)

    def test_default_now_is_current_time(self):
        soon = dt.datetime.now(dt.timezone.utc) + dt.timedelta(minutes=5)
        assert evaluate(True, SubscriptionStatus.NONE, soon).allowed is True


class TestCheckProduct:
    def test_no_record_is_not_granted(self):
        result = check_product(None, now=NOW)
        assert result.ok is False
        assert result.reason is Reason.NOT_GRANTED

    def test_trialing(self):
        result = check_product(_record(status=SubscriptionStatus.TRIALING, trial_end=FUTURE), now=NOW)
        assert result.ok is True
        assert result.mode is Mode.TRIAL
        assert result.trial_end == FUTURE

    def test_trialing_with_lapsed_trial_is_expired(self):
        result = check_product(_record(status=SubscriptionStatus.TRIALING, trial_end=PAST), now=NOW)
        assert result.ok is False
        assert result.reason is Reason.EXPIRED
        assert result.status == "trialing"
        assert result.trial_end is None

    def test_trialing_ends_exactly_at_trial_end(self):
        assert check_product(_record(status=SubscriptionStatus.TRIALING, trial_end=NOW), now=NOW).ok is False

    def test_trialing_without_trial_end_is_allowed(self):
        result = check_product(_record(status=SubscriptionStatus.TRIALING), now=NOW)
        assert result.ok is True
        assert result.mode is Mode.TRIAL

    def test_active_with_lapsed_period(self):
        result = check_product(_record(current_period_end=PAST), now=NOW)
        assert result.ok is False
        assert result.reason is Reason.EXPIRED
        assert result.status == "active"

    def test_every_denial_is_reported_as_expired(self):
        for status in (SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED, SubscriptionStatus.NONE):
            result = check_product(_record(status=status), now=NOW)
            assert result.reason is Reason.EXPIRED
            assert result.status == status.value


class TestBestDecision:
    def test_first_allowing_record_wins(self):
        records = [_record(status=SubscriptionStatus.CANCELED), _record(status=SubscriptionStatus.ACTIVE)]
        assert best_decision(True, records, now=NOW).allowed is True

    def test_denial_of_newest_record(self):
        records = [_record(status=SubscriptionStatus.UNPAID), _record(status=SubscriptionStatus.CANCELED)]
        assert best_decision(True, records, now=NOW).reason is Reason.PAYMENT_REQUIRED

    def test_no_records(self):
        assert best_decision(True, [], now=NOW).reason is Reason.PAYMENT_REQUIRED
        assert best_decision(False, [], now=NOW).reason is Reason.SESSION_INVALID


class TestResolveApp:
    def test_facility_only_when_usable(self):
        assert resolve_app([_record(product_code="facility_monitoring")], now=NOW) == "facility"
        assert resolve_app([_record(product_code="monitoring")], now=NOW) == "home"
        lapsed = _record(product_code="facility_monitoring", status=SubscriptionStatus.ACTIVE, current_period_end=PAST)
        assert resolve_app([lapsed], now=NOW) == "home"
        assert resolve_app([], now=NOW) == "home"
