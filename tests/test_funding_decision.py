"""Unit tests for the pure funding decision (no database)."""

from datetime import datetime

import pytest

from manxhive.domain.enums import Plan
from manxhive.services.lead_unlock import (
    PREMIUM_FREE_LEADS_PER_MONTH,
    current_month_key,
    decide_funding,
    normalize_plan,
)

NOW = datetime(2026, 3, 15, 12, 0, 0)
THIS_MONTH = "202603"
LAST_MONTH = "202602"


class TestMonthKey:

    def test_formats_year_and_zero_padded_month(self):
        assert current_month_key(datetime(2026, 1, 31, 23, 59)) == "202601"
        assert current_month_key(datetime(2025, 12, 1)) == "202512"

    def test_defaults_to_now(self):
        assert current_month_key() == datetime.now().strftime("%Y%m")


class TestNormalizePlan:

    @pytest.mark.parametrize("value,expected", [
        ("pro", Plan.PRO),
        ("premium", Plan.PREMIUM),
        ("standard", Plan.STANDARD),
        (Plan.PRO, Plan.PRO),
    ])
    def test_known_plans(self, value, expected):
        assert normalize_plan(value) is expected

    @pytest.mark.parametrize("value", [None, "", "enterprise", "PRO", 3])
    def test_unknown_plans_fall_back_to_standard(self, value):
        assert normalize_plan(value) is Plan.STANDARD


class TestProPlan:
    """Pro unlocks are free and never touch counters."""

    @pytest.mark.parametrize("used,month", [(0, THIS_MONTH), (10, LAST_MONTH), (3, None)])
    def test_pro_never_charges_or_counts(self, used, month):
        decision = decide_funding("pro", used, month, NOW)
        assert decision.plan is Plan.PRO
        assert decision.charge_credit is False
        assert decision.consumed_free_lead is False
        assert decision.free_leads_used == used
        assert decision.free_leads_month == month


class TestPremiumPlan:

    def test_consumes_free_lead_below_allowance(self):
        decision = decide_funding("premium", 9, THIS_MONTH, NOW)
        assert decision.charge_credit is False
        assert decision.consumed_free_lead is True
        assert decision.free_leads_used == 10
        assert decision.free_leads_month == THIS_MONTH

    def test_charges_credit_once_allowance_used(self):
        decision = decide_funding("premium", PREMIUM_FREE_LEADS_PER_MONTH, THIS_MONTH, NOW)
        assert decision.charge_credit is True
        assert decision.consumed_free_lead is False
        assert decision.free_leads_used == PREMIUM_FREE_LEADS_PER_MONTH

    def test_new_month_resets_counter(self):
        decision = decide_funding("premium", 10, LAST_MONTH, NOW)
        assert decision.charge_credit is False
        assert decision.free_leads_used == 1
        assert decision.free_leads_month == THIS_MONTH

    def test_missing_month_is_treated_as_current(self):
        decision = decide_funding("premium", 10, None, NOW)
        assert decision.charge_credit is True
        assert decision.free_leads_used == 10
        assert decision.free_leads_month == THIS_MONTH

    def test_missing_counter_is_zero(self):
        decision = decide_funding("premium", None, None, NOW)
        assert decision.free_leads_used == 1
        assert decision.charge_credit is False


class TestStandardPlan:

    def test_always_charges_credit(self):
        decision = decide_funding("standard", 0, THIS_MONTH, NOW)
        assert decision.charge_credit is True
        assert decision.free_leads_used == 0
        assert decision.free_leads_month == THIS_MONTH

    def test_counter_untouched_except_for_month_reset(self):
        same_month = decide_funding("standard", 4, THIS_MONTH, NOW)
        assert same_month.free_leads_used == 4

        new_month = decide_funding("standard", 4, LAST_MONTH, NOW)
        assert new_month.free_leads_used == 0
        assert new_month.free_leads_month == THIS_MONTH

    @pytest.mark.parametrize("plan", [None, "", "gold"])
    def test_unknown_plan_charges_like_standard(self, plan):
        decision = decide_funding(plan, 0, THIS_MONTH, NOW)
        assert decision.plan is Plan.STANDARD
        assert decision.charge_credit is True
