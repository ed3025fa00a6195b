"""
Tests for the subscription price catalog.
"""

import pytest

from payments.exceptions import PaymentValidationError
from payments.plans import infer_tier_months, quote, tier_days


class TestQuote:
    def test_pro_monthly(self):
        q = quote("pro", 1)

        assert q.amount_minor_units == 45_500_000
        assert q.duration_days == 30
        assert q.tier_months == 1

    @pytest.mark.parametrize("months,days", [(1, 30), (3, 90), (6, 180)])
    def test_tier_lengths(self, months, days):
        assert quote("premium", months).duration_days == days

    def test_prices_follow_settings(self, settings):
        settings.SUBSCRIPTION_PRICES = {"start": {1: 1_000}}

        assert quote("start", 1).amount_minor_units == 1_000

    def test_unknown_plan(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            quote("platinum", 1)

        assert exc_info.value.error_code == "INVALID_PLAN"

    def test_free_plan_has_no_price(self):
        with pytest.raises(PaymentValidationError):
            quote("free", 1)

    def test_unknown_tier(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            quote("pro", 12)

        assert exc_info.value.error_code == "INVALID_DURATION"

    def test_tier_without_price(self, settings):
        settings.SUBSCRIPTION_PRICES = {"start": {1: 1_000}}

        with pytest.raises(PaymentValidationError) as exc_info:
            quote("start", 6)

        assert exc_info.value.error_code == "INVALID_DURATION"


class TestTierHelpers:
    def test_tier_days_accepts_strings(self):
        assert tier_days("3") == 90

    def test_tier_days_rejects_garbage(self):
        with pytest.raises(PaymentValidationError):
            tier_days("monthly")

    @pytest.mark.parametrize("days,months", [(7, 1), (30, 1), (31, 1), (60, 3), (95, 3), (180, 6), (365, 6)])
    def test_infer_tier_months(self, days, months):
        assert infer_tier_months(days) == months
