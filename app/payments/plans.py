"""
Subscription catalog: prices and entitlement lengths per plan and tier.

Values come from settings (SUBSCRIPTION_PRICES, SUBSCRIPTION_TIER_DAYS) so
prices can change without a deploy of new code.

Usage:
    from payments.plans import PlanQuote, quote

    q = quote("pro", 1)
    q.amount_minor_units  # 45_500_000
    q.duration_days       # 30
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

from payments.exceptions import PaymentValidationError


@dataclass(frozen=True)
class PlanQuote:
    """Price and entitlement for one plan/tier combination."""

    plan: str
    tier_months: int
    amount_minor_units: int
    duration_days: int


def tier_days(tier_months: int) -> int:
    """Entitlement length in days for a billing tier."""
    try:
        return settings.SUBSCRIPTION_TIER_DAYS[int(tier_months)]
    except (KeyError, TypeError, ValueError):
        raise PaymentValidationError(
            f"Unsupported subscription duration: {tier_months}",
            error_code="INVALID_DURATION",
            details={"duration_months": tier_months},
        )


def infer_tier_months(duration_days: int) -> int:
    """
    Billing tier for a number of days when the caller did not supply one.

    <=31 days is monthly, <=95 days quarterly, anything longer half-yearly.
    """
    if duration_days <= 31:
        return 1
    if duration_days <= 95:
        return 3
    return 6


def quote(plan: str, tier_months: int) -> PlanQuote:
    """
    Look up the price of a plan for a billing tier.

    Raises:
        PaymentValidationError: Unknown plan or tier
    """
    prices = settings.SUBSCRIPTION_PRICES.get(plan)
    if prices is None:
        raise PaymentValidationError(
            f"Unknown subscription plan: {plan}",
            error_code="INVALID_PLAN",
            details={"plan": plan},
        )
    days = tier_days(tier_months)
    amount = prices.get(int(tier_months))
    if amount is None:
        raise PaymentValidationError(
            f"Plan {plan} is not sold for {tier_months} months",
            error_code="INVALID_DURATION",
            details={"plan": plan, "duration_months": tier_months},
        )
    return PlanQuote(
        plan=plan,
        tier_months=int(tier_months),
        amount_minor_units=amount,
        duration_days=days,
    )
