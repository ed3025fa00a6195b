"""
Subscription service: the only writer of a user's entitlement fields.

The entitlement lives on the User row (subscription_plan,
subscription_expiry_date, ...). Every change locks that row with
SELECT ... FOR UPDATE so two grants for the same user serialise instead
of both extending from the same old expiry.

Extension rule:
    Active subscription:  new_expiry = current_expiry + duration_days
    Free or lapsed:       new_expiry = now + duration_days

Usage:
    from payments.services import SubscriptionService

    SubscriptionService.grant(
        user_id=user.id,
        plan="pro",
        duration_days=30,
        source="payment",
        duration_tier_months=1,
    )

    SubscriptionService.revoke(user_id=user.id)
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.utils import timezone

from authentication.models import SubscriptionPlan, SubscriptionSource, User
from core.services import BaseService
from payments.exceptions import PaymentValidationError
from payments.plans import infer_tier_months

logger = logging.getLogger(__name__)


class SubscriptionService(BaseService):
    """
    Grants, extends and revokes paid plans.

    Callers are expected to already be inside the database transaction
    that changed the Transaction row; the nested atomic() block becomes a
    savepoint in that case.
    """

    @classmethod
    def grant(
        cls,
        user_id,
        plan: str,
        duration_days: int,
        source: str = SubscriptionSource.PAYMENT,
        duration_tier_months: int | None = None,
    ) -> User:
        """
        Grant ``plan`` for ``duration_days``, extending an active subscription.

        Args:
            user_id: Beneficiary
            plan: start | pro | premium
            duration_days: Length of the entitlement window
            source: payment | promocode | admin | gift
            duration_tier_months: Billing tier; inferred from days when omitted

        Returns:
            The updated User

        Raises:
            PaymentValidationError: Free plan or non-positive duration
            User.DoesNotExist: Unknown user
        """
        if plan == SubscriptionPlan.FREE or plan not in SubscriptionPlan.values:
            raise PaymentValidationError(
                f"Cannot grant plan: {plan}",
                error_code="INVALID_PLAN",
                details={"plan": plan},
            )
        if not duration_days or duration_days <= 0:
            raise PaymentValidationError(
                "duration_days must be positive",
                error_code="INVALID_DURATION",
                details={"duration_days": duration_days},
            )

        with cls.atomic():
            user = User.objects.select_for_update().get(pk=user_id)
            now = timezone.now()

            extended = user.has_active_subscription(now=now)
            start = user.subscription_expiry_date if extended else now

            user.subscription_plan = plan
            user.subscription_expiry_date = start + timedelta(days=duration_days)
            user.subscription_source = source
            user.subscription_duration_months = duration_tier_months or infer_tier_months(
                duration_days
            )
            user.subscription_activated_at = now
            user.save(
                update_fields=[
                    "subscription_plan",
                    "subscription_expiry_date",
                    "subscription_source",
                    "subscription_duration_months",
                    "subscription_activated_at",
                    "updated_at",
                ]
            )

        logger.info(
            "Subscription granted",
            extra={
                "user_id": user.pk,
                "plan": plan,
                "duration_days": duration_days,
                "source": source,
                "extended": extended,
                "expiry_date": user.subscription_expiry_date.isoformat(),
            },
        )
        return user

    @classmethod
    def revoke(cls, user_id) -> User:
        """
        Reset the user to the free plan.

        Idempotent: revoking a free user changes nothing.
        """
        with cls.atomic():
            user = User.objects.select_for_update().get(pk=user_id)
            if (
                user.subscription_plan == SubscriptionPlan.FREE
                and user.subscription_expiry_date is None
            ):
                return user

            previous_plan = user.subscription_plan
            cls._reset(user)

        logger.info(
            "Subscription revoked",
            extra={"user_id": user.pk, "previous_plan": previous_plan},
        )
        return user

    @classmethod
    def expire_lapsed(cls, now=None) -> int:
        """
        Reset every paid user whose expiry has passed.

        Returns:
            Number of users moved back to free
        """
        now = now or timezone.now()
        lapsed_ids = list(
            User.objects.exclude(subscription_plan=SubscriptionPlan.FREE)
            .filter(subscription_expiry_date__lte=now)
            .values_list("pk", flat=True)
        )

        expired = 0
        for user_id in lapsed_ids:
            with cls.atomic():
                user = User.objects.select_for_update().get(pk=user_id)
                # A grant may have landed since the id list was read
                if user.has_active_subscription(now=now) or user.subscription_plan == SubscriptionPlan.FREE:
                    continue
                cls._reset(user)
                expired += 1

        if expired:
            logger.info("Lapsed subscriptions expired", extra={"count": expired})
        return expired

    @staticmethod
    def _reset(user: User) -> None:
        user.subscription_plan = SubscriptionPlan.FREE
        user.subscription_expiry_date = None
        user.subscription_source = None
        user.subscription_duration_months = None
        user.save(
            update_fields=[
                "subscription_plan",
                "subscription_expiry_date",
                "subscription_source",
                "subscription_duration_months",
                "updated_at",
            ]
        )
