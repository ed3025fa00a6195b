"""
Authentication models.

- User: Custom user model with email-based authentication. The user's
  subscription entitlement is embedded on the same row.

Related files:
    - managers.py: Custom user manager for email-based creation
    - payments/services/subscription_service.py: the only writer of the
      subscription_* fields

Subscription invariants:
    - subscription_plan != free implies subscription_expiry_date is set
    - has_active_subscription() := plan != free AND expiry > now
    - Rows are never deleted for lapsed subscriptions, only reset to free
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone

from authentication.managers import UserManager


class SubscriptionPlan(models.TextChoices):
    """Entitlement levels. FREE is the signup default."""

    FREE = "free", "Free"
    START = "start", "Start"
    PRO = "pro", "Pro"
    PREMIUM = "premium", "Premium"


class SubscriptionSource(models.TextChoices):
    """How the current entitlement was obtained."""

    PAYMENT = "payment", "Payment"
    PROMOCODE = "promocode", "Promo code"
    ADMIN = "admin", "Admin"
    GIFT = "gift", "Gift"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin and refund payments
        date_joined: When the user account was created
        subscription_plan: Current plan (free | start | pro | premium)
        subscription_expiry_date: End of the paid window, null on free
        subscription_source: payment | promocode | admin | gift
        subscription_duration_months: Billing tier of the last grant (1 | 3 | 6)
        subscription_activated_at: When the last grant was applied

    Usage:
        user = User.objects.create_user(
            email="user@example.com",
            password="securepassword",
        )
        user.has_active_subscription()  # False
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    # =========================================================================
    # Subscription entitlement
    # =========================================================================
    subscription_plan = models.CharField(
        max_length=16,
        choices=SubscriptionPlan.choices,
        default=SubscriptionPlan.FREE,
        db_index=True,
        help_text="Current subscription plan",
    )
    subscription_expiry_date = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the paid plan lapses (null on the free plan)",
    )
    subscription_source = models.CharField(
        max_length=16,
        choices=SubscriptionSource.choices,
        null=True,
        blank=True,
        help_text="How the current plan was obtained",
    )
    subscription_duration_months = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Billing tier of the last grant (1, 3 or 6 months)",
    )
    subscription_activated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last grant was applied",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def has_active_subscription(self, now=None) -> bool:
        """
        Return True when the user holds a paid plan that has not lapsed.

        Args:
            now: Reference time, defaults to timezone.now()
        """
        if self.subscription_plan == SubscriptionPlan.FREE:
            return False
        if self.subscription_expiry_date is None:
            return False
        return self.subscription_expiry_date > (now or timezone.now())
