"""
Django admin configuration for the User model.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin configuration for the email-based User model.

    Subscription fields are read-only here; grants and revocations go
    through SubscriptionService so the expiry rules stay in one place.
    """

    list_display = (
        "email",
        "subscription_plan",
        "subscription_expiry_date",
        "is_active",
        "is_staff",
        "date_joined",
    )
    list_filter = (
        "subscription_plan",
        "subscription_source",
        "is_active",
        "is_staff",
    )
    search_fields = ("email",)
    ordering = ("-date_joined",)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (
            "Subscription",
            {
                "fields": (
                    "subscription_plan",
                    "subscription_expiry_date",
                    "subscription_source",
                    "subscription_duration_months",
                    "subscription_activated_at",
                )
            },
        ),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser")},
        ),
        (
            "Permissions",
            {"fields": ("groups", "user_permissions")},
        ),
        (
            "Important dates",
            {"fields": ("date_joined", "last_login")},
        ),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )

    readonly_fields = (
        "date_joined",
        "last_login",
        "subscription_plan",
        "subscription_expiry_date",
        "subscription_source",
        "subscription_duration_months",
        "subscription_activated_at",
    )
