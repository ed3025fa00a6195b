# Generated manually - email-based User with embedded subscription fields

import authentication.managers
from django.db import migrations, models


class Migration(migrations.Migration):
    """
    Create the User table.

    Subscription state lives on the user row so SubscriptionService can lock
    it with select_for_update() while extending or revoking a plan.
    """

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("password", models.CharField(max_length=128, verbose_name="password")),
                (
                    "last_login",
                    models.DateTimeField(blank=True, null=True, verbose_name="last login"),
                ),
                (
                    "is_superuser",
                    models.BooleanField(
                        default=False,
                        help_text="Designates that this user has all permissions without explicitly assigning them.",
                        verbose_name="superuser status",
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        db_index=True,
                        help_text="User's email address (primary identifier)",
                        max_length=254,
                        unique=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Whether this user account is active. Deselect instead of deleting.",
                    ),
                ),
                (
                    "is_staff",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the user can access the admin site.",
                    ),
                ),
                (
                    "date_joined",
                    models.DateTimeField(
                        auto_now_add=True,
                        help_text="When the user account was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the user record was last modified",
                    ),
                ),
                (
                    "subscription_plan",
                    models.CharField(
                        choices=[
                            ("free", "Free"),
                            ("start", "Start"),
                            ("pro", "Pro"),
                            ("premium", "Premium"),
                        ],
                        db_index=True,
                        default="free",
                        help_text="Current subscription plan",
                        max_length=16,
                    ),
                ),
                (
                    "subscription_expiry_date",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the paid plan lapses (null on the free plan)",
                        null=True,
                    ),
                ),
                (
                    "subscription_source",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("payment", "Payment"),
                            ("promocode", "Promo code"),
                            ("admin", "Admin"),
                            ("gift", "Gift"),
                        ],
                        help_text="How the current plan was obtained",
                        max_length=16,
                        null=True,
                    ),
                ),
                (
                    "subscription_duration_months",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Billing tier of the last grant (1, 3 or 6 months)",
                        null=True,
                    ),
                ),
                (
                    "subscription_activated_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the last grant was applied",
                        null=True,
                    ),
                ),
                (
                    "groups",
                    models.ManyToManyField(
                        blank=True,
                        help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.group",
                        verbose_name="groups",
                    ),
                ),
                (
                    "user_permissions",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Specific permissions for this user.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.permission",
                        verbose_name="user permissions",
                    ),
                ),
            ],
            options={
                "verbose_name": "user",
                "verbose_name_plural": "users",
                "ordering": ["-date_joined"],
            },
            managers=[
                ("objects", authentication.managers.UserManager()),
            ],
        ),
    ]
