# Generated manually - Transaction, CardBindingSession and WebhookEvent tables

import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


TRANSACTION_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("paid", "Paid"),
    ("failed", "Failed"),
    ("refunded", "Refunded"),
    ("canceled", "Canceled"),
]

GATEWAY_CHOICES = [
    ("card_checkout", "Card checkout"),
    ("invoice_qr", "Invoice / QR"),
]


class Migration(migrations.Migration):
    """
    Create the payment tables.

    Transaction.status and CardBindingSession.status are django-fsm fields;
    saves are conditional on the status read (ConcurrentTransitionMixin).
    """

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Transaction",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "internal_invoice_id",
                    models.CharField(
                        help_text="Correlation id assigned by us and echoed back by the gateway",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "external_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway-assigned invoice/payment UUID",
                        max_length=128,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "gateway",
                    models.CharField(
                        choices=GATEWAY_CHOICES,
                        db_index=True,
                        help_text="Gateway this transaction was created on",
                        max_length=32,
                    ),
                ),
                (
                    "transaction_kind",
                    models.CharField(
                        choices=[
                            ("payment", "Payment"),
                            ("card_binding", "Card binding"),
                            ("scan_pay", "Scan pay"),
                        ],
                        default="payment",
                        help_text="What this transaction pays for",
                        max_length=20,
                    ),
                ),
                (
                    "plan",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("start", "Start"),
                            ("pro", "Pro"),
                            ("premium", "Premium"),
                        ],
                        help_text="Purchased plan (null for card binding)",
                        max_length=16,
                        null=True,
                    ),
                ),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(help_text="Amount in minor currency units"),
                ),
                (
                    "duration_days",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Entitlement length granted when paid",
                        null=True,
                    ),
                ),
                (
                    "duration_tier_months",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Billing tier in months (1, 3 or 6)",
                        null=True,
                    ),
                ),
                (
                    "lang",
                    models.CharField(
                        default="ru",
                        help_text="Language of the hosted payment page",
                        max_length=8,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=TRANSACTION_STATUS_CHOICES,
                        db_index=True,
                        default="pending",
                        help_text="Current state of the transaction (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "checkout_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Hosted checkout page returned by the gateway",
                        max_length=500,
                    ),
                ),
                (
                    "payment_details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Provider receipt metadata (masked card, processor, response code)",
                    ),
                ),
                (
                    "raw_callback_payload",
                    models.JSONField(
                        blank=True,
                        help_text="Last callback body received from the gateway",
                        null=True,
                    ),
                ),
                ("error_code", models.CharField(blank=True, default="", max_length=64)),
                ("error_message", models.TextField(blank=True, default="")),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who initiated the payment",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Transaction",
                "verbose_name_plural": "Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "status"], name="payments_tr_user_id_2f7c1a_idx"),
                    models.Index(fields=["status", "created_at"], name="payments_tr_status_8e3b4d_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("gateway", "external_id"),
                        name="transaction_gateway_external_id_unique",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CardBindingSession",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "session_id",
                    models.CharField(
                        help_text="Gateway-issued session identifier",
                        max_length=128,
                        unique=True,
                    ),
                ),
                ("gateway", models.CharField(choices=GATEWAY_CHOICES, max_length=32)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("active", "Active"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                (
                    "card_details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Masked PAN, card token and issuing network",
                    ),
                ),
                ("form_url", models.URLField(blank=True, default="", max_length=500)),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("raw_callback_payload", models.JSONField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, default="")),
                (
                    "transaction",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="card_binding_session",
                        to="payments.transaction",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="card_binding_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Card Binding Session",
                "verbose_name_plural": "Card Binding Sessions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("gateway", models.CharField(db_index=True, max_length=32)),
                ("kind", models.CharField(default="payment", max_length=20)),
                (
                    "invoice_id",
                    models.CharField(blank=True, db_index=True, default="", max_length=64),
                ),
                ("external_id", models.CharField(blank=True, default="", max_length=128)),
                ("provider_status", models.CharField(blank=True, default="", max_length=32)),
                ("payload", models.JSONField(blank=True, default=dict)),
                (
                    "outcome",
                    models.CharField(
                        choices=[
                            ("applied", "Applied"),
                            ("already_processed", "Already processed"),
                            ("ignored_transient", "Transient status recorded"),
                            ("not_found", "Transaction not found"),
                            ("amount_mismatch", "Amount mismatch"),
                            ("rejected", "Signature rejected"),
                            ("invalid", "Invalid payload"),
                            ("error", "Processing error"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("response_status", models.PositiveSmallIntegerField(default=200)),
                ("error_message", models.TextField(blank=True, default="")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["gateway", "created_at"], name="payments_we_gateway_5a9d2e_idx"),
                ],
            },
        ),
    ]
