"""
Transaction model: one row per payment, scan-pay or card-binding attempt.

The Transaction row is the single source of truth for idempotency. Its
status only moves forward through the state machine, and every UPDATE is
conditional on the status the row had when it was read
(ConcurrentTransitionMixin), so two workers handling duplicate callbacks
cannot both apply a terminal transition.

Usage:
    from payments.models import Transaction
    from payments.state_machines import GatewayName, TransactionKind

    txn = Transaction.objects.create(
        internal_invoice_id=Transaction.new_invoice_id(TransactionKind.PAYMENT, "pro"),
        user=user,
        plan="pro",
        amount_minor_units=45_500_000,
        duration_days=30,
        duration_tier_months=1,
        gateway=GatewayName.CARD_CHECKOUT,
    )

    # State transitions using django-fsm
    txn.mark_paid(payment_details={"card_pan": "986010******3740"})
    txn.save()
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import GatewayName, TransactionKind, TransactionStatus


class PaidPlan(models.TextChoices):
    """Plans that can be purchased (the free plan is never sold)."""

    START = "start", "Start"
    PRO = "pro", "Pro"
    PREMIUM = "premium", "Premium"


class Transaction(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    Persisted record of one gateway payment attempt.

    State Flow:
        PENDING -> PAID -> REFUNDED
        PENDING -> FAILED
        PENDING -> CANCELED

    Fields:
        internal_invoice_id: Caller-assigned correlation id sent to the gateway
        external_id: Gateway-assigned invoice/payment UUID (set once acknowledged)
        user: Owner of the payment and beneficiary of the subscription grant
        plan: Purchased plan, null for card-binding rows
        amount_minor_units: Amount in the smallest currency unit
        duration_days: Entitlement length granted on payment
        duration_tier_months: Billing tier (1, 3 or 6)
        status: Current state (managed by FSM)
        gateway: card_checkout | invoice_qr
        transaction_kind: payment | card_binding | scan_pay
        payment_details: Provider receipt metadata (masked card, ps, receipt url)
        raw_callback_payload: Last callback body received, for audit
        checkout_url: Hosted payment page returned by the gateway
        error_code / error_message: Provider failure reason
    """

    # ==========================================================================
    # Identification
    # ==========================================================================

    internal_invoice_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Correlation id assigned by us and echoed back by the gateway",
    )

    external_id = models.CharField(
        max_length=128,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway-assigned invoice/payment UUID",
    )

    gateway = models.CharField(
        max_length=32,
        choices=GatewayName.choices,
        db_index=True,
        help_text="Gateway this transaction was created on",
    )

    transaction_kind = models.CharField(
        max_length=20,
        choices=TransactionKind.choices,
        default=TransactionKind.PAYMENT,
        help_text="What this transaction pays for",
    )

    # ==========================================================================
    # Purchase
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_transactions",
        help_text="User who initiated the payment",
    )

    plan = models.CharField(
        max_length=16,
        choices=PaidPlan.choices,
        null=True,
        blank=True,
        help_text="Purchased plan (null for card binding)",
    )

    amount_minor_units = models.PositiveBigIntegerField(
        help_text="Amount in minor currency units",
    )

    duration_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Entitlement length granted when paid",
    )

    duration_tier_months = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Billing tier in months (1, 3 or 6)",
    )

    lang = models.CharField(
        max_length=8,
        default="ru",
        help_text="Language of the hosted payment page",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        help_text="Current state of the transaction (managed by FSM)",
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Provider Data
    # ==========================================================================

    checkout_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Hosted checkout page returned by the gateway",
    )

    payment_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Provider receipt metadata (masked card, processor, response code)",
    )

    raw_callback_payload = models.JSONField(
        null=True,
        blank=True,
        help_text="Last callback body received from the gateway",
    )

    error_code = models.CharField(max_length=64, blank=True, default="")
    error_message = models.TextField(blank=True, default="")

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["user", "status"], name="payments_tr_user_id_2f7c1a_idx"),
            models.Index(fields=["status", "created_at"], name="payments_tr_status_8e3b4d_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "external_id"],
                name="transaction_gateway_external_id_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"Transaction({self.internal_invoice_id}, {self.status}, {self.amount_minor_units})"

    @staticmethod
    def new_invoice_id(kind: str, plan: str | None = None) -> str:
        """
        Build a fresh correlation id, e.g. ``PAY-PRO-4f1c2a9b8e7d``.

        Gateways echo this value back in callbacks, so it must be unique
        across all rows and stable once sent.
        """
        prefix = {
            TransactionKind.PAYMENT: "PAY",
            TransactionKind.SCAN_PAY: "SCAN",
            TransactionKind.CARD_BINDING: "BIND",
        }[TransactionKind(kind)]
        parts = [prefix]
        if plan:
            parts.append(plan.upper())
        parts.append(uuid.uuid4().hex[:12])
        return "-".join(parts)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TransactionStatus.terminal_values()

    @property
    def grants_subscription(self) -> bool:
        """Card-binding rows carry no plan and never touch the subscription."""
        return self.transaction_kind != TransactionKind.CARD_BINDING and bool(self.plan)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PAID,
    )
    def mark_paid(self, payment_details: dict | None = None, paid_at=None):
        """
        Transition: PENDING -> PAID

        The subscription grant is applied by the caller in the same
        database transaction, after this row is saved.
        """
        if payment_details:
            self.payment_details = {**(self.payment_details or {}), **payment_details}
        self.paid_at = paid_at or timezone.now()
        self.error_code = ""
        self.error_message = ""

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.FAILED,
    )
    def mark_failed(self, error_code: str = "", error_message: str = ""):
        """Transition: PENDING -> FAILED"""
        self.failed_at = timezone.now()
        self.error_code = error_code or ""
        self.error_message = error_message or ""

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.CANCELED,
    )
    def mark_canceled(self, error_code: str = "", error_message: str = ""):
        """Transition: PENDING -> CANCELED"""
        self.canceled_at = timezone.now()
        self.error_code = error_code or ""
        self.error_message = error_message or ""

    @transition(
        field=status,
        source=[TransactionStatus.PENDING, TransactionStatus.PAID],
        target=TransactionStatus.REFUNDED,
    )
    def mark_refunded(self, refunded_at=None):
        """
        Transition: PENDING | PAID -> REFUNDED

        PAID -> REFUNDED is the only transition allowed out of a terminal
        state. A pending invoice reverted by the gateway lands here too.
        """
        self.refunded_at = refunded_at or timezone.now()
