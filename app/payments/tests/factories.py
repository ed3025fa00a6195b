"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        CardBindingSessionFactory,
        TransactionFactory,
        WebhookEventFactory,
    )

    # Pending pro/1-month invoice on card_checkout
    txn = TransactionFactory()

    # Paid invoice_qr transaction
    txn = TransactionFactory(paid=True, gateway="invoice_qr")

    # With a specific owner
    txn = TransactionFactory(user=user)
"""

import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from payments.models import CardBindingSession, Transaction, WebhookEvent
from payments.state_machines import (
    CardBindingStatus,
    GatewayName,
    TransactionKind,
    TransactionStatus,
    WebhookOutcome,
)

__all__ = [
    "CardBindingSessionFactory",
    "TransactionFactory",
    "UserFactory",
    "WebhookEventFactory",
]


class TransactionFactory(factory.django.DjangoModelFactory):
    """
    Factory for Transaction instances.

    Defaults to a pending pro plan invoice (1 month, 45 500 000 minor units)
    that the gateway has already acknowledged.
    """

    class Meta:
        model = Transaction

    class Params:
        paid = factory.Trait(
            status=TransactionStatus.PAID,
            paid_at=factory.LazyFunction(timezone.now),
            payment_details={"card_pan": "860006******6311", "ps": "uzcard"},
        )

    internal_invoice_id = factory.LazyFunction(
        lambda: Transaction.new_invoice_id(TransactionKind.PAYMENT, "pro")
    )
    external_id = factory.LazyFunction(lambda: str(uuid.uuid4()))
    user = factory.SubFactory(UserFactory)
    gateway = GatewayName.CARD_CHECKOUT
    transaction_kind = TransactionKind.PAYMENT
    plan = "pro"
    amount_minor_units = 45_500_000
    duration_days = 30
    duration_tier_months = 1
    status = TransactionStatus.PENDING
    checkout_url = factory.LazyAttribute(lambda o: f"https://checkout.test/{o.external_id}")


class CardBindingSessionFactory(factory.django.DjangoModelFactory):
    """Pending bind-card session with its zero-amount transaction."""

    class Meta:
        model = CardBindingSession

    session_id = factory.LazyFunction(lambda: f"bind-{uuid.uuid4().hex[:16]}")
    user = factory.SubFactory(UserFactory)
    gateway = GatewayName.CARD_CHECKOUT
    status = CardBindingStatus.PENDING
    form_url = factory.LazyAttribute(lambda o: f"https://checkout.test/bind/{o.session_id}")
    expires_at = factory.LazyFunction(lambda: timezone.now() + timedelta(minutes=30))
    transaction = factory.SubFactory(
        TransactionFactory,
        user=factory.SelfAttribute("..user"),
        gateway=factory.SelfAttribute("..gateway"),
        internal_invoice_id=factory.LazyFunction(
            lambda: Transaction.new_invoice_id(TransactionKind.CARD_BINDING)
        ),
        external_id=None,
        transaction_kind=TransactionKind.CARD_BINDING,
        plan=None,
        amount_minor_units=0,
        duration_days=None,
        duration_tier_months=None,
        checkout_url="",
    )


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent

    gateway = GatewayName.CARD_CHECKOUT
    kind = "payment"
    invoice_id = factory.Sequence(lambda n: f"PAY-PRO-{n:012x}")
    provider_status = "success"
    payload = factory.LazyAttribute(lambda o: {"invoice_id": o.invoice_id, "status": o.provider_status})
    outcome = WebhookOutcome.APPLIED
    response_status = 200
