"""
Tests for payment models.

Covers:
- Transaction invoice id generation and uniqueness constraints
- grants_subscription / is_terminal properties
- WebhookEvent as a plain audit row
"""

import pytest
from django.db import IntegrityError

from payments.models import Transaction, WebhookEvent
from payments.state_machines import TransactionKind, TransactionStatus, WebhookOutcome
from payments.tests.factories import (
    CardBindingSessionFactory,
    TransactionFactory,
    WebhookEventFactory,
)


class TestNewInvoiceId:
    """Tests for Transaction.new_invoice_id()."""

    def test_payment_id_carries_plan(self):
        invoice_id = Transaction.new_invoice_id(TransactionKind.PAYMENT, "pro")

        assert invoice_id.startswith("PAY-PRO-")
        assert len(invoice_id.rsplit("-", 1)[1]) == 12

    def test_card_binding_id_has_no_plan(self):
        invoice_id = Transaction.new_invoice_id(TransactionKind.CARD_BINDING)

        assert invoice_id.startswith("BIND-")
        assert invoice_id.count("-") == 1

    def test_scan_pay_prefix(self):
        assert Transaction.new_invoice_id("scan_pay", "start").startswith("SCAN-START-")

    def test_ids_are_unique(self):
        ids = {Transaction.new_invoice_id(TransactionKind.PAYMENT, "pro") for _ in range(200)}

        assert len(ids) == 200


class TestTransactionModel:
    """Tests for Transaction fields and properties."""

    def test_defaults(self, db, user):
        txn = Transaction.objects.create(
            internal_invoice_id="PAY-PRO-000000000001",
            user=user,
            plan="pro",
            amount_minor_units=45_500_000,
            gateway="card_checkout",
        )

        assert txn.status == TransactionStatus.PENDING
        assert txn.transaction_kind == TransactionKind.PAYMENT
        assert txn.external_id is None
        assert txn.payment_details == {}
        assert txn.lang == "ru"

    def test_internal_invoice_id_is_unique(self, db, pending_transaction):
        with pytest.raises(IntegrityError):
            TransactionFactory(internal_invoice_id=pending_transaction.internal_invoice_id)

    def test_external_id_is_unique(self, db, pending_transaction):
        with pytest.raises(IntegrityError):
            TransactionFactory(external_id=pending_transaction.external_id)

    def test_rows_without_external_id_can_coexist(self, db):
        TransactionFactory(external_id=None)
        TransactionFactory(external_id=None)

        assert Transaction.objects.filter(external_id__isnull=True).count() == 2

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (TransactionStatus.PENDING, False),
            (TransactionStatus.PAID, True),
            (TransactionStatus.FAILED, True),
            (TransactionStatus.REFUNDED, True),
            (TransactionStatus.CANCELED, True),
        ],
    )
    def test_is_terminal(self, db, status, terminal):
        assert TransactionFactory(status=status).is_terminal is terminal

    def test_payment_grants_subscription(self, db, pending_transaction):
        assert pending_transaction.grants_subscription is True

    def test_card_binding_never_grants_subscription(self, db):
        session = CardBindingSessionFactory()

        assert session.transaction.transaction_kind == TransactionKind.CARD_BINDING
        assert session.transaction.grants_subscription is False

    def test_str(self, db, pending_transaction):
        assert pending_transaction.internal_invoice_id in str(pending_transaction)
        assert "pending" in str(pending_transaction)


class TestWebhookEventModel:
    def test_several_rows_per_invoice(self, db):
        """Duplicate deliveries are all recorded; the model has no uniqueness."""
        WebhookEventFactory(invoice_id="PAY-PRO-aaaaaaaaaaaa")
        WebhookEventFactory(
            invoice_id="PAY-PRO-aaaaaaaaaaaa",
            outcome=WebhookOutcome.ALREADY_PROCESSED,
        )

        assert WebhookEvent.objects.filter(invoice_id="PAY-PRO-aaaaaaaaaaaa").count() == 2

    def test_str(self, db):
        event = WebhookEventFactory(invoice_id="PAY-PRO-bbbbbbbbbbbb")

        assert "PAY-PRO-bbbbbbbbbbbb" in str(event)
        assert "applied" in str(event)
