"""
Tests for PaymentService.

Gateway clients are replaced by mocks through PaymentService.set_gateways()
(the fake_gateways fixture), so these tests check our side of each flow:
rows created, statuses applied, subscriptions granted, errors surfaced.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.models import SubscriptionPlan
from payments.exceptions import GatewayError
from payments.gateways import (
    CardBindingResult,
    CardBindingStatusResult,
    InvoiceResult,
    StatusResult,
)
from payments.models import CardBindingSession, Transaction
from payments.services import PaymentService
from payments.state_machines import CardBindingStatus, TransactionKind, TransactionStatus
from payments.tests.factories import CardBindingSessionFactory, TransactionFactory


def _status(txn, provider_status, **overrides):
    options = {
        "external_id": txn.external_id,
        "provider_status": provider_status,
        "invoice_id": txn.internal_invoice_id,
        "amount": txn.amount_minor_units,
    }
    options.update(overrides)
    return StatusResult(**options)


# =============================================================================
# initiate_payment
# =============================================================================


class TestInitiatePayment:
    def test_creates_pending_transaction_and_invoice(self, db, user, fake_gateways):
        """
        Given a user buying pro for 1 month
        When the payment is initiated
        Then a pending 45 500 000 row exists with the gateway's invoice uuid
        """
        client = fake_gateways["card_checkout"]
        client.create_invoice.return_value = InvoiceResult(
            external_id="inv-uuid-1",
            checkout_url="https://pay.test/inv-uuid-1",
        )

        result = PaymentService.initiate_payment(user, plan="pro", duration_months=1)

        assert result.success, result.error
        txn = result.data
        assert txn.status == TransactionStatus.PENDING
        assert txn.amount_minor_units == 45_500_000
        assert txn.duration_days == 30
        assert txn.duration_tier_months == 1
        assert txn.external_id == "inv-uuid-1"
        assert txn.checkout_url == "https://pay.test/inv-uuid-1"
        assert txn.internal_invoice_id.startswith("PAY-PRO-")

        spec = client.create_invoice.call_args.args[0]
        assert spec.invoice_id == txn.internal_invoice_id
        assert spec.amount == 45_500_000
        assert spec.callback_url == "https://api.test/api/v1/payments/webhooks/card_checkout/"
        assert spec.return_url == (
            f"https://api.test/api/v1/payments/return/card_checkout/?invoice_id={txn.internal_invoice_id}"
        )
        assert spec.items[0].total == 45_500_000

    def test_short_link_kept_in_payment_details(self, db, user, fake_gateways):
        fake_gateways["invoice_qr"].create_invoice.return_value = InvoiceResult(
            external_id="qr-uuid-1",
            checkout_url="https://qr.test/qr-uuid-1",
            short_link="https://q.t/1",
        )

        result = PaymentService.initiate_payment(user, plan="start", duration_months=6, gateway="invoice_qr")

        assert result.data.payment_details["short_link"] == "https://q.t/1"
        assert result.data.duration_days == 180

    def test_invalid_plan_creates_nothing(self, db, user, fake_gateways):
        result = PaymentService.initiate_payment(user, plan="platinum")

        assert result.success is False
        assert result.error_code == "INVALID_PLAN"
        assert Transaction.objects.count() == 0
        fake_gateways["card_checkout"].create_invoice.assert_not_called()

    def test_unknown_gateway(self, db, user, fake_gateways):
        result = PaymentService.initiate_payment(user, plan="pro", gateway="paypal")

        assert result.error_code == "UNKNOWN_GATEWAY"
        assert Transaction.objects.count() == 0

    def test_gateway_rejection_marks_row_failed(self, db, user, fake_gateways):
        """
        Given the gateway rejects the invoice with ERROR_FIELDS
        When the payment is initiated
        Then the row is failed and the provider code is returned
        """
        fake_gateways["card_checkout"].create_invoice.side_effect = GatewayError(
            "card_checkout create_invoice failed",
            code="ERROR_FIELDS",
            details={"operation": "create_invoice"},
            http_status=400,
        )

        result = PaymentService.initiate_payment(user, plan="pro")

        assert result.success is False
        assert result.error_code == "ERROR_FIELDS"
        txn = Transaction.objects.get()
        assert txn.status == TransactionStatus.FAILED
        assert txn.error_code == "ERROR_FIELDS"


# =============================================================================
# scan_pay / confirm_otp / refresh_status
# =============================================================================


class TestScanPay:
    def test_paid_answer_grants_plan(self, db, qr_transaction, fake_gateways):
        fake_gateways["invoice_qr"].scan_pay.return_value = _status(
            qr_transaction, "success", payment_details={"card_pan": "986010******3740"}
        )

        result = PaymentService.scan_pay(qr_transaction, "QR-PAYLOAD")

        assert result.success, result.error
        assert result.data.status == TransactionStatus.PAID
        assert result.data.payment_details["card_pan"] == "986010******3740"
        fake_gateways["invoice_qr"].scan_pay.assert_called_once_with(qr_transaction.external_id, "QR-PAYLOAD")
        qr_transaction.user.refresh_from_db()
        assert qr_transaction.user.subscription_plan == SubscriptionPlan.PRO

    def test_qr_code_required(self, db, qr_transaction, fake_gateways):
        result = PaymentService.scan_pay(qr_transaction, "")

        assert result.error_code == "VALIDATION_ERROR"
        assert "qr_code" in result.errors

    def test_unsupported_gateway(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].scan_pay.side_effect = GatewayError(
            "card_checkout does not support scan-pay", code="UNSUPPORTED_OPERATION", http_status=400
        )

        result = PaymentService.scan_pay(pending_transaction, "QR")

        assert result.error_code == "UNSUPPORTED_OPERATION"
        pending_transaction.refresh_from_db()
        assert pending_transaction.status == TransactionStatus.PENDING


class TestConfirmOtp:
    def test_success(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].confirm_otp.return_value = _status(pending_transaction, "success")

        result = PaymentService.confirm_otp(pending_transaction, "123456")

        assert result.data.status == TransactionStatus.PAID

    def test_wrong_otp(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].confirm_otp.side_effect = GatewayError(
            "card_checkout confirm_otp failed", code="OTP_INVALID", http_status=400
        )

        result = PaymentService.confirm_otp(pending_transaction, "000000")

        assert result.error_code == "OTP_INVALID"
        pending_transaction.refresh_from_db()
        assert pending_transaction.status == TransactionStatus.PENDING

    def test_not_pending(self, db, paid_transaction, fake_gateways):
        result = PaymentService.confirm_otp(paid_transaction, "123456")

        assert result.error_code == "INVALID_STATE_TRANSITION"
        fake_gateways["card_checkout"].confirm_otp.assert_not_called()


class TestRefreshStatus:
    def test_applies_provider_status(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].get_status.return_value = _status(
            pending_transaction, "error", error_code="05", error_message="Do not honor"
        )

        result = PaymentService.refresh_status(pending_transaction)

        assert result.data.status == TransactionStatus.FAILED
        assert result.data.error_code == "05"

    def test_still_pending(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].get_status.return_value = _status(pending_transaction, "progress")

        result = PaymentService.refresh_status(pending_transaction)

        assert result.success
        assert result.data.status == TransactionStatus.PENDING

    def test_unknown_provider_status_is_a_failure(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].get_status.return_value = _status(pending_transaction, "quantum")

        result = PaymentService.refresh_status(pending_transaction)

        assert result.success is False
        assert result.error_code == "UNKNOWN_PROVIDER_STATUS"

    def test_no_invoice_yet(self, db, fake_gateways):
        txn = TransactionFactory(external_id=None)

        result = PaymentService.refresh_status(txn)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        fake_gateways["card_checkout"].get_status.assert_not_called()

    def test_gateway_unreachable(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].get_status.side_effect = GatewayError(
            "Could not reach card_checkout", code="GATEWAY_UNAVAILABLE", http_status=503
        )

        result = PaymentService.refresh_status(pending_transaction)

        assert result.error_code == "GATEWAY_UNAVAILABLE"


# =============================================================================
# cancel_payment / refund_payment
# =============================================================================


class TestCancelPayment:
    def test_cancels_pending_invoice(self, db, pending_transaction, fake_gateways):
        result = PaymentService.cancel_payment(pending_transaction)

        assert result.data.status == TransactionStatus.CANCELED
        fake_gateways["card_checkout"].cancel.assert_called_once_with(pending_transaction.external_id)

    def test_row_without_invoice_is_cancelled_locally(self, db, fake_gateways):
        txn = TransactionFactory(external_id=None)

        result = PaymentService.cancel_payment(txn)

        assert result.data.status == TransactionStatus.CANCELED
        fake_gateways["card_checkout"].cancel.assert_not_called()

    def test_paid_cannot_be_cancelled(self, db, paid_transaction, fake_gateways):
        result = PaymentService.cancel_payment(paid_transaction)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert result.details == {"current_state": "paid", "target_state": "canceled"}

    def test_gateway_refusal_keeps_row_pending(self, db, pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].cancel.side_effect = GatewayError(
            "card_checkout cancel failed", code="INVOICE_ALREADY_PAID", http_status=400
        )

        result = PaymentService.cancel_payment(pending_transaction)

        assert result.error_code == "INVOICE_ALREADY_PAID"
        pending_transaction.refresh_from_db()
        assert pending_transaction.status == TransactionStatus.PENDING


class TestRefundPayment:
    def test_refund_revokes_subscription(self, db, user, fake_gateways):
        """
        Given a paid transaction whose grant is active
        When staff refund it
        Then the gateway refund is called and the user is back on free
        """
        txn = TransactionFactory(user=user)
        fake_gateways["card_checkout"].get_status.return_value = _status(txn, "success")
        PaymentService.refresh_status(txn)
        user.refresh_from_db()
        assert user.subscription_plan == SubscriptionPlan.PRO

        result = PaymentService.refund_payment(txn)

        assert result.data.status == TransactionStatus.REFUNDED
        fake_gateways["card_checkout"].refund.assert_called_once_with(txn.external_id)
        user.refresh_from_db()
        assert user.subscription_plan == SubscriptionPlan.FREE

    def test_pending_cannot_be_refunded(self, db, pending_transaction, fake_gateways):
        result = PaymentService.refund_payment(pending_transaction)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        fake_gateways["card_checkout"].refund.assert_not_called()

    def test_gateway_refusal(self, db, paid_transaction, fake_gateways):
        fake_gateways["card_checkout"].refund.side_effect = GatewayError(
            "card_checkout refund failed", code="REFUND_WINDOW_CLOSED", http_status=400
        )

        result = PaymentService.refund_payment(paid_transaction)

        assert result.error_code == "REFUND_WINDOW_CLOSED"
        paid_transaction.refresh_from_db()
        assert paid_transaction.status == TransactionStatus.PAID


# =============================================================================
# Card Binding
# =============================================================================


class TestStartCardBinding:
    @freeze_time("2026-03-01 10:00:00")
    def test_creates_session_and_zero_amount_transaction(self, db, user, fake_gateways):
        client = fake_gateways["card_checkout"]
        client.bind_card.return_value = CardBindingResult(
            session_id="bind-1", form_url="https://pay.test/bind/bind-1"
        )

        result = PaymentService.start_card_binding(user, lang="en")

        session = result.data
        assert session.session_id == "bind-1"
        assert session.status == CardBindingStatus.PENDING
        assert session.expires_at == timezone.now() + timedelta(minutes=30)
        assert session.transaction.transaction_kind == TransactionKind.CARD_BINDING
        assert session.transaction.amount_minor_units == 0
        assert session.transaction.plan is None

        spec = client.bind_card.call_args.args[0]
        assert spec.callback_url == "https://api.test/api/v1/payments/webhooks/card_checkout/card-binding/"
        assert spec.redirect_url == "https://app.test/card-binding/success"
        assert spec.lang == "en"

    def test_gateway_error_creates_nothing(self, db, user, fake_gateways):
        fake_gateways["card_checkout"].bind_card.side_effect = GatewayError("down", code="GATEWAY_UNAVAILABLE")

        result = PaymentService.start_card_binding(user)

        assert result.error_code == "GATEWAY_UNAVAILABLE"
        assert CardBindingSession.objects.count() == 0
        assert Transaction.objects.count() == 0


class TestSyncCardBinding:
    def test_active_binding(self, db, card_binding_session, fake_gateways):
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=card_binding_session.session_id,
            status="active",
            card_details={"card_pan": "860006******6311", "card_token": "tok_1", "ps": "uzcard"},
        )

        result = PaymentService.sync_card_binding(card_binding_session, payload={"session_id": "x"})

        session = result.data
        assert session.status == CardBindingStatus.ACTIVE
        assert session.card_details["card_token"] == "tok_1"
        assert session.raw_callback_payload == {"session_id": "x"}
        session.transaction.refresh_from_db()
        assert session.transaction.status == TransactionStatus.PAID
        assert "card_token" not in session.transaction.payment_details
        session.user.refresh_from_db()
        assert session.user.subscription_plan == SubscriptionPlan.FREE

    def test_declined_binding(self, db, card_binding_session, fake_gateways):
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=card_binding_session.session_id, status="failed"
        )

        session = PaymentService.sync_card_binding(card_binding_session).data

        assert session.status == CardBindingStatus.FAILED
        assert session.error_message == "declined"
        session.transaction.refresh_from_db()
        assert session.transaction.status == TransactionStatus.FAILED

    def test_still_pending(self, db, card_binding_session, fake_gateways):
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=card_binding_session.session_id, status="pending"
        )

        session = PaymentService.sync_card_binding(card_binding_session).data

        assert session.status == CardBindingStatus.PENDING

    def test_expired_and_still_pending_is_failed(self, db, fake_gateways):
        session = CardBindingSessionFactory(expires_at=timezone.now() - timedelta(minutes=1))
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=session.session_id, status="pending"
        )

        result = PaymentService.sync_card_binding(session)

        assert result.data.status == CardBindingStatus.FAILED
        assert result.data.error_message == "expired"

    def test_expired_with_gateway_down_is_failed(self, db, fake_gateways):
        session = CardBindingSessionFactory(expires_at=timezone.now() - timedelta(minutes=1))
        fake_gateways["card_checkout"].get_card_binding.side_effect = GatewayError("down", code="GATEWAY_TIMEOUT")

        result = PaymentService.sync_card_binding(session)

        assert result.success
        assert result.data.status == CardBindingStatus.FAILED

    def test_gateway_down_before_expiry(self, db, card_binding_session, fake_gateways):
        fake_gateways["card_checkout"].get_card_binding.side_effect = GatewayError("down", code="GATEWAY_TIMEOUT")

        result = PaymentService.sync_card_binding(card_binding_session)

        assert result.error_code == "GATEWAY_TIMEOUT"
        card_binding_session.refresh_from_db()
        assert card_binding_session.status == CardBindingStatus.PENDING

    def test_terminal_session_is_not_polled(self, db, fake_gateways):
        session = CardBindingSessionFactory(status=CardBindingStatus.ACTIVE)

        result = PaymentService.sync_card_binding(session)

        assert result.data is session
        fake_gateways["card_checkout"].get_card_binding.assert_not_called()


@pytest.mark.parametrize(
    "card_binding,expected",
    [
        (False, "https://api.test/api/v1/payments/webhooks/invoice_qr/"),
        (True, "https://api.test/api/v1/payments/webhooks/invoice_qr/card-binding/"),
    ],
)
def test_callback_url(card_binding, expected):
    assert PaymentService.callback_url("invoice_qr", card_binding=card_binding) == expected
