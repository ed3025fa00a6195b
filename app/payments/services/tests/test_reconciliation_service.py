"""
Tests for ReconciliationService.
"""

from datetime import timedelta

from django.utils import timezone

from payments.exceptions import GatewayError
from payments.gateways import CardBindingStatusResult, StatusResult
from payments.models import Transaction
from payments.services import ReconciliationService
from payments.state_machines import CardBindingStatus, TransactionStatus
from payments.tests.factories import CardBindingSessionFactory, TransactionFactory


def _age(txn, minutes):
    """Backdate created_at, which auto_now_add sets on insert."""
    Transaction.objects.filter(pk=txn.pk).update(created_at=timezone.now() - timedelta(minutes=minutes))
    txn.refresh_from_db()
    return txn


def _status(txn, provider_status):
    return StatusResult(
        external_id=txn.external_id,
        provider_status=provider_status,
        invoice_id=txn.internal_invoice_id,
        amount=txn.amount_minor_units,
    )


class TestReconcilePending:
    def test_stale_pending_row_is_healed(self, db, fake_gateways):
        """
        Given a pending row whose callback never arrived 20 minutes ago
        When reconciliation runs
        Then the provider status is applied and counted as changed
        """
        txn = _age(TransactionFactory(), minutes=20)
        fake_gateways["card_checkout"].get_status.return_value = _status(txn, "success")

        run = ReconciliationService.reconcile_pending().data

        assert run.checked == 1
        assert run.changed == 1
        txn.refresh_from_db()
        assert txn.status == TransactionStatus.PAID

    def test_recent_rows_are_left_alone(self, db, fake_gateways):
        TransactionFactory()

        run = ReconciliationService.reconcile_pending().data

        assert run.checked == 0
        fake_gateways["card_checkout"].get_status.assert_not_called()

    def test_threshold_is_configurable(self, db, settings, fake_gateways):
        settings.PAYMENT_RECONCILE_AFTER_MINUTES = 60
        txn = _age(TransactionFactory(), minutes=20)

        assert ReconciliationService.reconcile_pending().data.checked == 0
        assert ReconciliationService.reconcile_pending(older_than=timedelta(minutes=5)).data.checked == 1
        fake_gateways["card_checkout"].get_status.assert_called_once_with(txn.external_id)

    def test_skips_rows_never_sent_and_card_binding_rows(self, db, fake_gateways):
        _age(TransactionFactory(external_id=None), minutes=30)
        _age(CardBindingSessionFactory().transaction, minutes=30)
        _age(TransactionFactory(paid=True), minutes=30)

        run = ReconciliationService.reconcile_pending().data

        assert run.checked == 0

    def test_still_pending_counted_as_unchanged(self, db, fake_gateways):
        txn = _age(TransactionFactory(), minutes=20)
        fake_gateways["card_checkout"].get_status.return_value = _status(txn, "progress")

        run = ReconciliationService.reconcile_pending().data

        assert run.unchanged == 1
        assert run.changed == 0

    def test_gateway_error_does_not_stop_the_run(self, db, fake_gateways):
        """
        Given two stale rows on different gateways, one gateway down
        When reconciliation runs
        Then the healthy row is healed and the other is reported
        """
        broken = _age(TransactionFactory(gateway="invoice_qr"), minutes=40)
        healthy = _age(TransactionFactory(), minutes=20)
        fake_gateways["invoice_qr"].get_status.side_effect = GatewayError(
            "Could not reach invoice_qr", code="GATEWAY_UNAVAILABLE"
        )
        fake_gateways["card_checkout"].get_status.return_value = _status(healthy, "error")

        run = ReconciliationService.reconcile_pending().data

        assert run.checked == 2
        assert run.changed == 1
        assert run.errors == [
            {"invoice_id": broken.internal_invoice_id, "error_code": "GATEWAY_UNAVAILABLE"}
        ]
        healthy.refresh_from_db()
        assert healthy.status == TransactionStatus.FAILED

    def test_batch_size(self, db, fake_gateways):
        for _ in range(3):
            txn = _age(TransactionFactory(), minutes=20)
        fake_gateways["card_checkout"].get_status.return_value = _status(txn, "progress")

        run = ReconciliationService.reconcile_pending(batch_size=2).data

        assert run.checked == 2


class TestExpireCardBindingSessions:
    def test_expired_sessions_are_settled(self, db, fake_gateways):
        expired = CardBindingSessionFactory(expires_at=timezone.now() - timedelta(minutes=5))
        live = CardBindingSessionFactory()
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=expired.session_id, status="pending"
        )

        run = ReconciliationService.expire_card_binding_sessions().data

        assert run.checked == 1
        assert run.changed == 1
        expired.refresh_from_db()
        live.refresh_from_db()
        assert expired.status == CardBindingStatus.FAILED
        assert expired.error_message == "expired"
        assert live.status == CardBindingStatus.PENDING

    def test_late_success_is_kept(self, db, fake_gateways):
        """
        Given a session past its expiry that the gateway reports active
        When expiry runs
        Then the card is stored instead of failing the session
        """
        session = CardBindingSessionFactory(expires_at=timezone.now() - timedelta(minutes=5))
        fake_gateways["card_checkout"].get_card_binding.return_value = CardBindingStatusResult(
            session_id=session.session_id,
            status="active",
            card_details={"card_pan": "860006******6311", "card_token": "tok_9"},
        )

        ReconciliationService.expire_card_binding_sessions()

        session.refresh_from_db()
        assert session.status == CardBindingStatus.ACTIVE
        assert session.card_details["card_token"] == "tok_9"

    def test_nothing_to_expire(self, db, fake_gateways):
        run = ReconciliationService.expire_card_binding_sessions().data

        assert run.checked == 0
        fake_gateways["card_checkout"].get_card_binding.assert_not_called()
