"""
End-to-end payment journeys.

The real CardCheckoutClient is used with a mocked requests.Session, so
each journey runs through the API view, the service, the HTTP client, the
webhook view, the processor and the subscription grant.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import requests
from django.urls import reverse
from django.utils import timezone
from freezegun import freeze_time

from authentication.models import SubscriptionPlan
from payments.gateways import CardCheckoutClient, GatewayRegistry
from payments.models import Transaction, WebhookEvent
from payments.services import PaymentService
from payments.state_machines import TransactionStatus, WebhookOutcome
from payments.tests.helpers import TEST_GATEWAYS, gateway_response, signed_callback


@pytest.fixture
def gateway_session():
    """
    Mocked HTTP session behind a real card_checkout client.

    The first call is always the auth request; tests append the rest.
    """
    session = MagicMock(spec=requests.Session)
    responses = [gateway_response(data={"token": "tok-1", "expiry": "2099-01-01 00:00:00"})]
    session.request.side_effect = lambda *args, **kwargs: responses.pop(0)
    session.responses = responses
    client = CardCheckoutClient(dict(TEST_GATEWAYS["card_checkout"]), session=session)
    PaymentService.set_gateways(GatewayRegistry({"card_checkout": client}))
    yield session
    PaymentService.set_gateways(None)


class TestProSubscriptionJourney:
    @pytest.fixture(autouse=True)
    def frozen_clock(self):
        """Freeze before the client fixtures mint their JWTs."""
        with freeze_time("2026-03-01 10:00:00") as frozen:
            yield frozen

    def test_pay_for_pro_month(self, authenticated_client, client, user, gateway_session):
        """
        Given a free user
        When they buy pro for one month and the gateway confirms payment
        Then they are on pro until now + 30 days, and a duplicate
        confirmation changes nothing
        """
        gateway_session.responses.append(
            gateway_response(data={"uuid": "inv-uuid-1", "checkout_url": "https://pay.test/inv-uuid-1"})
        )

        # 1. Start the payment
        response = authenticated_client.post(
            reverse("payments:transaction_create"),
            {"kind": "payment", "plan": "pro", "duration_months": 1},
            format="json",
        )
        assert response.status_code == 201
        assert response.json()["checkout_url"] == "https://pay.test/inv-uuid-1"

        txn = Transaction.objects.get()
        assert txn.amount_minor_units == 45_500_000
        method, url = gateway_session.request.call_args_list[1].args[:2]
        assert (method, url) == ("POST", "https://card-checkout.test/payment/invoice")
        sent = gateway_session.request.call_args_list[1].kwargs["json"]
        assert sent["amount"] == 45_500_000
        assert sent["invoice_id"] == txn.internal_invoice_id

        # 2. Gateway confirms payment
        payload = signed_callback(txn, "success", card_pan="860006******6311", ps="uzcard")
        webhook_url = reverse("payments:payment_webhook", kwargs={"gateway": "card_checkout"})
        response = client.post(webhook_url, payload, content_type="application/json")
        assert response.status_code == 200
        assert response.json()["outcome"] == WebhookOutcome.APPLIED

        txn.refresh_from_db()
        assert txn.status == TransactionStatus.PAID
        assert txn.paid_at == timezone.now()
        assert txn.payment_details["card_pan"] == "860006******6311"

        # 3. Entitlement
        response = authenticated_client.get(reverse("payments:subscription"))
        assert response.json()["plan"] == SubscriptionPlan.PRO
        user.refresh_from_db()
        assert user.subscription_expiry_date == timezone.now() + timedelta(days=30)

        # 4. Duplicate delivery
        response = client.post(webhook_url, payload, content_type="application/json")
        assert response.json()["outcome"] == WebhookOutcome.ALREADY_PROCESSED
        user.refresh_from_db()
        assert user.subscription_expiry_date == timezone.now() + timedelta(days=30)
        assert WebhookEvent.objects.count() == 2

    def test_refund_after_payment(self, authenticated_client, staff_client, client, user, gateway_session):
        """
        Given a user who paid for pro
        When staff refund the payment
        Then the gateway refund endpoint is called and the user is back on free
        """
        gateway_session.responses.extend(
            [
                gateway_response(data={"uuid": "inv-uuid-2", "checkout_url": "https://pay.test/inv-uuid-2"}),
                gateway_response(data={}),
            ]
        )
        authenticated_client.post(
            reverse("payments:transaction_create"), {"plan": "pro"}, format="json"
        )
        txn = Transaction.objects.get()
        client.post(
            reverse("payments:payment_webhook", kwargs={"gateway": "card_checkout"}),
            signed_callback(txn, "success"),
            content_type="application/json",
        )

        response = staff_client.post(reverse("payments:transaction_refund", args=[txn.internal_invoice_id]))

        assert response.status_code == 200
        assert response.json()["status"] == TransactionStatus.REFUNDED
        method, url = gateway_session.request.call_args_list[-1].args[:2]
        assert (method, url) == ("DELETE", "https://card-checkout.test/payment/inv-uuid-2")
        user.refresh_from_db()
        assert user.subscription_plan == SubscriptionPlan.FREE
