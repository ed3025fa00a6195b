"""
Pytest fixtures shared by every payments test package.

Registered from app/conftest.py through ``pytest_plugins`` so the nested
gateways/, services/ and webhooks/ test directories can use them too.

Usage:
    def test_paid_callback(pending_transaction, fake_gateways):
        fake_gateways["card_checkout"].get_status.return_value = ...
"""

from unittest.mock import MagicMock

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from payments.gateways import CardCheckoutClient, GatewayRegistry, InvoiceQrClient
from payments.services import PaymentService
from payments.tests.factories import (
    CardBindingSessionFactory,
    TransactionFactory,
    UserFactory,
)
from payments.tests.helpers import TEST_GATEWAYS


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def gateway_settings(settings):
    """Deterministic gateway credentials and URLs for every test."""
    settings.PAYMENT_GATEWAYS = {name: dict(config) for name, config in TEST_GATEWAYS.items()}
    settings.IS_PRODUCTION = False
    settings.API_BASE_URL = "https://api.test"
    settings.FRONTEND_URL = "https://app.test"
    return settings


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def user(db):
    """Free-plan user."""
    return UserFactory()


@pytest.fixture
def staff_user(db):
    return UserFactory(is_staff=True)


# =============================================================================
# Transactions
# =============================================================================


@pytest.fixture
def pending_transaction(db, user):
    """Pending pro / 1 month card_checkout invoice for ``user``."""
    return TransactionFactory(user=user)


@pytest.fixture
def qr_transaction(db, user):
    """Pending invoice_qr invoice for ``user``."""
    return TransactionFactory(user=user, gateway="invoice_qr")


@pytest.fixture
def paid_transaction(db, user):
    return TransactionFactory(user=user, paid=True)


@pytest.fixture
def card_binding_session(db, user):
    return CardBindingSessionFactory(user=user)


# =============================================================================
# Gateways
# =============================================================================


@pytest.fixture
def fake_gateways():
    """
    Mock clients for both gateways, installed on PaymentService.

    Returns a dict of name -> MagicMock(spec=client class).
    """
    clients = {
        "card_checkout": MagicMock(spec=CardCheckoutClient),
        "invoice_qr": MagicMock(spec=InvoiceQrClient),
    }
    for name, client in clients.items():
        client.name = name
    PaymentService.set_gateways(GatewayRegistry(clients))
    yield clients
    PaymentService.set_gateways(None)


# =============================================================================
# API Clients
# =============================================================================


def _jwt_client(user) -> APIClient:
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def api_client() -> APIClient:
    """Return unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user) -> APIClient:
    """Return API client authenticated with a JWT for ``user``."""
    return _jwt_client(user)


@pytest.fixture
def staff_client(staff_user) -> APIClient:
    return _jwt_client(staff_user)
