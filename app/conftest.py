"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
Payment fixtures live in payments/tests/fixtures.py and are registered
here so nested test packages (gateways/, services/, webhooks/) share them.
"""

import pytest

pytest_plugins = ["payments.tests.fixtures"]


def pytest_configure(config):
    """Register markers and speed up password hashing."""
    for marker, description in (
        ("unit", "fast tests without external collaborators"),
        ("integration", "tests touching the database or HTTP layer"),
        ("e2e", "full payment journeys"),
    ):
        config.addinivalue_line("markers", f"{marker}: {description}")


@pytest.fixture(autouse=True)
def _fast_password_hasher(settings):
    # PBKDF2 is too slow for factories creating many users
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


@pytest.fixture(autouse=True)
def _reset_gateway_registry():
    """Drop gateway clients (and their cached tokens) between tests."""
    from payments.gateways.registry import get_default_registry
    from payments.services import PaymentService

    get_default_registry.cache_clear()
    PaymentService.set_gateways(None)
    yield
    get_default_registry.cache_clear()
    PaymentService.set_gateways(None)


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full payment journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_serializers.py, test_signatures.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_processor.py",
        "test_payment_service.py",
        "test_subscription_service.py",
        "test_reconciliation_service.py",
        "test_gateway_clients.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_managers.py",
        "test_signatures.py",
        "test_state_transitions.py",
        "test_token_cache.py",
        "test_plans.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
