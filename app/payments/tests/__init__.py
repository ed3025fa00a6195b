"""
Tests for payments app.

This package contains test modules for:
- test_models.py / test_state_transitions.py: Transaction and CardBindingSession
- test_signatures.py: Callback signature schemes and the development bypass
- test_serializers.py: Callback normalisation and tagged request bodies
- test_plans.py: Subscription catalog lookups
- test_views.py: API endpoint tests
- test_tasks.py: Celery task tests
- test_integration.py: Full payment journeys

Shared fixtures live in fixtures.py (registered from app/conftest.py);
signed callback builders live in helpers.py.

Usage:
    pytest payments/
    pytest payments/tests/test_views.py
"""
