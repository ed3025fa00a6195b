"""
Payments app configuration.

This app provides the subscription payment core:
- Outbound clients for the card-checkout and invoice/QR gateways
- Callback verification and idempotent transaction processing
- Subscription grants, extensions and revocations
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
