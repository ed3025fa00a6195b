"""
Inbound gateway callbacks.

Payment callbacks are verified and applied synchronously by
TransactionProcessor; card binding callbacks trigger a status read-back.

Usage:
    # In urls.py
    from payments.webhooks.views import card_binding_webhook, payment_webhook

    urlpatterns = [
        path("webhooks/<str:gateway>/", payment_webhook, name="payment_webhook"),
    ]
"""

from payments.webhooks.views import card_binding_webhook, payment_webhook

__all__ = [
    "card_binding_webhook",
    "payment_webhook",
]
