"""
Payment domain models.

- Transaction: One payment / scan-pay / card-binding attempt and its status
- CardBindingSession: Saved-card enrolment form opened on a gateway
- WebhookEvent: Audit log of inbound callback deliveries
"""

from payments.models.card_binding import CardBindingSession
from payments.models.transaction import PaidPlan, Transaction
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "CardBindingSession",
    "PaidPlan",
    "Transaction",
    "WebhookEvent",
]
