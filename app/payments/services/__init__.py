"""
Payment services.

This module provides:
- TransactionProcessor: Applies gateway status events (idempotent state machine)
- SubscriptionService: Grants, extends and revokes paid plans
- PaymentService: Outbound flows (invoices, OTP, scan-pay, cancel, refund, card binding)
- ReconciliationService: Polls gateways for transactions whose callback never came

Usage:
    from payments.services import PaymentService, TransactionProcessor

    # Start a checkout
    result = PaymentService.initiate_payment(user, plan="pro", duration_months=1)

    # Apply a gateway callback
    outcome = TransactionProcessor.handle_callback("card_checkout", payload)

    # Run reconciliation
    from payments.services import ReconciliationService

    ReconciliationService.reconcile_pending()
"""

from payments.services.payment_service import PaymentService
from payments.services.reconciliation_service import (
    ReconciliationRunResult,
    ReconciliationService,
)
from payments.services.subscription_service import SubscriptionService
from payments.services.transaction_processor import (
    GatewayEvent,
    ProcessingResult,
    TransactionProcessor,
)

__all__ = [
    "GatewayEvent",
    "PaymentService",
    "ProcessingResult",
    "ReconciliationRunResult",
    "ReconciliationService",
    "SubscriptionService",
    "TransactionProcessor",
]
