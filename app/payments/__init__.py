"""
Payments app for the card-checkout and invoice/QR gateways.

This app handles:
- Invoice creation, OTP confirmation, scan-pay, cancellation and refunds
- Card binding sessions
- Gateway callback verification and idempotent processing
- Subscription entitlement grants and revocations
- Reconciliation of transactions whose callback never arrived

Related apps:
    - authentication: User model carrying the subscription entitlement

Usage:
    from payments.services import PaymentService, TransactionProcessor

    # Start a checkout
    result = PaymentService.initiate_payment(user, plan="pro", duration_months=1)

    # Apply a gateway callback
    TransactionProcessor.handle_callback("card_checkout", payload)
"""
