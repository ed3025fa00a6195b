"""
Payment service: outbound flows started by the user or by staff.

All gateway calls happen OUTSIDE database transactions. Rows are created
first (status=pending), the gateway is called, and the answer is written
back. Status changes that come out of a gateway answer are routed through
TransactionProcessor.process_event() so they pass the same idempotency
gate as callbacks.

Flows:
    - initiate_payment: price lookup, pending Transaction, create_invoice
    - scan_pay: charge a customer QR code against an invoice
    - confirm_otp: submit the card holder's one-time passcode
    - cancel_payment: cancel a pending invoice
    - refund_payment: refund a paid transaction and revoke the plan
    - start_card_binding / sync_card_binding: bind-card form and its result
    - refresh_status: pull the provider status of one transaction

Usage:
    from payments.services import PaymentService

    result = PaymentService.initiate_payment(user, plan="pro", duration_months=1)
    if result.success:
        redirect_to(result.data.checkout_url)
    else:
        result.error_code  # e.g. "INVALID_PLAN" or a provider code
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from payments.exceptions import GatewayError, InvalidStateTransitionError, PaymentError
from payments.gateways import (
    BindCardSpec,
    GatewayRegistry,
    InvoiceSpec,
    LineItem,
    get_default_registry,
)
from payments.models import CardBindingSession, Transaction
from payments.plans import quote
from payments.services.transaction_processor import GatewayEvent, TransactionProcessor
from payments.state_machines import (
    CardBindingStatus,
    GatewayName,
    TransactionKind,
    TransactionStatus,
    WebhookOutcome,
)

if TYPE_CHECKING:
    from authentication.models import User
    from payments.gateways import GatewayClient


logger = logging.getLogger(__name__)


class PaymentService(BaseService):
    """
    Entry point for payment flows initiated from the API.

    The gateway registry can be injected for testing with set_gateways().
    """

    _gateways: GatewayRegistry | None = None

    @classmethod
    def get_gateways(cls) -> GatewayRegistry:
        return cls._gateways or get_default_registry()

    @classmethod
    def set_gateways(cls, gateways: GatewayRegistry | None) -> None:
        """Set the gateway registry (for testing); None restores the default."""
        cls._gateways = gateways

    @classmethod
    def get_client(cls, gateway: str) -> GatewayClient:
        return cls.get_gateways().get(gateway)

    # =========================================================================
    # URLs handed to the gateways
    # =========================================================================

    @staticmethod
    def callback_url(gateway: str, card_binding: bool = False) -> str:
        suffix = "card-binding/" if card_binding else ""
        return f"{settings.API_BASE_URL}/api/v1/payments/webhooks/{gateway}/{suffix}"

    @staticmethod
    def return_url(gateway: str, invoice_id: str) -> str:
        return f"{settings.API_BASE_URL}/api/v1/payments/return/{gateway}/?invoice_id={invoice_id}"

    # =========================================================================
    # Invoices
    # =========================================================================

    @classmethod
    def initiate_payment(
        cls,
        user: User,
        plan: str,
        duration_months: int = 1,
        gateway: str = GatewayName.CARD_CHECKOUT,
        lang: str = "ru",
        kind: str = TransactionKind.PAYMENT,
    ) -> ServiceResult[Transaction]:
        """
        Create a pending Transaction and an invoice for it on ``gateway``.

        A gateway failure marks the row failed and returns the provider's
        code in the result.
        """
        try:
            price = quote(plan, duration_months)
            client = cls.get_client(gateway)
        except PaymentError as exc:
            return ServiceResult.from_exception(exc)

        txn = Transaction.objects.create(
            internal_invoice_id=Transaction.new_invoice_id(kind, plan),
            user=user,
            plan=plan,
            amount_minor_units=price.amount_minor_units,
            duration_days=price.duration_days,
            duration_tier_months=price.tier_months,
            gateway=gateway,
            transaction_kind=kind,
            lang=lang,
        )
        log_context = {
            "transaction_id": str(txn.id),
            "invoice_id": txn.internal_invoice_id,
            "gateway": gateway,
            "plan": plan,
            "amount": price.amount_minor_units,
        }

        spec = InvoiceSpec(
            invoice_id=txn.internal_invoice_id,
            amount=price.amount_minor_units,
            callback_url=cls.callback_url(gateway),
            return_url=cls.return_url(gateway, txn.internal_invoice_id),
            lang=lang,
            items=[
                LineItem(
                    name=f"{plan.title()} subscription, {price.tier_months} mo",
                    qty=1,
                    unit_price=price.amount_minor_units,
                    total=price.amount_minor_units,
                    tax_code=settings.PAYMENT_GATEWAYS.get(gateway, {}).get("TAX_CODE", ""),
                )
            ],
        )

        try:
            invoice = client.create_invoice(spec)
        except GatewayError as exc:
            logger.warning(
                "Invoice creation failed",
                extra={**log_context, "error_code": exc.code},
            )
            txn.mark_failed(error_code=exc.code, error_message=exc.message)
            txn.save()
            return ServiceResult.from_exception(exc)

        txn.external_id = invoice.external_id
        txn.checkout_url = invoice.checkout_url or ""
        if invoice.short_link or invoice.deeplink:
            txn.payment_details = {
                **(txn.payment_details or {}),
                "short_link": invoice.short_link,
                "deeplink": invoice.deeplink,
            }
        txn.save(update_fields=["external_id", "checkout_url", "payment_details", "updated_at"])

        logger.info("Invoice created", extra={**log_context, "external_id": invoice.external_id})
        return ServiceResult.success(txn)

    @classmethod
    def scan_pay(cls, txn: Transaction, qr_code: str) -> ServiceResult[Transaction]:
        """Charge a customer-presented QR code against ``txn``'s invoice."""
        validation = cls.validate_required(qr_code=qr_code)
        if validation is not None:
            return validation
        precondition = cls._require_pending_invoice(txn)
        if precondition is not None:
            return precondition

        try:
            status = cls.get_client(txn.gateway).scan_pay(txn.external_id, qr_code)
        except GatewayError as exc:
            logger.warning(
                "Scan-pay rejected",
                extra={"invoice_id": txn.internal_invoice_id, "error_code": exc.code},
            )
            return ServiceResult.from_exception(exc)

        return cls._apply_status(txn, status, source="scan_pay")

    @classmethod
    def confirm_otp(cls, txn: Transaction, otp: str) -> ServiceResult[Transaction]:
        """Submit the card holder's OTP and apply the resulting status."""
        precondition = cls._require_pending_invoice(txn)
        if precondition is not None:
            return precondition

        try:
            status = cls.get_client(txn.gateway).confirm_otp(txn.external_id, otp)
        except GatewayError as exc:
            logger.warning(
                "OTP confirmation rejected",
                extra={"invoice_id": txn.internal_invoice_id, "error_code": exc.code},
            )
            return ServiceResult.from_exception(exc)

        return cls._apply_status(txn, status, source="otp")

    @classmethod
    def refresh_status(cls, txn: Transaction, source: str = "status_poll") -> ServiceResult[Transaction]:
        """Pull the provider status of ``txn`` and apply it."""
        if not txn.external_id:
            return ServiceResult.from_exception(
                InvalidStateTransitionError("Transaction has no gateway invoice yet")
            )
        try:
            status = cls.get_client(txn.gateway).get_status(txn.external_id)
        except GatewayError as exc:
            return ServiceResult.from_exception(exc)
        return cls._apply_status(txn, status, source=source)

    @classmethod
    def cancel_payment(cls, txn: Transaction) -> ServiceResult[Transaction]:
        """Cancel a pending invoice on the gateway, then locally."""
        if txn.status != TransactionStatus.PENDING:
            return cls._invalid_state(txn, TransactionStatus.CANCELED)

        if txn.external_id:
            try:
                cls.get_client(txn.gateway).cancel(txn.external_id)
            except GatewayError as exc:
                return ServiceResult.from_exception(exc)

        return cls._apply_local(txn, "canceled", TransactionStatus.CANCELED)

    @classmethod
    def refund_payment(cls, txn: Transaction) -> ServiceResult[Transaction]:
        """Refund a paid transaction; the subscription is revoked with it."""
        if txn.status != TransactionStatus.PAID:
            return cls._invalid_state(txn, TransactionStatus.REFUNDED)

        try:
            cls.get_client(txn.gateway).refund(txn.external_id)
        except GatewayError as exc:
            logger.error(
                "Refund rejected by gateway",
                extra={"invoice_id": txn.internal_invoice_id, "error_code": exc.code},
            )
            return ServiceResult.from_exception(exc)

        return cls._apply_local(txn, "refunded", TransactionStatus.REFUNDED)

    # =========================================================================
    # Card Binding
    # =========================================================================

    @classmethod
    def start_card_binding(
        cls,
        user: User,
        gateway: str = GatewayName.CARD_CHECKOUT,
        lang: str = "ru",
    ) -> ServiceResult[CardBindingSession]:
        """Open a bind-card form and record the session."""
        try:
            client = cls.get_client(gateway)
            result = client.bind_card(
                BindCardSpec(
                    callback_url=cls.callback_url(gateway, card_binding=True),
                    redirect_url=f"{settings.FRONTEND_URL}/card-binding/success",
                    redirect_decline_url=f"{settings.FRONTEND_URL}/card-binding/error",
                    lang=lang,
                )
            )
        except PaymentError as exc:
            return ServiceResult.from_exception(exc)

        with cls.atomic():
            txn = Transaction.objects.create(
                internal_invoice_id=Transaction.new_invoice_id(TransactionKind.CARD_BINDING),
                user=user,
                amount_minor_units=0,
                gateway=gateway,
                transaction_kind=TransactionKind.CARD_BINDING,
                checkout_url=result.form_url or "",
                lang=lang,
            )
            session = CardBindingSession.objects.create(
                session_id=result.session_id,
                user=user,
                gateway=gateway,
                form_url=result.form_url or "",
                expires_at=timezone.now() + timedelta(minutes=settings.CARD_BINDING_SESSION_TTL_MINUTES),
                transaction=txn,
            )

        logger.info(
            "Card binding started",
            extra={"gateway": gateway, "session_id": result.session_id, "user_id": user.pk},
        )
        return ServiceResult.success(session)

    @classmethod
    def sync_card_binding(
        cls,
        session: CardBindingSession,
        payload: dict | None = None,
    ) -> ServiceResult[CardBindingSession]:
        """
        Read a binding result back from the gateway and store it.

        Callback bodies are never trusted for the card data itself.
        """
        if session.is_terminal:
            return ServiceResult.success(session)

        try:
            result = cls.get_client(session.gateway).get_card_binding(session.session_id)
        except GatewayError as exc:
            if not session.is_expired():
                return ServiceResult.from_exception(exc)
            # An abandoned form is failed even when the gateway cannot be asked
            logger.warning(
                "Card binding status unavailable for expired session",
                extra={"session_id": session.session_id, "error_code": exc.code},
            )
            result = None

        status = result.status if result is not None else CardBindingStatus.PENDING
        if status == CardBindingStatus.PENDING and not session.is_expired():
            return ServiceResult.success(session)

        card_details = result.card_details if result is not None else {}
        with cls.atomic():
            locked = CardBindingSession.objects.select_for_update().get(pk=session.pk)
            if locked.is_terminal:
                return ServiceResult.success(locked)

            if payload is not None:
                locked.raw_callback_payload = payload
            if status == CardBindingStatus.ACTIVE:
                locked.activate(card_details=card_details)
            elif status == CardBindingStatus.FAILED:
                locked.fail(reason="declined")
            else:
                locked.fail(reason="expired")
            locked.save()

            if locked.transaction_id:
                TransactionProcessor.process_event(
                    GatewayEvent(
                        gateway=locked.gateway,
                        provider_status="success" if locked.status == CardBindingStatus.ACTIVE else "failed",
                        invoice_id=locked.transaction.internal_invoice_id,
                        payment_details={
                            key: value
                            for key, value in card_details.items()
                            if key != "card_token" and value
                        },
                        error_message=locked.error_message,
                        payload=result.raw_response if result is not None else None,
                        source="card_binding",
                    )
                )

        logger.info(
            "Card binding finished",
            extra={"session_id": locked.session_id, "status": locked.status},
        )
        return ServiceResult.success(locked)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _apply_status(cls, txn: Transaction, status, source: str) -> ServiceResult[Transaction]:
        try:
            TransactionProcessor.process_event(
                GatewayEvent.from_status_result(txn.gateway, txn, status, source=source)
            )
        except PaymentError as exc:
            return cls.handle_exception(exc, context=f"Applying {source} status", log_level=logging.WARNING)
        txn.refresh_from_db()
        return ServiceResult.success(txn)

    @classmethod
    def _apply_local(cls, txn: Transaction, provider_status: str, target: str) -> ServiceResult[Transaction]:
        """Run an operator-initiated transition through the processor."""
        result = TransactionProcessor.process_event(
            GatewayEvent(
                gateway=txn.gateway,
                provider_status=provider_status,
                invoice_id=txn.internal_invoice_id,
                source="api",
            )
        )
        txn.refresh_from_db()
        if result.outcome != WebhookOutcome.APPLIED:
            return cls._invalid_state(txn, target)
        return ServiceResult.success(txn)

    @staticmethod
    def _require_pending_invoice(txn: Transaction) -> ServiceResult | None:
        if txn.status != TransactionStatus.PENDING or not txn.external_id:
            return ServiceResult.from_exception(
                InvalidStateTransitionError(
                    f"Transaction {txn.internal_invoice_id} is not awaiting payment",
                    details={"current_state": txn.status},
                )
            )
        return None

    @staticmethod
    def _invalid_state(txn: Transaction, target: str) -> ServiceResult:
        return ServiceResult.from_exception(
            InvalidStateTransitionError(
                f"Cannot move transaction from '{txn.status}' to '{target}'",
                details={"current_state": txn.status, "target_state": target},
            )
        )
