"""
DRF views for the payments app.

This module provides API views for:
- Starting payments, scan-pay charges and card bindings
- Transaction status, OTP confirmation, cancellation and refunds
- Card binding status
- The current user's subscription
- The browser return redirect from hosted checkout pages

Related files:
    - services/payment_service.py: PaymentService
    - serializers.py: Request/response serializers
    - webhooks/views.py: Gateway callbacks
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/transactions/ - Start payment / scan-pay / card binding
    GET  /api/v1/payments/transactions/<invoice_id>/ - Transaction status
    POST /api/v1/payments/transactions/<invoice_id>/confirm/ - Confirm OTP
    POST /api/v1/payments/transactions/<invoice_id>/cancel/ - Cancel pending invoice
    POST /api/v1/payments/transactions/<invoice_id>/refund/ - Refund (staff only)
    GET  /api/v1/payments/card-bindings/<session_id>/ - Card binding status
    GET  /api/v1/payments/subscription/ - Current entitlement
    GET  /api/v1/payments/return/<gateway>/ - Return redirect (no auth)

Security:
    - All API endpoints require authentication
    - Users only see their own transactions and sessions
    - Refunds require is_staff
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpRequest, HttpResponseRedirect
from django.views.decorators.http import require_GET
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import get_object_or_404
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult
from payments.models import CardBindingSession, Transaction
from payments.serializers import (
    CardBindingSessionSerializer,
    ConfirmOtpSerializer,
    SubscriptionSerializer,
    TransactionRequestSerializer,
    TransactionSerializer,
)
from payments.services import PaymentService
from payments.state_machines import TransactionKind, TransactionStatus

logger = logging.getLogger(__name__)


# Our own error codes -> HTTP status. Provider codes fall through to 502.
ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "PAYMENT_VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "INVALID_PLAN": status.HTTP_400_BAD_REQUEST,
    "INVALID_DURATION": status.HTTP_400_BAD_REQUEST,
    "UNKNOWN_GATEWAY": status.HTTP_400_BAD_REQUEST,
    "UNSUPPORTED_OPERATION": status.HTTP_400_BAD_REQUEST,
    "UNKNOWN_PROVIDER_STATUS": status.HTTP_502_BAD_GATEWAY,
    "TRANSACTION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE_TRANSITION": status.HTTP_409_CONFLICT,
    "GATEWAY_TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "GATEWAY_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def failure_response(result: ServiceResult) -> Response:
    """Structured error for an outbound flow that did not succeed."""
    http_status = ERROR_STATUS.get(result.error_code or "", status.HTTP_502_BAD_GATEWAY)
    return Response(result.to_response(), status=http_status)


# =============================================================================
# Transactions
# =============================================================================


class TransactionCreateView(APIView):
    """
    Start a payment, a scan-pay charge or a card binding.

    POST /api/v1/payments/transactions/

    The body is tagged by ``kind``:
        {"kind": "payment", "plan": "pro", "duration_months": 1, "gateway": "card_checkout"}
        {"kind": "scan_pay", "plan": "pro", "duration_months": 1, "qr_code": "..."}
        {"kind": "card_binding", "gateway": "card_checkout"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Start a payment",
        tags=["Payments"],
        request=TransactionRequestSerializer,
        responses={201: TransactionSerializer},
    )
    def post(self, request):
        serializer = TransactionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        kind = data["kind"]

        if kind == TransactionKind.CARD_BINDING:
            result = PaymentService.start_card_binding(
                request.user, gateway=data["gateway"], lang=data["lang"]
            )
            if not result.success:
                return failure_response(result)
            return Response(
                CardBindingSessionSerializer(result.data).data,
                status=status.HTTP_201_CREATED,
            )

        result = PaymentService.initiate_payment(
            request.user,
            plan=data["plan"],
            duration_months=data["duration_months"],
            gateway=data["gateway"],
            lang=data["lang"],
            kind=kind,
        )
        if result.success and kind == TransactionKind.SCAN_PAY:
            result = PaymentService.scan_pay(result.data, data["qr_code"])
        if not result.success:
            return failure_response(result)

        return Response(TransactionSerializer(result.data).data, status=status.HTTP_201_CREATED)


class TransactionDetailView(APIView):
    """
    Status of one of the caller's transactions.

    GET /api/v1/payments/transactions/<invoice_id>/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get transaction status", tags=["Payments"], responses={200: TransactionSerializer})
    def get(self, request, invoice_id):
        txn = get_object_or_404(Transaction, internal_invoice_id=invoice_id, user=request.user)
        return Response(TransactionSerializer(txn).data)


class ConfirmOtpView(APIView):
    """
    Submit the one-time passcode for a pending payment.

    POST /api/v1/payments/transactions/<invoice_id>/confirm/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Confirm payment OTP",
        tags=["Payments"],
        request=ConfirmOtpSerializer,
        responses={200: TransactionSerializer},
    )
    def post(self, request, invoice_id):
        txn = get_object_or_404(Transaction, internal_invoice_id=invoice_id, user=request.user)
        serializer = ConfirmOtpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PaymentService.confirm_otp(txn, serializer.validated_data["otp"])
        if not result.success:
            return failure_response(result)
        return Response(TransactionSerializer(result.data).data)


class CancelTransactionView(APIView):
    """
    Cancel one of the caller's pending invoices.

    POST /api/v1/payments/transactions/<invoice_id>/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Cancel a pending payment", tags=["Payments"], responses={200: TransactionSerializer})
    def post(self, request, invoice_id):
        txn = get_object_or_404(Transaction, internal_invoice_id=invoice_id, user=request.user)
        result = PaymentService.cancel_payment(txn)
        if not result.success:
            return failure_response(result)
        return Response(TransactionSerializer(result.data).data)


class RefundTransactionView(APIView):
    """
    Refund a paid transaction and revoke the plan it granted.

    POST /api/v1/payments/transactions/<invoice_id>/refund/

    Staff only.
    """

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(summary="Refund a payment", tags=["Payments - Admin"], responses={200: TransactionSerializer})
    def post(self, request, invoice_id):
        txn = get_object_or_404(Transaction, internal_invoice_id=invoice_id)
        result = PaymentService.refund_payment(txn)
        if not result.success:
            return failure_response(result)

        logger.info(
            "Refund issued by staff",
            extra={"invoice_id": invoice_id, "staff_user_id": request.user.pk},
        )
        return Response(TransactionSerializer(result.data).data)


# =============================================================================
# Card Binding & Subscription
# =============================================================================


class CardBindingStatusView(APIView):
    """
    Status of one of the caller's card binding sessions.

    GET /api/v1/payments/card-bindings/<session_id>/

    A pending session is read back from the gateway first.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get card binding status", tags=["Payments"], responses={200: CardBindingSessionSerializer})
    def get(self, request, session_id):
        session = get_object_or_404(CardBindingSession, session_id=session_id, user=request.user)
        if not session.is_terminal:
            result = PaymentService.sync_card_binding(session)
            if result.success:
                session = result.data
        return Response(CardBindingSessionSerializer(session).data)


class SubscriptionView(APIView):
    """
    Current user's subscription.

    GET /api/v1/payments/subscription/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get current subscription", tags=["Payments"], responses={200: SubscriptionSerializer})
    def get(self, request):
        return Response(SubscriptionSerializer(request.user).data)


# =============================================================================
# Browser Return
# =============================================================================


@require_GET
def payment_return(request: HttpRequest, gateway: str) -> HttpResponseRedirect:
    """
    Landing URL after the hosted checkout page.

    GET /api/v1/payments/return/<gateway>/?invoice_id=...

    The redirect itself proves nothing, so a pending transaction is
    re-checked with the gateway before the user is sent to the frontend.
    """
    invoice_id = request.GET.get("invoice_id", "")
    txn = Transaction.objects.filter(gateway=gateway, internal_invoice_id=invoice_id).first()
    if txn is None:
        logger.warning("Return redirect for unknown invoice", extra={"gateway": gateway, "invoice_id": invoice_id})
        return HttpResponseRedirect(f"{settings.FRONTEND_URL}/payment-error")

    if txn.status == TransactionStatus.PENDING and txn.external_id:
        result = PaymentService.refresh_status(txn, source="return_redirect")
        if result.success:
            txn = result.data

    query = urlencode({"invoice_id": txn.internal_invoice_id, "status": txn.status})
    if txn.status == TransactionStatus.PAID:
        return HttpResponseRedirect(f"{settings.FRONTEND_URL}/payment-success?{query}")
    if txn.status == TransactionStatus.PENDING:
        return HttpResponseRedirect(f"{settings.FRONTEND_URL}/payment-pending?{query}")
    return HttpResponseRedirect(f"{settings.FRONTEND_URL}/payment-error?{query}")
