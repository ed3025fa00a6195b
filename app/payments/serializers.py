"""
DRF serializers for the payments app.

This module provides serializers for:
- Inbound gateway callbacks (boundary validation and field normalisation)
- Payment / scan-pay / card-binding requests (tagged by ``kind``)
- Transaction, card binding and subscription responses

Related files:
    - models/: Transaction, CardBindingSession
    - services/transaction_processor.py: consumes PaymentCallbackSerializer
    - views.py, webhooks/views.py: HTTP entry points

Callback normalisation:
    Gateways name the same field differently (invoice_id / invoiceId,
    uuid / invoice_uuid / externalId) and some nest the payment under a
    ``payment`` key. Everything is folded onto one snake_case shape before
    field validation, so the processor never sees provider naming.
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from authentication.models import User
from payments.models import CardBindingSession, PaidPlan, Transaction
from payments.state_machines import GatewayName, TransactionKind, map_provider_status

# Provider field name -> normalised name. First match wins when several
# aliases of the same field are present.
CALLBACK_FIELD_ALIASES: dict[str, str] = {
    "invoiceId": "invoice_id",
    "externalId": "external_id",
    "uuid": "external_id",
    "invoice_uuid": "external_id",
    "invoiceUuid": "external_id",
    "storeId": "store_id",
    "cardPan": "card_pan",
    "cardToken": "card_token",
    "paymentTime": "payment_time",
    "receiptUrl": "receipt_url",
    "responseCode": "response_code",
    "errorMessage": "error_message",
    "billingId": "billing_id",
    "sessionId": "session_id",
}

# Normalised fields copied onto Transaction.payment_details
PAYMENT_DETAIL_FIELDS = (
    "card_pan",
    "card_token",
    "ps",
    "payment_time",
    "receipt_url",
    "response_code",
    "billing_id",
    "phone",
)

SUBSCRIPTION_TIERS = (1, 3, 6)


def normalize_callback_payload(payload: Any) -> Any:
    """
    Flatten a nested ``payment`` object and rename provider aliases.

    Non-dict input is returned unchanged so the serializer reports it.
    """
    if not isinstance(payload, dict):
        return payload

    flat = dict(payload)
    nested = flat.pop("payment", None)
    if isinstance(nested, dict):
        for key, value in nested.items():
            flat.setdefault(key, value)

    normalized: dict[str, Any] = {}
    for key, value in flat.items():
        if key not in CALLBACK_FIELD_ALIASES:
            normalized[key] = value
    for key, value in flat.items():
        target = CALLBACK_FIELD_ALIASES.get(key)
        if target and normalized.get(target) in (None, ""):
            normalized[target] = value
    return normalized


# =============================================================================
# Inbound Callbacks
# =============================================================================


class PaymentCallbackSerializer(serializers.Serializer):
    """
    Validates a payment status callback from either gateway.

    Required: invoice_id, status, amount. ``status`` must be one of the
    known provider statuses; anything else is a validation error.

    Usage:
        serializer = PaymentCallbackSerializer(data=request_body)
        serializer.is_valid(raise_exception=True)
        serializer.validated_data["invoice_id"]
        serializer.payment_details()
    """

    invoice_id = serializers.CharField(max_length=64)
    external_id = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    status = serializers.CharField(max_length=32)
    amount = serializers.IntegerField(min_value=0)
    sign = serializers.CharField(required=False, allow_blank=True, default="")
    store_id = serializers.CharField(required=False, allow_blank=True, default="")

    card_pan = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    card_token = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    ps = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    payment_time = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    receipt_url = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    response_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    error_message = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    billing_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def to_internal_value(self, data):
        return super().to_internal_value(normalize_callback_payload(data))

    def validate_status(self, value: str) -> str:
        status = value.strip().lower()
        if map_provider_status(status) is None:
            raise serializers.ValidationError(f"Unknown provider status: {value}")
        return status

    def payment_details(self) -> dict[str, Any]:
        """Receipt metadata present in the validated callback."""
        return {
            key: self.validated_data[key]
            for key in PAYMENT_DETAIL_FIELDS
            if self.validated_data.get(key) not in (None, "")
        }


class CardBindingCallbackSerializer(serializers.Serializer):
    """
    Validates a card binding callback.

    Only the session id is trusted; the binding result itself is read
    back from the gateway.
    """

    session_id = serializers.CharField(max_length=128)
    status = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")

    def to_internal_value(self, data):
        return super().to_internal_value(normalize_callback_payload(data))


# =============================================================================
# Payment Requests (tagged by kind)
# =============================================================================


class PaymentRequestSerializer(serializers.Serializer):
    """Hosted checkout for a subscription plan."""

    plan = serializers.ChoiceField(choices=PaidPlan.choices)
    duration_months = serializers.ChoiceField(choices=SUBSCRIPTION_TIERS, default=1)
    gateway = serializers.ChoiceField(choices=GatewayName.choices, default=GatewayName.CARD_CHECKOUT)
    lang = serializers.ChoiceField(choices=("ru", "uz", "en"), default="ru")


class ScanPayRequestSerializer(PaymentRequestSerializer):
    """Charge a QR code presented by the customer."""

    gateway = serializers.ChoiceField(choices=GatewayName.choices, default=GatewayName.INVOICE_QR)
    qr_code = serializers.CharField(max_length=512)


class CardBindingRequestSerializer(serializers.Serializer):
    """Open a bind-card form."""

    gateway = serializers.ChoiceField(choices=GatewayName.choices, default=GatewayName.CARD_CHECKOUT)
    lang = serializers.ChoiceField(choices=("ru", "uz", "en"), default="ru")


class TransactionRequestSerializer(serializers.Serializer):
    """
    Entry point for POST /transactions/.

    ``kind`` selects the schema the rest of the body is validated against,
    so each variant has an explicit set of required and optional fields.

    Usage:
        serializer = TransactionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.validated_data  # {"kind": "payment", "plan": "pro", ...}
    """

    KIND_SERIALIZERS = {
        TransactionKind.PAYMENT: PaymentRequestSerializer,
        TransactionKind.SCAN_PAY: ScanPayRequestSerializer,
        TransactionKind.CARD_BINDING: CardBindingRequestSerializer,
    }

    kind = serializers.ChoiceField(choices=TransactionKind.choices, default=TransactionKind.PAYMENT)

    def to_internal_value(self, data):
        tagged = super().to_internal_value(data)
        variant = self.KIND_SERIALIZERS[tagged["kind"]](data=data)
        if not variant.is_valid():
            raise serializers.ValidationError(variant.errors)
        return {"kind": tagged["kind"], **variant.validated_data}


class ConfirmOtpSerializer(serializers.Serializer):
    otp = serializers.RegexField(r"^\d{4,8}$", help_text="One-time passcode sent to the card holder")


# =============================================================================
# Responses
# =============================================================================


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction as shown to its owner.

    Raw callback payloads and card tokens are never exposed.
    """

    invoice_id = serializers.CharField(source="internal_invoice_id", read_only=True)
    kind = serializers.CharField(source="transaction_kind", read_only=True)
    amount = serializers.IntegerField(source="amount_minor_units", read_only=True)
    payment_details = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "invoice_id",
            "external_id",
            "gateway",
            "kind",
            "plan",
            "amount",
            "duration_days",
            "duration_tier_months",
            "status",
            "checkout_url",
            "payment_details",
            "error_code",
            "error_message",
            "created_at",
            "paid_at",
            "refunded_at",
        ]
        read_only_fields = fields

    def get_payment_details(self, obj) -> dict:
        details = dict(obj.payment_details or {})
        details.pop("card_token", None)
        return details


class CardBindingSessionSerializer(serializers.ModelSerializer):
    card = serializers.SerializerMethodField()

    class Meta:
        model = CardBindingSession
        fields = [
            "session_id",
            "gateway",
            "status",
            "card",
            "form_url",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_card(self, obj) -> dict:
        """Masked PAN and network only."""
        details = obj.card_details or {}
        return {"card_pan": details.get("card_pan"), "ps": details.get("ps")}


class SubscriptionSerializer(serializers.ModelSerializer):
    """Current user's entitlement."""

    plan = serializers.CharField(source="subscription_plan", read_only=True)
    expiry_date = serializers.DateTimeField(source="subscription_expiry_date", read_only=True)
    source = serializers.CharField(source="subscription_source", read_only=True)
    duration_months = serializers.IntegerField(source="subscription_duration_months", read_only=True)
    activated_at = serializers.DateTimeField(source="subscription_activated_at", read_only=True)
    is_active = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "plan",
            "expiry_date",
            "source",
            "duration_months",
            "activated_at",
            "is_active",
        ]
        read_only_fields = fields

    def get_is_active(self, obj) -> bool:
        return obj.has_active_subscription()
