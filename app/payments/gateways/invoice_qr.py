"""
Invoice / QR gateway client.

Wire conventions:
    - camelCase field names (storeId, invoiceId, checkoutUrl)
    - Auth: POST /oauth/token {clientId, clientSecret} -> {accessToken, expiresIn}
      where expiresIn is the token lifetime in seconds
    - Callbacks are signed sha1(uuid + invoiceId + amount + secret)
    - Supports scan-pay: charging a QR code presented by the customer

Configuration (PAYMENT_GATEWAYS["invoice_qr"]):
    BASE_URL, CLIENT_ID, SECRET, STORE_ID
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from payments.gateways.base import (
    BindCardSpec,
    CardBindingResult,
    CardBindingStatusResult,
    GatewayClient,
    InvoiceResult,
    InvoiceSpec,
    StatusResult,
    normalize_card_binding_status,
)
from payments.gateways.token_cache import AccessToken

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# camelCase provider field -> snake_case key stored on Transaction.payment_details
PAYMENT_DETAIL_FIELDS = {
    "cardPan": "card_pan",
    "cardToken": "card_token",
    "ps": "ps",
    "paymentTime": "payment_time",
    "receiptUrl": "receipt_url",
    "responseCode": "response_code",
    "billingId": "billing_id",
    "phone": "phone",
}


class InvoiceQrClient(GatewayClient):
    """Client for the invoice / QR gateway."""

    name = "invoice_qr"

    # =========================================================================
    # Authentication
    # =========================================================================

    def fetch_token(self) -> AccessToken:
        data = self._post_credentials(
            "/oauth/token",
            {
                "clientId": self.config.get("CLIENT_ID", ""),
                "clientSecret": self.config.get("SECRET", ""),
            },
        )
        try:
            lifetime = int(data.get("expiresIn") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        except (TypeError, ValueError):
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS
        return AccessToken(
            value=data.get("accessToken") or "",
            expires_at=self.clock() + timedelta(seconds=lifetime),
        )

    # =========================================================================
    # Invoices and Payments
    # =========================================================================

    def create_invoice(self, spec: InvoiceSpec) -> InvoiceResult:
        payload = {
            "storeId": self.config.get("STORE_ID", ""),
            "amount": spec.amount,
            "invoiceId": spec.invoice_id,
            "callbackUrl": spec.callback_url,
            "returnUrl": spec.return_url,
            "returnErrorUrl": spec.return_error_url or spec.return_url,
            "lang": spec.lang,
            "items": [
                {
                    "qty": item.qty,
                    "unitPrice": item.unit_price,
                    "taxCode": item.tax_code,
                    "total": item.total,
                    "name": item.name,
                }
                for item in spec.items
            ],
        }
        data = self._request("POST", "/payment/invoice", "create_invoice", json=payload)
        return InvoiceResult(
            external_id=data["uuid"],
            checkout_url=data.get("checkoutUrl", ""),
            short_link=data.get("shortLink"),
            deeplink=data.get("deeplink"),
            raw_response=data,
        )

    def get_status(self, external_id: str) -> StatusResult:
        data = self._request("GET", f"/payment/{external_id}", "get_status")
        return self._status_result(external_id, data)

    def cancel(self, external_id: str) -> bool:
        self._request("DELETE", f"/payment/invoice/{external_id}", "cancel")
        return True

    def refund(self, external_id: str) -> bool:
        self._request("DELETE", f"/payment/{external_id}", "refund")
        return True

    def confirm_otp(self, external_id: str, otp: str) -> StatusResult:
        data = self._request("PUT", f"/payment/{external_id}", "confirm_otp", json={"otp": otp})
        return self._status_result(external_id, data)

    def scan_pay(self, external_id: str, qr_code: str) -> StatusResult:
        data = self._request(
            "PUT",
            f"/payment/{external_id}/scanpay",
            "scan_pay",
            json={"qrCode": qr_code},
        )
        return self._status_result(external_id, data)

    # =========================================================================
    # Card Binding
    # =========================================================================

    def bind_card(self, spec: BindCardSpec) -> CardBindingResult:
        payload = {
            "storeId": self.config.get("STORE_ID", ""),
            "redirectUrl": spec.redirect_url,
            "redirectDeclineUrl": spec.redirect_decline_url or spec.redirect_url,
            "callbackUrl": spec.callback_url,
            "lang": spec.lang,
        }
        data = self._request("POST", "/payment/card/bind", "bind_card", json=payload)
        return CardBindingResult(
            session_id=data["sessionId"],
            form_url=data.get("formUrl", ""),
            raw_response=data,
        )

    def get_card_binding(self, session_id: str) -> CardBindingStatusResult:
        data = self._request("GET", f"/payment/card/bind/{session_id}", "get_card_binding")
        return CardBindingStatusResult(
            session_id=data.get("sessionId", session_id),
            status=normalize_card_binding_status(data.get("status")),
            card_details={
                "card_pan": data.get("cardPan"),
                "card_token": data.get("cardToken"),
                "ps": data.get("ps"),
            },
            raw_response=data,
        )

    # =========================================================================
    # Serialization Helpers
    # =========================================================================

    def _status_result(self, external_id: str, data: dict[str, Any]) -> StatusResult:
        payment = data.get("payment", data)
        return StatusResult(
            external_id=payment.get("uuid", external_id),
            provider_status=str(payment.get("status", "")),
            invoice_id=payment.get("invoiceId"),
            amount=payment.get("amount"),
            payment_details={
                ours: payment[theirs]
                for theirs, ours in PAYMENT_DETAIL_FIELDS.items()
                if payment.get(theirs) is not None
            },
            error_code=str(payment.get("responseCode") or ""),
            error_message=str(payment.get("errorMessage") or ""),
            raw_response=data,
        )
