"""
Card-checkout gateway client.

Wire conventions:
    - snake_case field names (store_id, invoice_id, checkout_url)
    - Auth: POST /auth {application_id, secret} -> {token, expiry}
      where expiry is local wall-clock "YYYY-MM-DD HH:MM:SS" (GMT+5)
    - Callbacks are signed md5(store_id + invoice_id + amount + secret)
    - No scan-pay support

Configuration (PAYMENT_GATEWAYS["card_checkout"]):
    BASE_URL, APPLICATION_ID, SECRET, STORE_ID, TOKEN_EXPIRY_TZ_OFFSET_HOURS
"""

from __future__ import annotations

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
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

EXPIRY_FORMAT = "%Y-%m-%d %H:%M:%S"
FALLBACK_TOKEN_LIFETIME = timedelta(hours=23)

# Receipt fields copied onto Transaction.payment_details
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


class CardCheckoutClient(GatewayClient):
    """Client for the card-checkout gateway."""

    name = "card_checkout"

    # =========================================================================
    # Authentication
    # =========================================================================

    def fetch_token(self) -> AccessToken:
        data = self._post_credentials(
            "/auth",
            {
                "application_id": self.config.get("APPLICATION_ID", ""),
                "secret": self.config.get("SECRET", ""),
            },
        )
        return AccessToken(
            value=data.get("token") or "",
            expires_at=self._parse_expiry(data.get("expiry")),
        )

    def _parse_expiry(self, value: Any) -> datetime:
        """
        Expiry is sent without an offset, in the gateway's local time.
        Unparseable values fall back to now + 23h.
        """
        offset = dt_timezone(timedelta(hours=int(self.config.get("TOKEN_EXPIRY_TZ_OFFSET_HOURS", 5))))
        try:
            return datetime.strptime(str(value), EXPIRY_FORMAT).replace(tzinfo=offset)
        except (TypeError, ValueError):
            self.get_logger().warning(
                "Unparseable token expiry, assuming 23h lifetime",
                extra={"gateway": self.name, "expiry": value},
            )
            return self.clock() + FALLBACK_TOKEN_LIFETIME

    # =========================================================================
    # Invoices and Payments
    # =========================================================================

    def create_invoice(self, spec: InvoiceSpec) -> InvoiceResult:
        payload = {
            "store_id": self._store_id(),
            "amount": spec.amount,
            "invoice_id": spec.invoice_id,
            "callback_url": spec.callback_url,
            "return_url": spec.return_url,
            "return_error_url": spec.return_error_url or spec.return_url,
            "lang": spec.lang,
            "ofd": [
                {
                    "qty": item.qty,
                    "price": item.unit_price,
                    "unit_price": item.unit_price,
                    "total": item.total,
                    "mxik": item.tax_code,
                    "tax_code": item.tax_code,
                    "name": item.name,
                }
                for item in spec.items
            ],
        }
        data = self._request("POST", "/payment/invoice", "create_invoice", json=payload)
        return InvoiceResult(
            external_id=data["uuid"],
            checkout_url=data.get("checkout_url", ""),
            short_link=data.get("short_link"),
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

    # =========================================================================
    # Card Binding
    # =========================================================================

    def bind_card(self, spec: BindCardSpec) -> CardBindingResult:
        payload = {
            "store_id": self._store_id(),
            "redirect_url": spec.redirect_url,
            "redirect_decline_url": spec.redirect_decline_url or spec.redirect_url,
            "callback_url": spec.callback_url,
            "lang": spec.lang,
        }
        data = self._request("POST", "/payment/card/bind", "bind_card", json=payload)
        return CardBindingResult(
            session_id=data["session_id"],
            form_url=data.get("form_url", ""),
            raw_response=data,
        )

    def get_card_binding(self, session_id: str) -> CardBindingStatusResult:
        data = self._request("GET", f"/payment/card/bind/{session_id}", "get_card_binding")
        return CardBindingStatusResult(
            session_id=data.get("session_id", session_id),
            status=normalize_card_binding_status(data.get("status")),
            card_details={
                "card_pan": data.get("card_pan"),
                "card_token": data.get("card_token"),
                "ps": data.get("ps"),
            },
            raw_response=data,
        )

    # =========================================================================
    # Serialization Helpers
    # =========================================================================

    def _store_id(self) -> int | str:
        store_id = self.config.get("STORE_ID", "")
        return int(store_id) if str(store_id).isdigit() else store_id

    def _status_result(self, external_id: str, data: dict[str, Any]) -> StatusResult:
        payment = data.get("payment", data)
        return StatusResult(
            external_id=payment.get("uuid", external_id),
            provider_status=str(payment.get("status", "")),
            invoice_id=payment.get("invoice_id"),
            amount=payment.get("amount"),
            payment_details={
                key: payment[key] for key in PAYMENT_DETAIL_FIELDS if payment.get(key) is not None
            },
            error_code=str(payment.get("response_code") or ""),
            error_message=str(payment.get("error_message") or ""),
            raw_response=data,
        )
