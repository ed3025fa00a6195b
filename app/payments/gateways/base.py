"""
Shared gateway client interface, request/response types and HTTP plumbing.

Every provider implementation subclasses GatewayClient and only supplies:
- how to obtain a bearer token (``fetch_token``)
- how to shape request bodies and read response fields (naming conventions)

Bearer token handling, the single 401/403 retry, timeouts and error
normalisation live here so both gateways behave identically.

Usage:
    from payments.gateways import get_gateway
    from payments.gateways.base import InvoiceSpec, LineItem

    client = get_gateway("card_checkout")
    result = client.create_invoice(
        InvoiceSpec(
            invoice_id="PAY-PRO-4f1c2a9b8e7d",
            amount=45_500_000,
            callback_url="https://api.example.com/api/v1/payments/webhooks/card_checkout/",
            return_url="https://app.example.com/payment-success",
            items=[LineItem(name="Pro, 1 month", qty=1, unit_price=45_500_000, total=45_500_000)],
        )
    )
    result.external_id, result.checkout_url
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings
from django.utils import timezone

from payments.exceptions import GatewayAuthError, GatewayError
from payments.gateways.token_cache import AccessToken, TokenCache

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class LineItem:
    """
    One fiscal line item sent with an invoice.

    Attributes:
        name: Item title shown on the receipt
        qty: Quantity
        unit_price: Price per unit in minor units
        total: qty * unit_price in minor units
        tax_code: Fiscal classification code of the item
    """

    name: str
    qty: int
    unit_price: int
    total: int
    tax_code: str = ""


@dataclass
class InvoiceSpec:
    """
    Parameters for creating an invoice on a gateway.

    Attributes:
        invoice_id: Our correlation id, echoed back in callbacks
        amount: Amount in minor units
        callback_url: Where the gateway posts status callbacks
        return_url: Where the browser lands after success
        return_error_url: Where the browser lands after failure
        lang: Hosted page language
        items: Fiscal line items
    """

    invoice_id: str
    amount: int
    callback_url: str
    return_url: str
    return_error_url: str = ""
    lang: str = "ru"
    items: list[LineItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.invoice_id:
            raise ValueError("invoice_id is required")


@dataclass
class InvoiceResult:
    """Gateway acknowledgement of a created invoice."""

    external_id: str
    checkout_url: str
    short_link: str | None = None
    deeplink: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusResult:
    """
    Provider view of one invoice/payment.

    ``provider_status`` is the gateway's own vocabulary; mapping to our
    states happens in the transaction processor.
    """

    external_id: str
    provider_status: str
    invoice_id: str | None = None
    amount: int | None = None
    payment_details: dict[str, Any] = field(default_factory=dict)
    error_code: str = ""
    error_message: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class BindCardSpec:
    """Redirect targets for a card binding form."""

    callback_url: str
    redirect_url: str
    redirect_decline_url: str = ""
    lang: str = "ru"


@dataclass
class CardBindingResult:
    """Opened card binding form."""

    session_id: str
    form_url: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class CardBindingStatusResult:
    """
    Provider view of a card binding session.

    Attributes:
        status: "active", "failed" or "pending" after normalisation
        card_details: Masked PAN, card token, issuing network
    """

    session_id: str
    status: str
    card_details: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Client Base Class
# =============================================================================


class GatewayClient(ABC):
    """
    Base class for one external payment gateway.

    Args:
        config: The gateway's PAYMENT_GATEWAYS entry
        session: requests.Session used for every call (injectable for tests)
        token_cache: TokenCache to use; built from settings when omitted
        timeout: Per-request timeout in seconds
        clock: Current-time callable (token expiry parsing and the default cache)
    """

    name: str = ""

    def __init__(
        self,
        config: dict[str, Any],
        session: requests.Session | None = None,
        token_cache: TokenCache | None = None,
        timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.base_url = config["BASE_URL"].rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.clock = clock or timezone.now
        if token_cache is None:
            token_cache = TokenCache(
                self.fetch_token,
                margin=timedelta(seconds=settings.PAYMENT_TOKEN_REFRESH_MARGIN_SECONDS),
                clock=self.clock,
                name=self.name,
            )
        self.token_cache = token_cache

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Provider Operations
    # =========================================================================

    @abstractmethod
    def fetch_token(self) -> AccessToken:
        """Call the auth endpoint with application credentials."""

    @abstractmethod
    def create_invoice(self, spec: InvoiceSpec) -> InvoiceResult: ...

    @abstractmethod
    def get_status(self, external_id: str) -> StatusResult: ...

    @abstractmethod
    def cancel(self, external_id: str) -> bool: ...

    @abstractmethod
    def refund(self, external_id: str) -> bool: ...

    @abstractmethod
    def bind_card(self, spec: BindCardSpec) -> CardBindingResult: ...

    @abstractmethod
    def get_card_binding(self, session_id: str) -> CardBindingStatusResult: ...

    @abstractmethod
    def confirm_otp(self, external_id: str, otp: str) -> StatusResult: ...

    def scan_pay(self, external_id: str, qr_code: str) -> StatusResult:
        """Charge a customer-presented QR code against an invoice."""
        raise GatewayError(
            f"{self.name} does not support scan-pay",
            code="UNSUPPORTED_OPERATION",
            http_status=400,
            gateway=self.name,
        )

    # =========================================================================
    # HTTP Plumbing
    # =========================================================================

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """
        Perform an authenticated call and return the envelope's ``data``.

        On 401/403 the cached token is dropped, a new one is fetched and the
        call is retried once. A second rejection raises GatewayAuthError.
        """
        logger = self.get_logger()
        log_context = {"gateway": self.name, "operation": operation, "method": method}

        start_time = time.time()
        token = self.token_cache.get_token()
        response = self._send(method, path, token, json, log_context)

        if response.status_code in (401, 403):
            logger.warning(
                "Gateway rejected access token, refreshing once",
                extra={**log_context, "status_code": response.status_code},
            )
            self.token_cache.invalidate(token)
            token = self.token_cache.get_token()
            response = self._send(method, path, token, json, log_context)
            if response.status_code in (401, 403):
                self.token_cache.invalidate(token)
                raise GatewayAuthError(
                    "Gateway rejected a freshly issued access token",
                    details={"operation": operation},
                    http_status=response.status_code,
                    raw_response=_safe_body(response),
                    gateway=self.name,
                )

        data = self._unwrap(response, operation)
        logger.info(
            "Gateway operation completed",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return data

    def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        json: dict[str, Any] | None,
        log_context: dict[str, Any],
    ) -> requests.Response:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return self.session.request(
                method,
                self._url(path),
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            self.get_logger().error("Gateway request timed out", extra=log_context)
            raise GatewayError(
                f"{self.name} did not answer within {self.timeout}s",
                code="GATEWAY_TIMEOUT",
                details={"operation": log_context.get("operation")},
                http_status=504,
                gateway=self.name,
            ) from exc
        except requests.RequestException as exc:
            self.get_logger().error(
                "Gateway request failed", extra=log_context, exc_info=True
            )
            raise GatewayError(
                f"Could not reach {self.name}",
                code="GATEWAY_UNAVAILABLE",
                details={"operation": log_context.get("operation")},
                http_status=503,
                gateway=self.name,
            ) from exc

    def _unwrap(self, response: requests.Response, operation: str) -> Any:
        """
        Read the ``{"success": ..., "data": ..., "error": ...}`` envelope.

        Raises:
            GatewayError: Non-2xx answer, unreadable body, or success=false
        """
        body = _safe_body(response)
        ok = response.ok and isinstance(body, dict) and body.get("success", True) is not False
        if ok:
            return body.get("data", body)

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            error = {"details": error} if error else {}
        code = str(error.get("code") or f"HTTP_{response.status_code}")
        provider_details = error.get("details")
        http_status = response.status_code if response.status_code >= 400 else 502

        self.get_logger().warning(
            "Gateway returned an error",
            extra={
                "gateway": self.name,
                "operation": operation,
                "status_code": response.status_code,
                "error_code": code,
            },
        )
        raise GatewayError(
            f"{self.name} {operation} failed: {provider_details or code}",
            code=code,
            details={"operation": operation, "provider_details": provider_details},
            http_status=http_status,
            raw_response=body,
            gateway=self.name,
        )

    def _post_credentials(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST to the unauthenticated auth endpoint and return its ``data``.

        Raises:
            GatewayAuthError: Transport failure, rejection or malformed answer
        """
        log_context = {"gateway": self.name, "operation": "auth", "method": "POST"}
        try:
            response = self._send("POST", path, None, payload, log_context)
            data = self._unwrap(response, "auth")
        except GatewayAuthError:
            raise
        except GatewayError as exc:
            raise GatewayAuthError(
                f"{self.name} authentication failed",
                details={"reason": exc.error_code},
                http_status=exc.http_status,
                raw_response=exc.raw_response,
                gateway=self.name,
            ) from exc
        if not isinstance(data, dict):
            raise GatewayAuthError(
                f"{self.name} authentication returned no token",
                raw_response=data,
                gateway=self.name,
            )
        return data


def _safe_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"text": (response.text or "")[:2000]}


_CARD_BINDING_ACTIVE = frozenset({"active", "success", "bound"})
_CARD_BINDING_FAILED = frozenset({"failed", "error", "declined", "expired", "revoked", "deleted"})


def normalize_card_binding_status(value: Any) -> str:
    """Collapse provider card-binding statuses onto active | failed | pending."""
    status = str(value or "").strip().lower()
    if status in _CARD_BINDING_ACTIVE:
        return "active"
    if status in _CARD_BINDING_FAILED:
        return "failed"
    return "pending"
