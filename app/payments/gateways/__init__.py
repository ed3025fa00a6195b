"""
Outbound clients for the external payment gateways.

Usage:
    from payments.gateways import get_gateway, InvoiceSpec, LineItem

    client = get_gateway("card_checkout")
    result = client.create_invoice(InvoiceSpec(...))
"""

from payments.gateways.base import (
    BindCardSpec,
    CardBindingResult,
    CardBindingStatusResult,
    GatewayClient,
    InvoiceResult,
    InvoiceSpec,
    LineItem,
    StatusResult,
)
from payments.gateways.card_checkout import CardCheckoutClient
from payments.gateways.invoice_qr import InvoiceQrClient
from payments.gateways.registry import (
    GatewayRegistry,
    get_default_registry,
    get_gateway,
)
from payments.gateways.token_cache import AccessToken, TokenCache

__all__ = [
    "AccessToken",
    "BindCardSpec",
    "CardBindingResult",
    "CardBindingStatusResult",
    "CardCheckoutClient",
    "GatewayClient",
    "GatewayRegistry",
    "InvoiceQrClient",
    "InvoiceResult",
    "InvoiceSpec",
    "LineItem",
    "StatusResult",
    "TokenCache",
    "get_default_registry",
    "get_gateway",
]
