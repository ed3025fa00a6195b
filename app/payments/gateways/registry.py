"""
Gateway registry: maps gateway names to configured client instances.

Clients are built lazily from settings.PAYMENT_GATEWAYS and kept for the
life of the process, so each gateway's TokenCache is shared by every
request handled by the worker.

Usage:
    from payments.gateways import get_gateway

    client = get_gateway("invoice_qr")

    # Tests inject their own clients
    registry = GatewayRegistry({"card_checkout": fake_client})
    PaymentService(gateways=registry)
"""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import TYPE_CHECKING

from django.conf import settings

from payments.exceptions import PaymentValidationError
from payments.gateways.card_checkout import CardCheckoutClient
from payments.gateways.invoice_qr import InvoiceQrClient

if TYPE_CHECKING:
    from payments.gateways.base import GatewayClient


GATEWAY_CLASSES: dict[str, type[GatewayClient]] = {
    CardCheckoutClient.name: CardCheckoutClient,
    InvoiceQrClient.name: InvoiceQrClient,
}


class GatewayRegistry:
    """
    Holds one client per gateway name.

    Args:
        clients: Pre-built clients (mostly for tests); anything missing is
            built on first use from ``config``
        config: Gateway configuration, defaults to settings.PAYMENT_GATEWAYS
    """

    def __init__(
        self,
        clients: dict[str, GatewayClient] | None = None,
        config: dict[str, dict] | None = None,
    ):
        self._clients: dict[str, GatewayClient] = dict(clients or {})
        self._config = config if config is not None else settings.PAYMENT_GATEWAYS
        self._lock = threading.Lock()

    def names(self) -> list[str]:
        """Gateway names that can be resolved."""
        configured = [name for name in self._config if name in GATEWAY_CLASSES]
        return sorted(set(configured) | set(self._clients))

    def config_for(self, name: str) -> dict:
        """Settings entry of a gateway (empty when only a client was injected)."""
        return self._config.get(name, {})

    def get(self, name: str) -> GatewayClient:
        """
        Return the client for ``name``.

        Raises:
            PaymentValidationError: Unknown or unconfigured gateway
        """
        client = self._clients.get(name)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(name)
            if client is None:
                client = self._build(name)
                self._clients[name] = client
        return client

    def __contains__(self, name: object) -> bool:
        return name in self._clients or (name in self._config and name in GATEWAY_CLASSES)

    def _build(self, name: str) -> GatewayClient:
        client_class = GATEWAY_CLASSES.get(name)
        config = self._config.get(name)
        if client_class is None or config is None:
            raise PaymentValidationError(
                f"Unknown payment gateway: {name}",
                error_code="UNKNOWN_GATEWAY",
                details={"gateway": name},
            )
        return client_class(config)


@lru_cache(maxsize=1)
def get_default_registry() -> GatewayRegistry:
    """Process-wide registry built from settings."""
    return GatewayRegistry()


def get_gateway(name: str) -> GatewayClient:
    """Shortcut for ``get_default_registry().get(name)``."""
    return get_default_registry().get(name)
