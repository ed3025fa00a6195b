"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    PROVIDER_STATUS_MAP,
    CardBindingStatus,
    GatewayName,
    TransactionKind,
    TransactionStatus,
    WebhookOutcome,
    map_provider_status,
)

__all__ = [
    "PROVIDER_STATUS_MAP",
    "CardBindingStatus",
    "GatewayName",
    "TransactionKind",
    "TransactionStatus",
    "WebhookOutcome",
    "map_provider_status",
]
