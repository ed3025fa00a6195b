"""
State enums for payment models.

These are Django TextChoices for database storage and admin integration,
used by the django-fsm fields on Transaction and CardBindingSession.

State Machines Overview:

Transaction States:
    pending → paid → refunded
    pending → failed
    pending → canceled
    (paid, failed, refunded, canceled are terminal; only paid → refunded
    leaves a terminal state)

CardBindingSession States:
    pending → active
    pending → failed
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    States for the Transaction model lifecycle.

    Provider-side transient states (draft, in_progress, on_hold, ...) all
    map to PENDING and never create new rows.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELED = "canceled", "Canceled"

    @classmethod
    def terminal_values(cls) -> frozenset[str]:
        return frozenset({cls.PAID, cls.FAILED, cls.REFUNDED, cls.CANCELED})


class TransactionKind(models.TextChoices):
    """What a Transaction row pays for."""

    PAYMENT = "payment", "Payment"
    CARD_BINDING = "card_binding", "Card binding"
    SCAN_PAY = "scan_pay", "Scan pay"


class CardBindingStatus(models.TextChoices):
    """
    States for the CardBindingSession lifecycle.

    State Flow:
        PENDING → ACTIVE (card saved)
        PENDING → FAILED (declined, abandoned or expired)
    """

    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    FAILED = "failed", "Failed"


class GatewayName(models.TextChoices):
    """Configured external payment gateways."""

    CARD_CHECKOUT = "card_checkout", "Card checkout"
    INVOICE_QR = "invoice_qr", "Invoice / QR"


class WebhookOutcome(models.TextChoices):
    """
    What happened to one inbound callback delivery.

    Recorded on WebhookEvent for audit only; the Transaction row decides
    idempotency.
    """

    APPLIED = "applied", "Applied"
    ALREADY_PROCESSED = "already_processed", "Already processed"
    IGNORED_TRANSIENT = "ignored_transient", "Transient status recorded"
    NOT_FOUND = "not_found", "Transaction not found"
    AMOUNT_MISMATCH = "amount_mismatch", "Amount mismatch"
    REJECTED = "rejected", "Signature rejected"
    INVALID = "invalid", "Invalid payload"
    ERROR = "error", "Processing error"


# =============================================================================
# Provider Status Mapping
# =============================================================================

# Provider vocabulary (both gateways, lower-cased) -> internal status
PROVIDER_STATUS_MAP: dict[str, str] = {
    "success": TransactionStatus.PAID,
    "paid": TransactionStatus.PAID,
    "error": TransactionStatus.FAILED,
    "failed": TransactionStatus.FAILED,
    "declined": TransactionStatus.FAILED,
    "revert": TransactionStatus.REFUNDED,
    "refunded": TransactionStatus.REFUNDED,
    "canceled": TransactionStatus.CANCELED,
    "cancelled": TransactionStatus.CANCELED,
    "delete": TransactionStatus.CANCELED,
    "expired": TransactionStatus.CANCELED,
    "draft": TransactionStatus.PENDING,
    "progress": TransactionStatus.PENDING,
    "in_progress": TransactionStatus.PENDING,
    "hold": TransactionStatus.PENDING,
    "on_hold": TransactionStatus.PENDING,
    "pending": TransactionStatus.PENDING,
    "billing": TransactionStatus.PENDING,
}


def map_provider_status(provider_status: str) -> str | None:
    """Internal status for a provider status, or None when it is unknown."""
    return PROVIDER_STATUS_MAP.get(str(provider_status or "").strip().lower())
