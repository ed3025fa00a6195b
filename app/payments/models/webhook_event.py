"""
WebhookEvent model: audit log of inbound gateway callbacks.

One row is written per delivery, whatever the outcome, so support can see
exactly what a gateway sent and how it was answered. It is NOT used for
idempotency: duplicate deliveries are detected from the Transaction row's
status.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookOutcome

    WebhookEvent.objects.create(
        gateway="card_checkout",
        invoice_id="PAY-PRO-4f1c2a9b8e7d",
        provider_status="success",
        payload=request_body,
        outcome=WebhookOutcome.APPLIED,
        response_status=200,
    )
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookOutcome


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One inbound callback delivery.

    Fields:
        gateway: Gateway name from the URL
        kind: "payment" or "card_binding" endpoint
        invoice_id: Our correlation id, when present in the payload
        external_id: Gateway invoice/payment UUID, when present
        provider_status: Raw status string sent by the gateway
        payload: Body as received (signature included)
        outcome: What the processor did with it
        response_status: HTTP status we answered with
        error_message: Validation or processing error, if any
    """

    gateway = models.CharField(max_length=32, db_index=True)

    kind = models.CharField(max_length=20, default="payment")

    invoice_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    external_id = models.CharField(max_length=128, blank=True, default="")

    provider_status = models.CharField(max_length=32, blank=True, default="")

    payload = models.JSONField(default=dict, blank=True)

    outcome = models.CharField(
        max_length=20,
        choices=WebhookOutcome.choices,
        db_index=True,
    )

    response_status = models.PositiveSmallIntegerField(default=200)

    error_message = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["gateway", "created_at"], name="payments_we_gateway_5a9d2e_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.gateway}, {self.invoice_id or self.external_id}, {self.outcome})"
