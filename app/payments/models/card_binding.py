"""
CardBindingSession model for saved-card enrolment flows.

A session is created when the user is sent to the gateway's card form and
becomes terminal when the gateway reports the result or the form expires.

Usage:
    from payments.models import CardBindingSession

    session = CardBindingSession.objects.create(
        session_id=result.session_id,
        user=user,
        gateway="card_checkout",
        form_url=result.form_url,
        expires_at=timezone.now() + timedelta(minutes=30),
    )

    session.activate(card_details={"card_pan": "860006******6311", "ps": "uzcard"})
    session.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import CardBindingStatus, GatewayName


class CardBindingSession(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks one bind-card form opened on a gateway.

    Fields:
        session_id: Gateway-issued session identifier
        user: Card holder
        gateway: Gateway the form belongs to
        status: pending | active | failed (managed by FSM)
        card_details: Masked PAN, card token, issuing network
        form_url: Hosted form the user is redirected to
        expires_at: When an unfinished form is considered abandoned
        transaction: Zero-amount card_binding Transaction row for the flow
    """

    session_id = models.CharField(
        max_length=128,
        unique=True,
        help_text="Gateway-issued session identifier",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="card_binding_sessions",
    )

    gateway = models.CharField(
        max_length=32,
        choices=GatewayName.choices,
    )

    status = FSMField(
        default=CardBindingStatus.PENDING,
        choices=CardBindingStatus.choices,
        db_index=True,
    )

    card_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Masked PAN, card token and issuing network",
    )

    form_url = models.URLField(max_length=500, blank=True, default="")

    expires_at = models.DateTimeField(db_index=True)

    raw_callback_payload = models.JSONField(null=True, blank=True)

    error_message = models.TextField(blank=True, default="")

    transaction = models.OneToOneField(
        "payments.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="card_binding_session",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Card Binding Session"
        verbose_name_plural = "Card Binding Sessions"

    def __str__(self) -> str:
        return f"CardBindingSession({self.session_id}, {self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status != CardBindingStatus.PENDING

    def is_expired(self, now=None) -> bool:
        return self.expires_at <= (now or timezone.now())

    @transition(
        field=status,
        source=CardBindingStatus.PENDING,
        target=CardBindingStatus.ACTIVE,
    )
    def activate(self, card_details: dict | None = None):
        """Transition: PENDING -> ACTIVE"""
        self.card_details = card_details or {}
        self.error_message = ""

    @transition(
        field=status,
        source=CardBindingStatus.PENDING,
        target=CardBindingStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """Transition: PENDING -> FAILED"""
        self.error_message = reason or ""
