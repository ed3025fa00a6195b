"""
Transaction processor: applies gateway status events to Transaction rows.

Every status change, whatever its origin, goes through process_event():
    - webhook callbacks (handle_callback, after signature verification)
    - OTP confirmation and scan-pay answers
    - status polls from reconciliation
    - return-redirect status checks

Processing steps for one event:
    1. Map the provider status onto our states (unknown -> validation error)
    2. Lock the row: SELECT ... FOR UPDATE by (gateway, invoice id or external id)
    3. Idempotency gate: terminal rows are left alone, except paid -> refunded
    4. Transient statuses only record the payload
    5. Apply the FSM transition and save; the UPDATE is conditional on the
       status read in step 2 (ConcurrentTransitionMixin)
    6. Grant or revoke the subscription in the same database transaction

Steps 2-6 run inside one transaction.atomic() block, so a grant is only
committed together with the status change that caused it.

Usage:
    from payments.services import TransactionProcessor

    result = TransactionProcessor.handle_callback("card_checkout", request_body)
    result.outcome  # "applied", "already_processed", "not_found", ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction
from django_fsm import ConcurrentTransition

from core.services import BaseService
from payments.exceptions import AlreadyProcessedError, PaymentValidationError
from payments.models import Transaction
from payments.plans import tier_days
from payments.serializers import PaymentCallbackSerializer, normalize_callback_payload
from payments.services.subscription_service import SubscriptionService
from payments.signatures import SignatureVerifier
from payments.state_machines import TransactionStatus, WebhookOutcome, map_provider_status

if TYPE_CHECKING:
    from payments.gateways.base import StatusResult

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("payments.security")


# =============================================================================
# Event and Result Types
# =============================================================================


@dataclass
class GatewayEvent:
    """
    One observed provider status for one transaction.

    Attributes:
        gateway: Gateway the event came from
        provider_status: Status in the gateway's vocabulary
        invoice_id: Our correlation id, when the gateway echoed it
        external_id: Gateway invoice/payment UUID
        amount: Amount the gateway reports, in minor units
        payment_details: Normalised receipt metadata
        error_code: Provider response code on failure
        error_message: Provider failure text
        payload: Body as received, stored on the row for audit
        source: webhook | status_poll | otp | scan_pay | return_redirect
    """

    gateway: str
    provider_status: str
    invoice_id: str | None = None
    external_id: str | None = None
    amount: int | None = None
    payment_details: dict[str, Any] = field(default_factory=dict)
    error_code: str = ""
    error_message: str = ""
    payload: dict[str, Any] | None = None
    source: str = "webhook"

    @classmethod
    def from_status_result(
        cls,
        gateway: str,
        txn: Transaction,
        result: StatusResult,
        source: str,
    ) -> GatewayEvent:
        """Build an event from a gateway status answer about ``txn``."""
        return cls(
            gateway=gateway,
            provider_status=result.provider_status,
            invoice_id=txn.internal_invoice_id,
            external_id=result.external_id or txn.external_id,
            amount=result.amount,
            payment_details=result.payment_details,
            error_code=result.error_code,
            error_message=result.error_message,
            payload=result.raw_response,
            source=source,
        )


@dataclass
class ProcessingResult:
    """
    What process_event() did.

    Attributes:
        outcome: A WebhookOutcome value
        transaction: The row, when one was found
        status: Internal status the event mapped to
        previous_status: Row status before the event
        subscription_changed: Whether a grant or revoke was applied
    """

    outcome: str
    transaction: Transaction | None = None
    status: str | None = None
    previous_status: str | None = None
    subscription_changed: bool = False

    @property
    def recorded(self) -> bool:
        """The event was matched to a row and needs no redelivery."""
        return self.outcome in (
            WebhookOutcome.APPLIED,
            WebhookOutcome.ALREADY_PROCESSED,
            WebhookOutcome.IGNORED_TRANSIENT,
        )


# =============================================================================
# Processor
# =============================================================================


class TransactionProcessor(BaseService):
    """
    Idempotent state machine driver for Transaction rows.

    Only the first event that moves a row into ``paid`` grants the
    subscription, and only the first ``paid -> refunded`` revokes it.
    Duplicate or late events find the row terminal and do nothing.
    """

    @classmethod
    def handle_callback(cls, gateway: str, payload: Any) -> ProcessingResult:
        """
        Validate, authenticate and apply one payment callback.

        Raises:
            PaymentValidationError: Unknown gateway, missing fields or unknown status
            SignatureError: No accepted signature scheme matched
        """
        config = settings.PAYMENT_GATEWAYS.get(gateway)
        if config is None:
            raise PaymentValidationError(
                f"Unknown payment gateway: {gateway}",
                error_code="UNKNOWN_GATEWAY",
                details={"gateway": gateway},
            )

        serializer = PaymentCallbackSerializer(data=payload)
        if not serializer.is_valid():
            raise PaymentValidationError(
                "Invalid callback payload",
                error_code="INVALID_CALLBACK",
                details={"errors": serializer.errors},
            )
        data = serializer.validated_data

        # Sign over the amount exactly as sent
        raw_amount = normalize_callback_payload(payload).get("amount", data["amount"])
        SignatureVerifier.for_gateway(gateway, config).verify(
            sign=data["sign"],
            invoice_id=data["invoice_id"],
            amount=raw_amount,
            store_id=data["store_id"],
            external_id=data["external_id"],
        )

        return cls.process_event(
            GatewayEvent(
                gateway=gateway,
                provider_status=data["status"],
                invoice_id=data["invoice_id"],
                external_id=data["external_id"] or None,
                amount=data["amount"],
                payment_details=serializer.payment_details(),
                error_code=data.get("response_code") or "",
                error_message=data.get("error_message") or "",
                payload=payload,
                source="webhook",
            )
        )

    @classmethod
    def process_event(cls, event: GatewayEvent) -> ProcessingResult:
        """
        Apply one provider status to its Transaction row.

        Raises:
            PaymentValidationError: Provider status outside the mapping table
        """
        target = map_provider_status(event.provider_status)
        if target is None:
            raise PaymentValidationError(
                f"Unknown provider status: {event.provider_status}",
                error_code="UNKNOWN_PROVIDER_STATUS",
                details={"gateway": event.gateway, "status": event.provider_status},
            )

        log_context = {
            "gateway": event.gateway,
            "invoice_id": event.invoice_id,
            "external_id": event.external_id,
            "provider_status": event.provider_status,
            "source": event.source,
        }

        with transaction.atomic():
            txn = cls._lock_transaction(event)
            if txn is None:
                logger.warning("Gateway event for unknown transaction", extra=log_context)
                return ProcessingResult(outcome=WebhookOutcome.NOT_FOUND, status=target)

            previous = txn.status
            log_context.update({"transaction_id": str(txn.id), "previous_status": previous})

            if txn.is_terminal and not (
                previous == TransactionStatus.PAID and target == TransactionStatus.REFUNDED
            ):
                logger.info("Gateway event for final transaction ignored", extra=log_context)
                return ProcessingResult(
                    outcome=WebhookOutcome.ALREADY_PROCESSED,
                    transaction=txn,
                    status=target,
                    previous_status=previous,
                )

            if target == TransactionStatus.PENDING:
                cls._record_transient(txn, event)
                logger.info("Transient gateway status recorded", extra=log_context)
                return ProcessingResult(
                    outcome=WebhookOutcome.IGNORED_TRANSIENT,
                    transaction=txn,
                    status=target,
                    previous_status=previous,
                )

            if (
                target == TransactionStatus.PAID
                and event.amount is not None
                and event.amount != txn.amount_minor_units
            ):
                security_logger.warning(
                    "Paid event amount does not match transaction",
                    extra={
                        **log_context,
                        "expected_amount": txn.amount_minor_units,
                        "reported_amount": event.amount,
                    },
                )
                return ProcessingResult(
                    outcome=WebhookOutcome.AMOUNT_MISMATCH,
                    transaction=txn,
                    status=target,
                    previous_status=previous,
                )

            try:
                cls._save_transition(txn, target, event)
            except AlreadyProcessedError:
                logger.info("Concurrent transition lost, treating as processed", extra=log_context)
                return ProcessingResult(
                    outcome=WebhookOutcome.ALREADY_PROCESSED,
                    transaction=txn,
                    status=target,
                    previous_status=previous,
                )

            subscription_changed = cls._apply_subscription_effect(txn, target, previous)

        logger.info(
            "Gateway event applied",
            extra={**log_context, "status": txn.status, "subscription_changed": subscription_changed},
        )
        return ProcessingResult(
            outcome=WebhookOutcome.APPLIED,
            transaction=txn,
            status=target,
            previous_status=previous,
            subscription_changed=subscription_changed,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _lock_transaction(event: GatewayEvent) -> Transaction | None:
        """
        Lock the row the event names.

        The invoice id wins when the event carries one; the external id is
        only a fallback for events that have no invoice id at all.
        """
        rows = Transaction.objects.select_for_update().filter(gateway=event.gateway)
        if event.invoice_id:
            return rows.filter(internal_invoice_id=event.invoice_id).first()
        if event.external_id:
            return rows.filter(external_id=event.external_id).first()
        return None

    @staticmethod
    def _record_transient(txn: Transaction, event: GatewayEvent) -> None:
        update_fields = ["updated_at"]
        if event.payload is not None:
            txn.raw_callback_payload = event.payload
            update_fields.append("raw_callback_payload")
        if event.external_id and not txn.external_id:
            txn.external_id = event.external_id
            update_fields.append("external_id")
        txn.save(update_fields=update_fields)

    @classmethod
    def _save_transition(cls, txn: Transaction, target: str, event: GatewayEvent) -> None:
        """
        Apply and persist one transition.

        Raises:
            AlreadyProcessedError: Another worker moved the row first
        """
        read_state = txn.status
        try:
            # Savepoint, so a lost race leaves the outer block usable
            with transaction.atomic():
                cls._apply_transition(txn, target, event)
                txn.save()
        except ConcurrentTransition as exc:
            raise AlreadyProcessedError(
                f"Transaction {txn.internal_invoice_id} was moved by another worker",
                details={"read_state": read_state, "target_state": target},
            ) from exc

    @staticmethod
    def _apply_transition(txn: Transaction, target: str, event: GatewayEvent) -> None:
        if event.payload is not None:
            txn.raw_callback_payload = event.payload
        if event.external_id and not txn.external_id:
            txn.external_id = event.external_id
        elif event.external_id and event.external_id != txn.external_id:
            # Payment uuid differs from the invoice uuid on some gateways
            event.payment_details.setdefault("payment_uuid", event.external_id)

        if target == TransactionStatus.PAID:
            txn.mark_paid(payment_details=event.payment_details)
        elif target == TransactionStatus.REFUNDED:
            txn.mark_refunded()
        elif target == TransactionStatus.FAILED:
            if event.payment_details:
                txn.payment_details = {**(txn.payment_details or {}), **event.payment_details}
            txn.mark_failed(error_code=event.error_code, error_message=event.error_message)
        elif target == TransactionStatus.CANCELED:
            txn.mark_canceled(error_code=event.error_code, error_message=event.error_message)

    @staticmethod
    def _apply_subscription_effect(txn: Transaction, target: str, previous: str) -> bool:
        if not txn.grants_subscription:
            return False
        if target == TransactionStatus.PAID:
            SubscriptionService.grant(
                user_id=txn.user_id,
                plan=txn.plan,
                duration_days=txn.duration_days or tier_days(txn.duration_tier_months or 1),
                source="payment",
                duration_tier_months=txn.duration_tier_months,
            )
            return True
        # A pending invoice reverted before payment never granted anything
        if target == TransactionStatus.REFUNDED and previous == TransactionStatus.PAID:
            SubscriptionService.revoke(user_id=txn.user_id)
            return True
        return False
