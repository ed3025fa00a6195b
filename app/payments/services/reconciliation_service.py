"""
Reconciliation service for transactions whose callback never arrived.

Gateways retry callbacks for a limited time only, so a pending
Transaction can stay pending forever if every delivery failed. This
service polls the provider status of such rows and feeds it through the
same TransactionProcessor used by webhooks, so a late poll and a late
callback can never both grant the subscription.

Jobs:
    - reconcile_pending: poll pending payment rows older than a threshold
    - expire_card_binding_sessions: settle bind-card forms that were
      abandoned (the gateway is asked first, then the session is failed)

Usage:
    from payments.services import ReconciliationService

    result = ReconciliationService.reconcile_pending(older_than=timedelta(minutes=15))
    run = result.data
    run.checked, run.applied, run.errors
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from payments.models import CardBindingSession, Transaction
from payments.services.payment_service import PaymentService
from payments.state_machines import CardBindingStatus, TransactionKind, TransactionStatus

logger = logging.getLogger(__name__)

# Rows polled per run
DEFAULT_BATCH_SIZE = 200


@dataclass
class ReconciliationRunResult:
    """
    Summary of one reconciliation run.

    Attributes:
        checked: Rows looked at
        changed: Rows whose status changed
        unchanged: Rows still pending at the gateway
        errors: Rows whose gateway call failed, with the error code
    """

    checked: int = 0
    changed: int = 0
    unchanged: int = 0
    errors: list[dict] = field(default_factory=list)


class ReconciliationService(BaseService):
    """Periodic healing of pending transactions and card binding sessions."""

    @classmethod
    def reconcile_pending(
        cls,
        older_than: timedelta | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> ServiceResult[ReconciliationRunResult]:
        """
        Poll the gateway for pending payment rows created before now - older_than.

        Rows without an external id never reached the gateway and are skipped.
        """
        if older_than is None:
            older_than = timedelta(minutes=settings.PAYMENT_RECONCILE_AFTER_MINUTES)
        cutoff = timezone.now() - older_than

        pending = (
            Transaction.objects.filter(
                status=TransactionStatus.PENDING,
                created_at__lte=cutoff,
                external_id__isnull=False,
            )
            .exclude(transaction_kind=TransactionKind.CARD_BINDING)
            .order_by("created_at")[:batch_size]
        )

        run = ReconciliationRunResult()
        for txn in pending:
            run.checked += 1
            result = PaymentService.refresh_status(txn, source="status_poll")
            if not result.success:
                run.errors.append(
                    {"invoice_id": txn.internal_invoice_id, "error_code": result.error_code}
                )
                continue
            if result.data.status != TransactionStatus.PENDING:
                run.changed += 1
            else:
                run.unchanged += 1

        logger.info(
            "Pending transaction reconciliation finished",
            extra={
                "checked": run.checked,
                "changed": run.changed,
                "unchanged": run.unchanged,
                "errors": len(run.errors),
            },
        )
        return ServiceResult.success(run)

    @classmethod
    def expire_card_binding_sessions(cls, now=None) -> ServiceResult[ReconciliationRunResult]:
        """Settle pending card binding sessions whose form has expired."""
        now = now or timezone.now()
        expired = CardBindingSession.objects.filter(
            status=CardBindingStatus.PENDING,
            expires_at__lte=now,
        ).order_by("expires_at")

        run = ReconciliationRunResult()
        for session in expired:
            run.checked += 1
            result = PaymentService.sync_card_binding(session)
            if not result.success:
                run.errors.append({"session_id": session.session_id, "error_code": result.error_code})
                continue
            run.changed += 1

        if run.checked:
            logger.info(
                "Expired card binding sessions settled",
                extra={"checked": run.checked, "changed": run.changed, "errors": len(run.errors)},
            )
        return ServiceResult.success(run)
