"""
Celery tasks for periodic payment maintenance.

This module provides tasks for:
- Reconciling pending transactions whose callback never arrived
- Settling abandoned card binding forms
- Resetting lapsed subscriptions to the free plan
- Pruning old webhook audit rows

Webhooks themselves are processed inline by the webhook views; nothing
here is on the request path.

Usage:
    from payments.tasks import reconcile_pending_transactions

    reconcile_pending_transactions.delay()

    # Scheduled via CELERY_BEAT_SCHEDULE in config/settings.py
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from payments.models import WebhookEvent
from payments.services import ReconciliationService, SubscriptionService
from payments.state_machines import WebhookOutcome

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

WEBHOOK_EVENT_RETENTION_DAYS = 90


# =============================================================================
# Periodic Tasks
# =============================================================================


@shared_task
def reconcile_pending_transactions(older_than_minutes: int | None = None) -> dict:
    """
    Poll the gateways for transactions still pending after the threshold.

    Args:
        older_than_minutes: Override PAYMENT_RECONCILE_AFTER_MINUTES

    Returns:
        Dict with counts of rows checked, changed, unchanged and failed
    """
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes else None
    run = ReconciliationService.reconcile_pending(older_than=older_than).data
    return {
        "checked": run.checked,
        "changed": run.changed,
        "unchanged": run.unchanged,
        "errors": len(run.errors),
    }


@shared_task
def expire_card_binding_sessions() -> dict:
    """Fail card binding sessions whose form expired without a result."""
    run = ReconciliationService.expire_card_binding_sessions().data
    return {"checked": run.checked, "changed": run.changed, "errors": len(run.errors)}


@shared_task
def expire_lapsed_subscriptions() -> dict:
    """Reset users whose paid plan has lapsed to free."""
    return {"expired_count": SubscriptionService.expire_lapsed()}


@shared_task
def cleanup_old_webhook_events(days: int = WEBHOOK_EVENT_RETENTION_DAYS) -> dict:
    """
    Delete webhook audit rows older than ``days``.

    Rows that ended in an error or a rejection are kept, for investigation.

    Returns:
        Dict with count of rows deleted
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = (
        WebhookEvent.objects.filter(created_at__lt=cutoff)
        .exclude(outcome__in=[WebhookOutcome.ERROR, WebhookOutcome.REJECTED])
        .delete()
    )

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
