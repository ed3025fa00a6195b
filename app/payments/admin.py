"""
Payment admin configuration.

Transactions and webhook events are an audit trail: they can be browsed
but not edited or deleted from the admin. Status changes go through
PaymentService so the subscription stays consistent.
"""

from django.contrib import admin, messages

from payments.models import CardBindingSession, Transaction, WebhookEvent
from payments.services import PaymentService
from payments.state_machines import TransactionStatus

__all__ = [
    "CardBindingSessionAdmin",
    "TransactionAdmin",
    "WebhookEventAdmin",
]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    The "refresh status" action polls the gateway for selected pending rows,
    which is how support resolves a payment whose callback was lost.
    """

    list_display = [
        "internal_invoice_id",
        "user",
        "gateway",
        "transaction_kind",
        "plan",
        "amount_display",
        "status",
        "created_at",
        "paid_at",
    ]
    list_filter = ["status", "gateway", "transaction_kind", "plan", "created_at"]
    search_fields = ["id", "internal_invoice_id", "external_id", "user__email"]
    readonly_fields = [
        "id",
        "internal_invoice_id",
        "external_id",
        "user",
        "gateway",
        "transaction_kind",
        "plan",
        "amount_minor_units",
        "duration_days",
        "duration_tier_months",
        "lang",
        "status",
        "checkout_url",
        "payment_details",
        "raw_callback_payload",
        "error_code",
        "error_message",
        "paid_at",
        "refunded_at",
        "failed_at",
        "canceled_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["refresh_status"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "internal_invoice_id", "external_id", "gateway", "transaction_kind"),
            },
        ),
        (
            "Purchase",
            {
                "fields": (
                    "user",
                    "plan",
                    "amount_minor_units",
                    "duration_days",
                    "duration_tier_months",
                    "lang",
                    "checkout_url",
                ),
            },
        ),
        (
            "Status",
            {
                "fields": ("status", "error_code", "error_message"),
            },
        ),
        (
            "Provider Data",
            {
                "fields": ("payment_details", "raw_callback_payload"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "created_at",
                    "paid_at",
                    "refunded_at",
                    "failed_at",
                    "canceled_at",
                    "updated_at",
                ),
            },
        ),
    )

    def amount_display(self, obj: Transaction) -> str:
        """Display the amount in major units."""
        return f"{obj.amount_minor_units / 100:,.2f}"

    amount_display.short_description = "Amount"

    @admin.action(description="Refresh status from gateway")
    def refresh_status(self, request, queryset):
        refreshed = 0
        for txn in queryset.filter(status=TransactionStatus.PENDING, external_id__isnull=False):
            result = PaymentService.refresh_status(txn, source="admin")
            if result.success:
                refreshed += 1
            else:
                self.message_user(
                    request,
                    f"{txn.internal_invoice_id}: {result.error_code}",
                    level=messages.WARNING,
                )
        self.message_user(request, f"Refreshed {refreshed} transaction(s)")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for transactions (audit trail)."""
        return False


@admin.register(CardBindingSession)
class CardBindingSessionAdmin(admin.ModelAdmin):
    list_display = ["session_id", "user", "gateway", "status", "expires_at", "created_at"]
    list_filter = ["status", "gateway"]
    search_fields = ["session_id", "user__email"]
    readonly_fields = [
        "id",
        "session_id",
        "user",
        "gateway",
        "status",
        "card_details",
        "form_url",
        "expires_at",
        "raw_callback_payload",
        "error_message",
        "transaction",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "gateway",
        "kind",
        "invoice_id",
        "provider_status",
        "outcome",
        "response_status",
        "created_at",
    ]
    list_filter = ["gateway", "kind", "outcome", "created_at"]
    search_fields = ["id", "invoice_id", "external_id"]
    readonly_fields = [
        "id",
        "gateway",
        "kind",
        "invoice_id",
        "external_id",
        "provider_status",
        "payload",
        "outcome",
        "response_status",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False
