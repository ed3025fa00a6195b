"""
URL configuration for the payments app.

Routes:
    - POST webhooks/<gateway>/ - Payment status callbacks
    - POST webhooks/<gateway>/card-binding/ - Card binding callbacks
    - GET  return/<gateway>/ - Browser return from hosted checkout
    - POST transactions/ - Start payment / scan-pay / card binding
    - GET  transactions/<invoice_id>/ - Transaction status
    - POST transactions/<invoice_id>/confirm/ - Confirm OTP
    - POST transactions/<invoice_id>/cancel/ - Cancel pending invoice
    - POST transactions/<invoice_id>/refund/ - Refund (staff)
    - GET  card-bindings/<session_id>/ - Card binding status
    - GET  subscription/ - Current entitlement

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import card_binding_webhook, payment_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<str:gateway>/", payment_webhook, name="payment_webhook"),
    path(
        "webhooks/<str:gateway>/card-binding/",
        card_binding_webhook,
        name="card_binding_webhook",
    ),
    path("return/<str:gateway>/", views.payment_return, name="payment_return"),
    # Transactions
    path("transactions/", views.TransactionCreateView.as_view(), name="transaction_create"),
    path(
        "transactions/<str:invoice_id>/",
        views.TransactionDetailView.as_view(),
        name="transaction_detail",
    ),
    path(
        "transactions/<str:invoice_id>/confirm/",
        views.ConfirmOtpView.as_view(),
        name="transaction_confirm",
    ),
    path(
        "transactions/<str:invoice_id>/cancel/",
        views.CancelTransactionView.as_view(),
        name="transaction_cancel",
    ),
    path(
        "transactions/<str:invoice_id>/refund/",
        views.RefundTransactionView.as_view(),
        name="transaction_refund",
    ),
    # Card binding and subscription
    path(
        "card-bindings/<str:session_id>/",
        views.CardBindingStatusView.as_view(),
        name="card_binding_detail",
    ),
    path("subscription/", views.SubscriptionView.as_view(), name="subscription"),
]
