"""
URL configuration for the Django application.

URL Structure:
    /                                  - ReDoc API documentation
    /admin/                            - Django admin interface
    /health/                           - Health check endpoint
    /schema/                           - OpenAPI schema (YAML)
    /api/v1/auth/token/                - Obtain JWT pair (email/password)
    /api/v1/auth/token/refresh/        - Refresh access token
    /api/v1/payments/                  - Payment endpoints
        webhooks/{gateway}/            - Payment callback (POST)
        webhooks/{gateway}/card-binding/ - Card binding callback (POST)
        return/{gateway}/              - Browser return redirect (GET)
        transactions/                  - Start payment / scan-pay / card binding
        transactions/{invoice_id}/     - Transaction status
        transactions/{invoice_id}/confirm/ - Confirm OTP
        transactions/{invoice_id}/cancel/  - Cancel pending invoice
        transactions/{invoice_id}/refund/  - Refund (staff only)
        card-bindings/{session_id}/    - Card binding status
        subscription/                  - Current user's subscription
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Payments Admin"
admin.site.site_title = "Payments Admin"
