"""
URL configuration for the studio payments application.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface (manual payment queue)
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/payments/              - Payment endpoints
        intents/                   - Create an order (and booking) to pay for
        orders/{id}/               - Order detail with booking and attempts
        orders/{id}/timeout/       - Expire an awaiting push payment
        gateway/                   - Begin an M-Pesa STK push
        gateway/{correlation_id}/  - Poll a push payment outcome
        manual/                    - Submit a manual payment claim with proof
        manual/queue/              - Review queue (staff)
        manual/{id}/review/        - Verify or reject a claim (staff)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
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

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Studio Payments Admin"
admin.site.site_title = "Studio Payments"
admin.site.index_title = "Payment reconciliation"
