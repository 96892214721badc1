"""
URL configuration for the payments app.

Routes:
    - POST /intents/ - Create payment intent
    - GET /orders/<order_id>/ - Order details
    - POST /orders/<order_id>/timeout/ - Time out push payment
    - POST /gateway/ - Send push payment
    - GET /gateway/<correlation_id>/ - Poll push payment
    - POST /manual/ - Submit manual payment
    - GET /manual/queue/ - Review queue (staff)
    - POST /manual/<record_id>/review/ - Review manual payment (staff)

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views

app_name = "payments"

urlpatterns = [
    # Intake
    path("intents/", views.CreateIntentView.as_view(), name="create_intent"),
    path("orders/<uuid:order_id>/", views.OrderDetailView.as_view(), name="order_detail"),
    # Gateway path
    path("gateway/", views.BeginGatewayPaymentView.as_view(), name="begin_gateway_payment"),
    path(
        "gateway/<str:correlation_id>/",
        views.GatewayOutcomeView.as_view(),
        name="gateway_outcome",
    ),
    path(
        "orders/<uuid:order_id>/timeout/",
        views.GatewayTimeoutView.as_view(),
        name="gateway_timeout",
    ),
    # Manual path
    path("manual/", views.SubmitManualPaymentView.as_view(), name="submit_manual_payment"),
    path("manual/queue/", views.ManualPaymentQueueView.as_view(), name="manual_payment_queue"),
    path(
        "manual/<uuid:record_id>/review/",
        views.ReviewManualPaymentView.as_view(),
        name="review_manual_payment",
    ),
]
