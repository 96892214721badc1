"""
Payments app configuration.

This app provides the payment reconciliation workflow:
- Orders and their state machine
- M-Pesa push payments
- Manual Paybill/bank payments and their review queue
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
