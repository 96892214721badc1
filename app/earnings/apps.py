"""
Earnings app configuration.

This app derives producer earnings from settled bookings and tracks
which earnings have been paid out.
"""

from django.apps import AppConfig


class EarningsConfig(AppConfig):
    """Configuration for the earnings application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "earnings"
    verbose_name = "Earnings"
