"""
Bookings app configuration.

This app tracks studio sessions booked by clients with producers.
Booking status follows the payment outcome of the linked Order.
"""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    """Configuration for the bookings application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookings"
    verbose_name = "Bookings"
