"""Booking admin configuration."""

from django.contrib import admin

from bookings.models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Admin configuration for Booking.

    Status is read-only; payment confirms a booking and BookingService
    completes or cancels it.
    """

    list_display = [
        "id",
        "client",
        "producer",
        "session_type",
        "session_date",
        "start_time",
        "duration_hours",
        "total_price_cents",
        "status",
    ]
    list_filter = ["status", "session_type", "session_date"]
    search_fields = ["id", "client__email", "client__username", "producer__username"]
    readonly_fields = [
        "id",
        "order",
        "status",
        "total_price_cents",
        "confirmed_at",
        "completed_at",
        "cancelled_at",
        "cancellation_reason",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "session_date"
    raw_id_fields = ["client", "producer"]
