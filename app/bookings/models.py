"""
Booking model for studio sessions.

A Booking is created together with its Order when a client books a
session. It is confirmed only after the Order is paid and is terminal at
completed or cancelled. The Booking points at its Order; the Order does
not need to know about the Booking.
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class SessionType(models.TextChoices):
    """Kinds of studio session a client can book."""

    RECORDING = "recording", "Recording"
    MIXING = "mixing", "Mixing"
    MASTERING = "mastering", "Mastering"
    PRODUCTION = "production", "Production"
    CONSULTATION = "consultation", "Consultation"


class BookingStatus(models.TextChoices):
    """
    States for the Booking lifecycle.

    State Flow:
        PENDING -> CONFIRMED -> COMPLETED
        PENDING -> CANCELLED
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class Booking(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A scheduled studio session.

    Fields:
        client: User who booked the session
        producer: Producer running the session (optional)
        order: Order paying for the session (optional)
        session_type/session_date/start_time/duration_hours: The slot
        total_price_cents: Price snapshot at booking time
        status: Current lifecycle status
    """

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    producer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="producer_bookings",
        help_text="Producer assigned to the session",
    )

    order = models.OneToOneField(
        "payments.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="booking",
        help_text="Order paying for this session",
    )

    session_type = models.CharField(
        max_length=20,
        choices=SessionType.choices,
        default=SessionType.RECORDING,
    )

    session_date = models.DateField()
    start_time = models.TimeField()

    duration_hours = models.PositiveSmallIntegerField(default=1)

    total_price_cents = models.PositiveBigIntegerField(
        help_text="Total session price in smallest currency unit",
    )

    status = FSMField(
        default=BookingStatus.PENDING,
        choices=BookingStatus.choices,
        db_index=True,
    )

    notes = models.TextField(blank=True, default="")

    confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-session_date", "-start_time"]
        indexes = [
            models.Index(fields=["producer", "session_date"], name="booking_producer_date_idx"),
            models.Index(fields=["client", "status"], name="booking_client_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(duration_hours__gt=0),
                name="booking_duration_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.session_type} {self.session_date}, {self.status})"

    @property
    def starts_at(self) -> datetime:
        """Session start as an aware datetime in the current timezone."""
        return timezone.make_aware(
            datetime.combine(self.session_date, self.start_time),
            timezone.get_current_timezone(),
        )

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CONFIRMED)
    def confirm(self):
        """Payment for the session was received."""
        self.confirmed_at = timezone.now()

    @transition(field=status, source=BookingStatus.CONFIRMED, target=BookingStatus.COMPLETED)
    def complete(self):
        """The session took place."""
        self.completed_at = timezone.now()

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CANCELLED)
    def cancel(self, reason: str = ""):
        """The session was called off before it was paid."""
        self.cancelled_at = timezone.now()
        self.cancellation_reason = reason or ""
