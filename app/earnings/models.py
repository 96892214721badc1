"""
Producer earnings models.

ProducerSettings holds the commission a producer keeps from each session.
EarningsRecord is that producer's share of one settled booking, with the
commission rate snapshotted at settlement so later rate changes never
recalculate past earnings.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PayoutMethod(models.TextChoices):
    MPESA = "mpesa", "M-Pesa"
    BANK = "bank", "Bank Transfer"


class EarningsStatus(models.TextChoices):
    """
    States for an EarningsRecord.

    State Flow:
        PENDING -> CONFIRMED -> PAID
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PAID = "paid", "Paid"


def default_commission_rate() -> Decimal:
    return Decimal(str(settings.DEFAULT_PRODUCER_COMMISSION_RATE))


def default_minimum_payout_cents() -> int:
    return settings.DEFAULT_MINIMUM_PAYOUT_CENTS


class ProducerSettings(BaseModel):
    """
    Per-producer commission and payout preferences.

    Fields:
        producer: The producer these settings belong to
        commission_rate: Percentage of the session price the producer keeps
        minimum_payout_cents: Smallest balance paid out in one batch
        payout_method/payout_phone_number: Where payouts go
    """

    producer = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="producer_settings",
    )

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=default_commission_rate,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text="Percentage kept by the producer (e.g. 70.00)",
    )

    minimum_payout_cents = models.PositiveBigIntegerField(
        default=default_minimum_payout_cents,
    )

    payout_method = models.CharField(
        max_length=10,
        choices=PayoutMethod.choices,
        default=PayoutMethod.MPESA,
    )

    payout_phone_number = models.CharField(max_length=12, blank=True, default="")

    class Meta:
        verbose_name = "Producer Settings"
        verbose_name_plural = "Producer Settings"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(commission_rate__gte=0, commission_rate__lte=100),
                name="producer_settings_commission_rate_range",
            ),
        ]

    def __str__(self) -> str:
        return f"ProducerSettings({self.producer_id}, {self.commission_rate}%)"


class EarningsRecord(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    One producer's share of one settled booking.

    Fields:
        booking: Settled booking (unique, so a booking is allocated once)
        producer: Producer receiving the share
        gross_amount_cents: Booking total at settlement
        platform_fee_cents: gross - net
        commission_rate: Rate snapshot used for the split
        net_amount_cents: Producer share, rounded half-up
        payout_batch_reference: Batch that paid this record out
    """

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="earnings_record",
    )

    producer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="earnings_records",
    )

    gross_amount_cents = models.PositiveBigIntegerField()
    platform_fee_cents = models.PositiveBigIntegerField()
    net_amount_cents = models.PositiveBigIntegerField()

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Commission rate snapshot at settlement",
    )

    status = FSMField(
        default=EarningsStatus.PENDING,
        choices=EarningsStatus.choices,
        db_index=True,
    )

    payout_batch_reference = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
    )

    confirmed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["producer", "status"], name="earnings_producer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    gross_amount_cents=F("platform_fee_cents") + F("net_amount_cents")
                ),
                name="earnings_record_split_conserves_gross",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"EarningsRecord({self.id}, net={self.net_amount_cents}, "
            f"fee={self.platform_fee_cents}, {self.status})"
        )

    @transition(field=status, source=EarningsStatus.PENDING, target=EarningsStatus.CONFIRMED)
    def confirm(self):
        """The session was delivered, so the share can be paid out."""
        self.confirmed_at = timezone.now()

    @transition(field=status, source=EarningsStatus.CONFIRMED, target=EarningsStatus.PAID)
    def mark_paid(self, batch_reference: str):
        """A payout batch containing this record cleared."""
        self.payout_batch_reference = batch_reference
        self.paid_at = timezone.now()
