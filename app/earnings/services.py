"""
Earnings services.

EarningsAllocator splits a settled booking's price between the producer and
the platform. PayoutBatchService tracks confirmed earnings and marks them
paid when a payout batch clears (the payout transfer itself happens
elsewhere).

Money math is done on integer cents with Decimal for the commission rate,
rounding the producer's net share half-up:

    net = round_half_up(total_cents * commission_rate / 100)
    fee = total_cents - net

Usage:
    from earnings.services import EarningsAllocator

    record = EarningsAllocator.settle(booking)   # None if no producer
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.db.models import Sum

from core.services import BaseService, ServiceResult

from earnings.models import EarningsRecord, EarningsStatus, ProducerSettings

if TYPE_CHECKING:
    from bookings.models import Booking


HUNDRED = Decimal("100")
RATE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class EarningsSplit:
    """Result of splitting a gross amount by commission rate."""

    gross_cents: int
    commission_rate: Decimal
    net_cents: int
    fee_cents: int


def compute_split(gross_cents: int, commission_rate: Decimal | str | int) -> EarningsSplit:
    """
    Split a gross amount into the producer's net share and the platform fee.

    Args:
        gross_cents: Total price in integer minor units
        commission_rate: Percentage kept by the producer, at most 2 decimals

    Raises:
        ValueError: Negative amount, rate outside 0-100 or more than 2 decimals
    """
    if gross_cents < 0:
        raise ValueError("gross_cents must not be negative")
    try:
        rate = Decimal(str(commission_rate))
    except InvalidOperation as e:
        raise ValueError(f"Invalid commission rate: {commission_rate!r}") from e
    if rate < 0 or rate > HUNDRED:
        raise ValueError("commission_rate must be between 0 and 100")
    if rate != rate.quantize(RATE_QUANTUM):
        raise ValueError("commission_rate must have at most 2 decimal places")

    net = (Decimal(gross_cents) * rate / HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    net_cents = int(net)
    return EarningsSplit(
        gross_cents=gross_cents,
        commission_rate=rate.quantize(RATE_QUANTUM),
        net_cents=net_cents,
        fee_cents=gross_cents - net_cents,
    )


class EarningsAllocator(BaseService):
    """
    Creates exactly one EarningsRecord per settled booking with a producer.

    Re-invocation for an already allocated booking returns the existing
    record. The unique booking column backs up the existence check when two
    settlements race.
    """

    @classmethod
    def commission_rate_for(cls, producer) -> Decimal:
        """Current commission rate for a producer, or the platform default."""
        producer_settings = ProducerSettings.objects.filter(producer=producer).first()
        if producer_settings is not None:
            return producer_settings.commission_rate
        return Decimal(str(settings.DEFAULT_PRODUCER_COMMISSION_RATE))

    @classmethod
    def settle(cls, booking: Booking) -> EarningsRecord | None:
        """
        Allocate the producer's share of a settled booking.

        Returns:
            The EarningsRecord, or None when the booking has no producer
        """
        logger = cls.get_logger()

        if booking.producer_id is None:
            logger.debug(
                "Booking has no producer, nothing to allocate",
                extra={"booking_id": str(booking.id)},
            )
            return None

        existing = EarningsRecord.objects.filter(booking=booking).first()
        if existing is not None:
            logger.info(
                "Earnings already allocated for booking",
                extra={"booking_id": str(booking.id), "earnings_record_id": str(existing.id)},
            )
            return existing

        split = compute_split(
            booking.total_price_cents,
            cls.commission_rate_for(booking.producer_id),
        )

        try:
            with cls.atomic():
                record = EarningsRecord.objects.create(
                    booking=booking,
                    producer_id=booking.producer_id,
                    gross_amount_cents=split.gross_cents,
                    platform_fee_cents=split.fee_cents,
                    net_amount_cents=split.net_cents,
                    commission_rate=split.commission_rate,
                )
        except IntegrityError:
            # Another settlement inserted first; the unique booking column won.
            return EarningsRecord.objects.get(booking=booking)

        logger.info(
            "Allocated producer earnings",
            extra={
                "booking_id": str(booking.id),
                "earnings_record_id": str(record.id),
                "gross_amount_cents": split.gross_cents,
                "net_amount_cents": split.net_cents,
                "platform_fee_cents": split.fee_cents,
                "commission_rate": str(split.commission_rate),
            },
        )
        return record


class PayoutBatchService(BaseService):
    """
    Bookkeeping for the payout side of earnings.

    Only the ledger transitions live here; moving money to the producer is
    the payout subsystem's job.
    """

    @classmethod
    def confirm_for_booking(cls, booking: Booking) -> EarningsRecord | None:
        """Confirm the booking's pending earnings once the session is completed."""
        record = EarningsRecord.objects.filter(booking=booking).first()
        if record is None or record.status != EarningsStatus.PENDING:
            return record
        record.confirm()
        record.save()
        cls.get_logger().info(
            "Confirmed earnings for completed booking",
            extra={"booking_id": str(booking.id), "earnings_record_id": str(record.id)},
        )
        return record

    @classmethod
    def available_balance_cents(cls, producer) -> int:
        """Sum of confirmed, unpaid earnings for a producer."""
        total = EarningsRecord.objects.filter(
            producer=producer,
            status=EarningsStatus.CONFIRMED,
        ).aggregate(total=Sum("net_amount_cents"))["total"]
        return total or 0

    @classmethod
    def close_batch(cls, producer, batch_reference: str) -> ServiceResult[list[EarningsRecord]]:
        """
        Mark all confirmed earnings of a producer as paid under one batch.

        Returns:
            ServiceResult with the paid records, or a failure when the
            balance is below the producer's minimum payout
        """
        if not batch_reference:
            return ServiceResult.failure(
                "Batch reference is required",
                error_code="VALIDATION_ERROR",
                errors={"batch_reference": ["This field is required."]},
            )

        producer_settings = ProducerSettings.objects.filter(producer=producer).first()
        minimum = (
            producer_settings.minimum_payout_cents
            if producer_settings is not None
            else settings.DEFAULT_MINIMUM_PAYOUT_CENTS
        )

        with cls.atomic():
            records = list(
                EarningsRecord.objects.select_for_update().filter(
                    producer=producer,
                    status=EarningsStatus.CONFIRMED,
                )
            )
            # Balance of exactly the rows this batch pays
            balance = sum(record.net_amount_cents for record in records)
            if balance <= 0 or balance < minimum:
                return ServiceResult.failure(
                    f"Available balance {balance} is below the minimum payout {minimum}",
                    error_code="BELOW_MINIMUM_PAYOUT",
                )
            for record in records:
                record.mark_paid(batch_reference)
                record.save()

        cls.get_logger().info(
            "Closed payout batch",
            extra={
                "producer_id": str(getattr(producer, "pk", producer)),
                "batch_reference": batch_reference,
                "record_count": len(records),
                "amount_cents": balance,
            },
        )
        return ServiceResult.success(records)
