"""
Tests for earnings services.

Tests cover:
- compute_split rounding and conservation of the gross amount
- EarningsAllocator idempotency and commission rate lookup
- PayoutBatchService confirmation, balance and batch closing
"""

import logging
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import IntegrityError

from earnings.models import EarningsRecord, EarningsStatus
from earnings.services import EarningsAllocator, PayoutBatchService, compute_split


# =============================================================================
# Split Math
# =============================================================================


class TestComputeSplit:
    """Tests for compute_split."""

    @pytest.mark.parametrize(
        "gross,rate,net,fee",
        [
            (400_000, "70.00", 280_000, 120_000),
            (100_001, "70", 70_001, 30_000),
            (333, "33.33", 111, 222),
            (1, "50", 1, 0),
            (3, "50", 2, 1),
            (250_000, "0", 0, 250_000),
            (250_000, "100", 250_000, 0),
            (0, "70", 0, 0),
        ],
    )
    def test_split(self, gross, rate, net, fee):
        split = compute_split(gross, rate)

        assert (split.net_cents, split.fee_cents) == (net, fee)
        assert split.net_cents + split.fee_cents == gross

    def test_rate_is_normalized(self):
        assert compute_split(1000, 70).commission_rate == Decimal("70.00")

    @pytest.mark.parametrize("rate", ["-1", "100.01", "70.005", "seventy"])
    def test_rejects_bad_rate(self, rate):
        with pytest.raises(ValueError):
            compute_split(1000, rate)

    def test_rejects_negative_gross(self):
        with pytest.raises(ValueError):
            compute_split(-1, "70")


# =============================================================================
# Allocation
# =============================================================================


class TestEarningsAllocator:
    """Tests for EarningsAllocator.settle."""

    def test_allocates_producer_share(self, make_booking, producer):
        booking = make_booking(total_price_cents=400_000)

        record = EarningsAllocator.settle(booking)

        assert record.producer == producer
        assert record.gross_amount_cents == 400_000
        assert record.net_amount_cents == 280_000
        assert record.platform_fee_cents == 120_000
        assert record.commission_rate == Decimal("70.00")
        assert record.status == EarningsStatus.PENDING

    def test_second_call_returns_existing_record(self, make_booking):
        booking = make_booking()

        first = EarningsAllocator.settle(booking)
        second = EarningsAllocator.settle(booking)

        assert first == second
        assert EarningsRecord.objects.count() == 1

    def test_no_producer(self, make_booking):
        booking = make_booking(producer=None)

        assert EarningsAllocator.settle(booking) is None
        assert not EarningsRecord.objects.exists()

    def test_default_rate_without_producer_settings(
        self, make_booking, producer_without_settings, settings
    ):
        settings.DEFAULT_PRODUCER_COMMISSION_RATE = "65.50"
        booking = make_booking(total_price_cents=10_000, producer=producer_without_settings)

        record = EarningsAllocator.settle(booking)

        assert record.commission_rate == Decimal("65.50")
        assert record.net_amount_cents == 6_550

    def test_rate_is_snapshotted(self, make_booking, producer):
        record = EarningsAllocator.settle(make_booking(total_price_cents=10_000))
        producer.producer_settings.commission_rate = Decimal("80.00")
        producer.producer_settings.save()

        record.refresh_from_db()
        assert record.commission_rate == Decimal("70.00")
        assert record.net_amount_cents == 7_000

    def test_lost_insert_race_returns_winner(self, make_booking):
        booking = make_booking()
        winner = EarningsAllocator.settle(booking)

        real_filter = EarningsRecord.objects.filter

        class NothingYet:
            def first(self):
                return None

        def filter_missing_once(*args, **kwargs):
            filter_missing_once.calls += 1
            if filter_missing_once.calls == 1:
                return NothingYet()
            return real_filter(*args, **kwargs)

        filter_missing_once.calls = 0

        with patch.object(EarningsRecord.objects, "filter", side_effect=filter_missing_once):
            record = EarningsAllocator.settle(booking)

        assert record == winner
        assert EarningsRecord.objects.count() == 1

    def test_integrity_error_without_winner_raises(self, make_booking):
        booking = make_booking()

        with patch.object(EarningsRecord.objects, "create", side_effect=IntegrityError):
            with pytest.raises(EarningsRecord.DoesNotExist):
                EarningsAllocator.settle(booking)


# =============================================================================
# Payout Batches
# =============================================================================


class TestPayoutBatchService:
    """Tests for PayoutBatchService."""

    def settled(self, make_booking, total_price_cents):
        booking = make_booking(total_price_cents=total_price_cents)
        EarningsAllocator.settle(booking)
        return booking

    def test_confirm_for_booking(self, make_booking):
        booking = self.settled(make_booking, 400_000)

        record = PayoutBatchService.confirm_for_booking(booking)

        assert record.status == EarningsStatus.CONFIRMED
        assert PayoutBatchService.confirm_for_booking(booking).status == EarningsStatus.CONFIRMED

    def test_confirm_for_booking_without_record(self, make_booking):
        assert PayoutBatchService.confirm_for_booking(make_booking(producer=None)) is None

    def test_available_balance_counts_confirmed_only(self, make_booking, producer):
        confirmed = self.settled(make_booking, 400_000)
        self.settled(make_booking, 200_000)  # still pending
        PayoutBatchService.confirm_for_booking(confirmed)

        assert PayoutBatchService.available_balance_cents(producer) == 280_000

    def test_close_batch(self, make_booking, producer):
        for price in (100_000, 100_000):
            PayoutBatchService.confirm_for_booking(self.settled(make_booking, price))

        result = PayoutBatchService.close_batch(producer, "BATCH-2026-05")

        assert result.success
        assert len(result.data) == 2
        assert all(r.status == EarningsStatus.PAID for r in result.data)
        assert all(r.payout_batch_reference == "BATCH-2026-05" for r in result.data)
        assert PayoutBatchService.available_balance_cents(producer) == 0

    def test_batch_amount_is_the_sum_of_paid_records(self, make_booking, producer, caplog):
        """The minimum check and logged amount use the rows the batch pays."""
        for price in (100_000, 200_000):
            PayoutBatchService.confirm_for_booking(self.settled(make_booking, price))

        # A balance read outside the batch lock is never consulted
        with patch.object(PayoutBatchService, "available_balance_cents", return_value=0):
            with caplog.at_level(logging.INFO, logger="earnings"):
                result = PayoutBatchService.close_batch(producer, "BATCH-2026-06")

        assert result.success
        paid_total = sum(r.net_amount_cents for r in result.data)
        closed = [r for r in caplog.records if r.getMessage() == "Closed payout batch"]
        assert closed[0].amount_cents == paid_total == 210_000

    def test_below_minimum(self, make_booking, producer):
        PayoutBatchService.confirm_for_booking(self.settled(make_booking, 100_000))

        result = PayoutBatchService.close_batch(producer, "BATCH-2026-05")

        assert not result.success
        assert result.error_code == "BELOW_MINIMUM_PAYOUT"
        assert EarningsRecord.objects.get().status == EarningsStatus.CONFIRMED

    def test_empty_balance(self, producer):
        result = PayoutBatchService.close_batch(producer, "BATCH-2026-05")

        assert result.error_code == "BELOW_MINIMUM_PAYOUT"

    def test_requires_reference(self, producer):
        result = PayoutBatchService.close_batch(producer, "")

        assert result.error_code == "VALIDATION_ERROR"
        assert "batch_reference" in result.errors
