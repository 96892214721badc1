"""
Tests for BookingService.

Tests cover:
- Completing a confirmed session confirms the producer's earnings
- Cancelling unpaid bookings
- Transitions refused from other states
"""

import pytest

from bookings.models import BookingStatus
from bookings.services import BookingService
from earnings.models import EarningsStatus
from earnings.services import EarningsAllocator
from payments.exceptions import InvalidStateTransitionError
from payments.tests.factories import BookingFactory


class TestCompleteBooking:
    """Tests for BookingService.complete_booking."""

    def test_completes_and_confirms_earnings(self, confirmed_booking):
        record = EarningsAllocator.settle(confirmed_booking)
        assert record.status == EarningsStatus.PENDING

        booking = BookingService.complete_booking(confirmed_booking)

        assert booking.status == BookingStatus.COMPLETED
        record.refresh_from_db()
        assert record.status == EarningsStatus.CONFIRMED
        assert record.confirmed_at is not None

    def test_completing_twice_is_a_no_op(self, confirmed_booking):
        BookingService.complete_booking(confirmed_booking)

        booking = BookingService.complete_booking(confirmed_booking)

        assert booking.status == BookingStatus.COMPLETED

    def test_booking_without_earnings(self, db):
        booking = BookingFactory(status=BookingStatus.CONFIRMED)

        assert BookingService.complete_booking(booking).status == BookingStatus.COMPLETED

    @pytest.mark.parametrize("status", [BookingStatus.PENDING, BookingStatus.CANCELLED])
    def test_refused_unless_confirmed(self, db, status):
        booking = BookingFactory(status=status)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            BookingService.complete_booking(booking)

        assert exc_info.value.details["current_state"] == status


class TestCancelBooking:
    """Tests for BookingService.cancel_booking."""

    def test_cancels_pending_booking(self, pending_booking):
        booking = BookingService.cancel_booking(pending_booking, reason="Client rescheduled")

        assert booking.status == BookingStatus.CANCELLED

    def test_cancelling_twice_is_a_no_op(self, pending_booking):
        BookingService.cancel_booking(pending_booking)

        assert BookingService.cancel_booking(pending_booking).status == BookingStatus.CANCELLED

    def test_paid_booking_cannot_be_cancelled(self, confirmed_booking):
        with pytest.raises(InvalidStateTransitionError):
            BookingService.cancel_booking(confirmed_booking)

        confirmed_booking.refresh_from_db()
        assert confirmed_booking.status == BookingStatus.CONFIRMED
