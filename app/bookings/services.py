"""
Booking lifecycle services.

Payment confirms a booking (see payments.services.ReconciliationService).
What happens after that lives here: completing the session, which makes
the producer's earnings payable, and cancelling an unpaid booking.
"""

from __future__ import annotations

from core.services import BaseService

from bookings.models import Booking, BookingStatus
from earnings.services import PayoutBatchService
from payments.exceptions import InvalidStateTransitionError
from payments.locks import transition_with_retry


class BookingService(BaseService):
    """Post-payment transitions of a Booking."""

    @classmethod
    def complete_booking(cls, booking: Booking) -> Booking:
        """
        Mark a confirmed session as held and confirm the producer's earnings.

        Completing an already completed booking is a no-op.

        Raises:
            InvalidStateTransitionError: Booking is not confirmed
        """

        def complete(b: Booking) -> bool:
            if b.status == BookingStatus.COMPLETED:
                return False
            if b.status != BookingStatus.CONFIRMED:
                raise InvalidStateTransitionError(
                    f"Cannot complete a {b.status} booking",
                    details={"booking_id": str(b.id), "current_state": b.status},
                )
            b.complete()
            return True

        with cls.atomic():
            transition_with_retry(booking, complete, action="complete_booking")
            PayoutBatchService.confirm_for_booking(booking)

        cls.get_logger().info("Booking completed", extra={"booking_id": str(booking.id)})
        return booking

    @classmethod
    def cancel_booking(cls, booking: Booking, reason: str = "") -> Booking:
        """
        Cancel a booking that has not been paid.

        Paid bookings need a refund first, which is the payout
        subsystem's job.

        Raises:
            InvalidStateTransitionError: Booking is not pending
        """

        def cancel(b: Booking) -> bool:
            if b.status == BookingStatus.CANCELLED:
                return False
            if b.status != BookingStatus.PENDING:
                raise InvalidStateTransitionError(
                    f"Cannot cancel a {b.status} booking",
                    details={"booking_id": str(b.id), "current_state": b.status},
                )
            b.cancel(reason=reason)
            return True

        transition_with_retry(booking, cancel, action="cancel_booking")
        cls.get_logger().info(
            "Booking cancelled",
            extra={"booking_id": str(booking.id), "reason": reason},
        )
        return booking
