"""
Tests for payment model state machines.

Covers the django-fsm transitions of Order, PaymentAttempt and
ManualPayment: allowed sources, side effects on timestamps and failure
fields, and rejected transitions.
"""

import pytest
from django_fsm import TransitionNotAllowed

from payments.state_machines import (
    FailureCode,
    ManualPaymentStatus,
    OrderState,
    OrderStatus,
    PaymentAttemptStatus,
)
from payments.tests.factories import (
    ManualPaymentFactory,
    OrderFactory,
    PaymentAttemptFactory,
)


class TestOrderTransitions:
    """Tests for Order state transitions."""

    def test_await_payment_from_draft(self, db):
        """DRAFT -> AWAITING_PAYMENT records when waiting started."""
        order = OrderFactory()

        order.await_payment()
        order.save()

        order.refresh_from_db()
        assert order.state == OrderState.AWAITING_PAYMENT
        assert order.awaiting_payment_at is not None
        assert order.status == OrderStatus.PENDING

    def test_retry_from_failed_clears_failure(self, db):
        """A retry on a FAILED order wipes the previous failure."""
        order = OrderFactory(
            state=OrderState.FAILED,
            failure_code=FailureCode.GATEWAY_FAILED,
            failure_reason="Request cancelled by user",
        )

        order.await_payment()
        order.save()

        assert order.state == OrderState.AWAITING_PAYMENT
        assert order.failure_code == ""
        assert order.failure_reason == ""

    def test_submit_for_review_from_failed(self, db):
        """A failed push payment can fall back to the manual path."""
        order = OrderFactory(state=OrderState.FAILED, failure_code=FailureCode.TIMEOUT)

        order.submit_for_review()
        order.save()

        assert order.state == OrderState.MANUAL_REVIEW
        assert order.failure_code == ""

    def test_confirm_requires_exactly_one_cause(self, db):
        """Confirming with no cause or both causes is refused."""
        order = OrderFactory(state=OrderState.AWAITING_PAYMENT)
        attempt = PaymentAttemptFactory(order=order, status=PaymentAttemptStatus.COMPLETED)
        claim = ManualPaymentFactory(order=order)

        with pytest.raises(ValueError):
            order.confirm()
        with pytest.raises(ValueError):
            order.confirm(attempt=attempt, manual_payment=claim)

    def test_confirm_records_gateway_cause(self, db):
        """Confirmation stores the attempt as the settlement cause."""
        order = OrderFactory(state=OrderState.AWAITING_PAYMENT)
        attempt = PaymentAttemptFactory(order=order, status=PaymentAttemptStatus.COMPLETED)

        order.confirm(attempt=attempt)
        order.save()

        order.refresh_from_db()
        assert order.state == OrderState.CONFIRMED
        assert order.status == OrderStatus.PAID
        assert order.settlement_source == "gateway"
        assert order.confirmed_at is not None

    def test_late_completion_confirms_failed_order(self, db):
        """FAILED -> CONFIRMED is allowed for a late gateway completion."""
        order = OrderFactory(state=OrderState.FAILED, failure_code=FailureCode.TIMEOUT)
        attempt = PaymentAttemptFactory(order=order, status=PaymentAttemptStatus.COMPLETED)

        order.confirm(attempt=attempt)

        assert order.state == OrderState.CONFIRMED
        assert order.failure_code == ""

    def test_fail_records_code_and_reason(self, db):
        """AWAITING_PAYMENT -> FAILED stores why."""
        order = OrderFactory(state=OrderState.AWAITING_PAYMENT)

        order.fail(code=FailureCode.TIMEOUT, reason="No confirmation")

        assert order.state == OrderState.FAILED
        assert order.status == OrderStatus.FAILED
        assert order.failure_code == FailureCode.TIMEOUT
        assert order.failure_reason == "No confirmation"
        assert order.failed_at is not None

    def test_settle_then_refund(self, db):
        """CONFIRMED -> SETTLED -> REFUNDED."""
        order = OrderFactory(state=OrderState.CONFIRMED)

        order.settle()
        assert order.state == OrderState.SETTLED
        assert order.settled_at is not None

        order.refund(reason="Session cancelled by studio")
        assert order.state == OrderState.REFUNDED
        assert order.status == OrderStatus.REFUNDED
        assert order.get_meta("refund_reason") == "Session cancelled by studio"

    @pytest.mark.parametrize(
        "state",
        [OrderState.CONFIRMED, OrderState.SETTLED, OrderState.REFUNDED],
    )
    def test_paid_orders_cannot_fail(self, db, state):
        """A paid order never goes back to FAILED."""
        order = OrderFactory(state=state)

        with pytest.raises(TransitionNotAllowed):
            order.fail(code=FailureCode.GATEWAY_FAILED)

    def test_draft_cannot_settle(self, db):
        """Settlement requires confirmation first."""
        order = OrderFactory()

        with pytest.raises(TransitionNotAllowed):
            order.settle()

    def test_settled_cannot_take_manual_claim(self, db):
        """SETTLED orders do not go back to review."""
        order = OrderFactory(state=OrderState.SETTLED)

        with pytest.raises(TransitionNotAllowed):
            order.submit_for_review()


class TestPaymentAttemptTransitions:
    """Tests for PaymentAttempt state transitions."""

    def test_mark_awaiting_confirmation_stores_ids(self, db):
        """The gateway's ids and customer message are kept."""
        attempt = PaymentAttemptFactory(
            status=PaymentAttemptStatus.INITIATED,
            correlation_id=None,
        )

        attempt.mark_awaiting_confirmation(
            correlation_id="ws_CO_123",
            merchant_request_id="29115-1-1",
            customer_message="Success. Request accepted for processing",
        )
        attempt.save()

        attempt.refresh_from_db()
        assert attempt.status == PaymentAttemptStatus.AWAITING_CONFIRMATION
        assert attempt.correlation_id == "ws_CO_123"
        assert attempt.get_meta("customer_message") == "Success. Request accepted for processing"

    def test_complete_records_receipt(self, db):
        """Completion stores the receipt and a zero result code."""
        attempt = PaymentAttemptFactory()

        attempt.complete(receipt_number="QKA1B2C3D4", result_description="Processed")

        assert attempt.status == PaymentAttemptStatus.COMPLETED
        assert attempt.result_code == "0"
        assert attempt.receipt_number == "QKA1B2C3D4"
        assert attempt.completed_at is not None

    def test_expire_marks_timeout(self, db):
        """expire() fails the attempt with the TIMEOUT result code."""
        attempt = PaymentAttemptFactory()

        attempt.expire()

        assert attempt.status == PaymentAttemptStatus.FAILED
        assert attempt.result_code == FailureCode.TIMEOUT
        assert attempt.expired_by_timeout is True
        assert attempt.is_open is False

    def test_expired_attempt_can_still_complete(self, db):
        """A locally timed-out attempt accepts a late completion."""
        attempt = PaymentAttemptFactory()
        attempt.expire()

        attempt.complete(receipt_number="QKLATE0001")

        assert attempt.status == PaymentAttemptStatus.COMPLETED

    def test_rejected_attempt_cannot_complete(self, db):
        """An attempt the gateway rejected stays failed."""
        attempt = PaymentAttemptFactory()
        attempt.fail(result_code="1032", result_description="Request cancelled by user")

        with pytest.raises(TransitionNotAllowed):
            attempt.complete(receipt_number="QKNOPE0001")

    def test_completed_attempt_cannot_fail(self, db):
        """COMPLETED is terminal."""
        attempt = PaymentAttemptFactory(status=PaymentAttemptStatus.COMPLETED)

        with pytest.raises(TransitionNotAllowed):
            attempt.fail(result_code="1")


class TestManualPaymentTransitions:
    """Tests for ManualPayment state transitions."""

    def test_verify_records_reviewer(self, db, reviewer):
        """PENDING -> VERIFIED stamps the reviewer and time."""
        claim = ManualPaymentFactory()

        claim.verify(reviewer, notes="Matched Paybill statement")
        claim.save()

        claim.refresh_from_db()
        assert claim.status == ManualPaymentStatus.VERIFIED
        assert claim.reviewed_by == reviewer
        assert claim.reviewed_at is not None
        assert claim.admin_notes == "Matched Paybill statement"

    def test_reject_requires_notes(self, db, reviewer):
        """Rejection without notes is refused before any change."""
        claim = ManualPaymentFactory()

        with pytest.raises(ValueError):
            claim.reject(reviewer, notes="   ")

        assert claim.status == ManualPaymentStatus.PENDING

    def test_reviewed_claim_is_final(self, db, reviewer):
        """A verified claim cannot be rejected afterwards."""
        claim = ManualPaymentFactory()
        claim.verify(reviewer)

        with pytest.raises(TransitionNotAllowed):
            claim.reject(reviewer, notes="Changed my mind")
