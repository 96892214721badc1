"""
Reconciliation service: the single authority over an Order's payment workflow.

Both payment paths end in the same settlement routine:

    gateway:  begin_gateway_payment -> (callback) -> poll_gateway_outcome
    manual:   submit_manual_payment -> review_manual_payment

    settlement:  Order -> CONFIRMED (with its cause)
                 Booking -> confirmed
                 EarningsAllocator.settle(booking)
                 Order -> SETTLED

Every row write is a conditional update through transition_with_retry(),
so a lost race is re-decided against a fresh read instead of overwriting
the winner. Settlement is first-writer-wins: a second cause arriving for an
already confirmed order is logged as DuplicateSettlementAttempt and ignored.
A confirmed order whose remaining steps were interrupted is resumed by
repeating the call with the same cause.

Usage:
    from payments.services import BookingDetails, ReconciliationService

    intent = ReconciliationService.create_intent(
        payer=user,
        purpose=OrderPurpose.BOOKING,
        amount_cents=400_000,
        booking=BookingDetails(
            session_type=SessionType.RECORDING,
            session_date=date(2026, 5, 1),
            start_time=time(14, 0),
            duration_hours=2,
            producer=producer,
        ),
    )
    attempt = ReconciliationService.begin_gateway_payment(intent.order.id, "0712345678")
    outcome = ReconciliationService.poll_gateway_outcome(attempt.correlation_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from bookings.models import Booking, BookingStatus, SessionType
from earnings.services import EarningsAllocator
from payments.adapters import MpesaAdapter, StkPushParams
from payments.exceptions import (
    AlreadyReviewedError,
    ConcurrentAttemptExistsError,
    GatewayError,
    InvalidAmountError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
    PaymentValidationError,
    ReviewerNotAuthorizedError,
    UnsupportedCurrencyError,
)
from payments.locks import transition_with_retry
from payments.models import ManualPayment, Order, PaymentAttempt, normalize_reference_code
from payments.signals import (
    emit,
    manual_payment_reviewed,
    manual_payment_submitted,
    order_confirmed,
    order_failed,
    order_settled,
)
from payments.state_machines import (
    OPEN_ATTEMPT_STATUSES,
    FailureCode,
    OrderPurpose,
    OrderState,
    PaymentAttemptStatus,
    ReviewDecision,
)

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from earnings.models import EarningsRecord


# Orders that may start a push payment or accept a manual claim.
PAYABLE_STATES = (OrderState.DRAFT, OrderState.AWAITING_PAYMENT, OrderState.FAILED)
# Orders that already have their settlement cause.
PAID_STATES = (OrderState.CONFIRMED, OrderState.SETTLED, OrderState.REFUNDED)

REFERENCE_CODE_MAX_LENGTH = 64


# =============================================================================
# Parameter & Result Types
# =============================================================================


@dataclass
class BookingDetails:
    """
    Session details for a booking order.

    Attributes:
        session_type: SessionType value
        session_date: Day of the session
        start_time: Local start time
        duration_hours: Length of the session, at least 1
        producer: Producer running the session, if assigned
        notes: Free-text notes from the client
    """

    session_type: str
    session_date: date
    start_time: time
    duration_hours: int
    producer: AbstractBaseUser | None = None
    notes: str = ""

    @property
    def starts_at(self) -> datetime:
        return timezone.make_aware(
            datetime.combine(self.session_date, self.start_time),
            timezone.get_current_timezone(),
        )


@dataclass
class IntentResult:
    """A freshly created Order and, for booking purchases, its Booking."""

    order: Order
    booking: Booking | None = None


@dataclass
class GatewayOutcome:
    """
    What a poll observed for one push payment.

    Attributes:
        attempt: The PaymentAttempt polled
        order: Its Order after any transition this poll applied
        status: Attempt status as read from the ledger
    """

    attempt: PaymentAttempt
    order: Order
    status: str

    @property
    def is_terminal(self) -> bool:
        return self.status in (PaymentAttemptStatus.COMPLETED, PaymentAttemptStatus.FAILED)

    @property
    def failure_reason(self) -> str:
        """Human-readable reason to show when the push payment did not go through."""
        if self.status != PaymentAttemptStatus.FAILED:
            return ""
        return self.attempt.result_description or self.order.failure_reason


@dataclass(frozen=True)
class ReviewerCapability:
    """
    Authorization claim for reviewing manual payments.

    Built by the calling context (view, admin action, task); the service
    only checks the claim and never re-queries roles itself.
    """

    reviewer: AbstractBaseUser
    can_verify_payments: bool = False

    @classmethod
    def for_user(cls, user) -> ReviewerCapability:
        allowed = bool(
            user is not None
            and user.is_active
            and (user.is_superuser or user.has_perm("payments.review_manualpayment"))
        )
        return cls(reviewer=user, can_verify_payments=allowed)


@dataclass
class SettlementResult:
    """Bookkeeping of one pass through the settlement routine."""

    order: Order
    confirmed: bool = False
    settled: bool = False
    duplicate: bool = False
    booking: Booking | None = None
    earnings_record: EarningsRecord | None = None


# =============================================================================
# Reconciliation Service
# =============================================================================


class ReconciliationService(BaseService):
    """
    Drives Orders (and their Bookings) from intake to settlement.

    All methods are class methods. Events are emitted after the writes
    that caused them have been committed.
    """

    # =========================================================================
    # Intake
    # =========================================================================

    @classmethod
    def create_intent(
        cls,
        payer,
        purpose: str,
        amount_cents: int,
        currency: str = "KES",
        booking: BookingDetails | None = None,
    ) -> IntentResult:
        """
        Create a DRAFT Order and, for a booking, its pending Booking.

        Raises:
            InvalidAmountError: amount_cents is not positive
            UnsupportedCurrencyError: Currency not accepted
            PaymentValidationError: Unknown purpose or bad booking details
        """
        currency = cls._validate_money(amount_cents, currency)

        if purpose not in OrderPurpose.values:
            raise PaymentValidationError(
                f"Unknown order purpose: {purpose}",
                details={"purpose": purpose},
            )
        if purpose == OrderPurpose.BOOKING:
            cls._validate_booking_details(booking)
        elif booking is not None:
            raise PaymentValidationError(
                "Booking details are only accepted for booking orders",
                details={"purpose": purpose},
            )

        with cls.atomic():
            order = Order.objects.create(
                payer=payer,
                amount_cents=amount_cents,
                currency=currency,
                purpose=purpose,
            )
            booking_obj = None
            if booking is not None:
                booking_obj = Booking.objects.create(
                    client=payer,
                    producer=booking.producer,
                    order=order,
                    session_type=booking.session_type,
                    session_date=booking.session_date,
                    start_time=booking.start_time,
                    duration_hours=booking.duration_hours,
                    total_price_cents=amount_cents,
                    notes=booking.notes or "",
                )

        cls.get_logger().info(
            "Created payment intent",
            extra={
                "order_id": str(order.id),
                "purpose": purpose,
                "amount_cents": amount_cents,
                "currency": currency,
                "booking_id": str(booking_obj.id) if booking_obj else None,
            },
        )
        return IntentResult(order=order, booking=booking_obj)

    # =========================================================================
    # Gateway Path
    # =========================================================================

    @classmethod
    def begin_gateway_payment(cls, order_id, phone_number: str) -> PaymentAttempt:
        """
        Send a push payment for an Order.

        A FAILED order may be retried; the retry reuses the same Order.

        Returns:
            The PaymentAttempt, awaiting confirmation, with its correlation id

        Raises:
            PaymentNotFoundError: Unknown order
            InvalidStateTransitionError: Order is not payable
            InvalidPhoneNumberError: Phone cannot be normalized
            ConcurrentAttemptExistsError: Another attempt is still open
            GatewayError: The gateway did not accept the push (attempt FAILED)
        """
        logger = cls.get_logger()
        order = cls._get_order(order_id)
        cls._require_state(order, PAYABLE_STATES, action="begin_gateway_payment")

        phone = MpesaAdapter.normalize_phone_number(phone_number)

        if order.payment_attempts.filter(status__in=OPEN_ATTEMPT_STATUSES).exists():
            raise ConcurrentAttemptExistsError(
                "A push payment is already in progress for this order",
                details={"order_id": str(order.id)},
            )

        try:
            with transaction.atomic():
                attempt = PaymentAttempt.objects.create(
                    order=order,
                    amount_cents=order.amount_cents,
                    currency=order.currency,
                    phone_number=phone,
                )
        except IntegrityError as e:
            # The partial unique index caught a concurrent attempt.
            raise ConcurrentAttemptExistsError(
                "A push payment is already in progress for this order",
                details={"order_id": str(order.id)},
            ) from e

        try:
            result = MpesaAdapter.initiate(
                StkPushParams(
                    amount_cents=order.amount_cents,
                    phone_number=phone,
                    reference=order.id.hex[:12].upper(),
                    description=OrderPurpose(order.purpose).label,
                ),
                trace_id=str(attempt.id),
            )
        except GatewayError as e:
            attempt.fail(
                result_code=e.gateway_code or e.error_code,
                result_description=e.message,
            )
            attempt.save()
            logger.warning(
                "Push payment not accepted by gateway",
                extra={
                    "order_id": str(order.id),
                    "attempt_id": str(attempt.id),
                    "error_code": e.error_code,
                    "retryable": e.is_retryable,
                },
            )
            raise
        except Exception as e:
            # Never leave an open attempt behind; it would block every retry.
            attempt.fail(result_code="ERROR", result_description=str(e))
            attempt.save()
            logger.error(
                "Unexpected error while sending push payment",
                extra={"order_id": str(order.id), "attempt_id": str(attempt.id)},
                exc_info=True,
            )
            raise

        attempt.mark_awaiting_confirmation(
            correlation_id=result.correlation_id,
            merchant_request_id=result.merchant_request_id,
            customer_message=result.customer_message,
        )
        attempt.save()

        def await_payment(o: Order) -> bool:
            if o.state not in PAYABLE_STATES:
                # A manual claim or a late completion moved the order meanwhile.
                logger.warning(
                    "Order left payable state while the push was in flight",
                    extra={"order_id": str(o.id), "state": o.state},
                )
                return False
            o.await_payment()
            return True

        transition_with_retry(order, await_payment, action="begin_gateway_payment")

        logger.info(
            "Push payment awaiting confirmation",
            extra={
                "order_id": str(order.id),
                "attempt_id": str(attempt.id),
                "correlation_id": attempt.correlation_id,
            },
        )
        return attempt

    @classmethod
    def poll_gateway_outcome(cls, correlation_id: str) -> GatewayOutcome:
        """
        Apply whatever the ledger says about a push payment.

        completed -> order settled through the attempt
        failed    -> order FAILED (only while it is awaiting this payment)
        otherwise -> nothing changes

        Safe to call any number of times.

        Raises:
            PaymentNotFoundError: Unknown correlation id
        """
        attempt = (
            PaymentAttempt.objects.select_related("order")
            .filter(correlation_id=correlation_id)
            .first()
        )
        if attempt is None:
            raise PaymentNotFoundError(
                "No push payment matches this correlation id",
                details={"correlation_id": correlation_id},
            )

        status = MpesaAdapter.check_status(correlation_id)
        order = attempt.order

        if status == PaymentAttemptStatus.COMPLETED:
            settlement = cls._settle(order, attempt=attempt)
            cls._emit_settlement(settlement, source="gateway")
            order = settlement.order

        elif status == PaymentAttemptStatus.FAILED and not attempt.expired_by_timeout:
            superseded = (
                order.payment_attempts.filter(status__in=OPEN_ATTEMPT_STATUSES)
                .exclude(pk=attempt.pk)
                .exists()
            )
            if not superseded:
                reason = attempt.result_description or "The payment was not completed"
                if cls._fail_order(
                    order,
                    FailureCode.GATEWAY_FAILED,
                    reason,
                    from_states=(OrderState.AWAITING_PAYMENT,),
                ):
                    emit(
                        order_failed,
                        sender=cls,
                        order=order,
                        failure_code=FailureCode.GATEWAY_FAILED,
                        reason=reason,
                    )

        return GatewayOutcome(attempt=attempt, order=order, status=status)

    @classmethod
    def timeout_gateway_payment(cls, order_id) -> Order:
        """
        Stop waiting for a push payment.

        If the order is still AWAITING_PAYMENT its open attempts expire and
        the order fails with TIMEOUT. The gateway may still complete the
        charge later; poll_gateway_outcome() then settles the order. Any
        other state is left as is.

        Raises:
            PaymentNotFoundError: Unknown order
        """
        logger = cls.get_logger()
        order = cls._get_order(order_id)

        if order.state != OrderState.AWAITING_PAYMENT:
            logger.debug(
                "Timeout ignored, order is not awaiting payment",
                extra={"order_id": str(order.id), "state": order.state},
            )
            return order

        cls._expire_open_attempts(order)

        completed = (
            order.payment_attempts.filter(status=PaymentAttemptStatus.COMPLETED)
            .order_by("-completed_at")
            .first()
        )
        if completed is not None:
            # The callback landed before anyone polled it.
            settlement = cls._settle(order, attempt=completed)
            cls._emit_settlement(settlement, source="gateway")
            return settlement.order

        reason = "No payment confirmation was received in time"
        if cls._fail_order(
            order,
            FailureCode.TIMEOUT,
            reason,
            from_states=(OrderState.AWAITING_PAYMENT,),
        ):
            logger.info("Push payment timed out", extra={"order_id": str(order.id)})
            emit(order_failed, sender=cls, order=order, failure_code=FailureCode.TIMEOUT, reason=reason)
        return order

    @classmethod
    def record_gateway_callback(cls, payload: dict[str, Any]) -> PaymentAttempt | None:
        """
        Write a gateway callback onto its PaymentAttempt.

        Only the attempt changes; the Order moves on the next poll. A
        completion is accepted after a local timeout expiry.

        Returns:
            The attempt, or None when the correlation id is unknown

        Raises:
            PaymentValidationError: Malformed payload
        """
        logger = cls.get_logger()
        callback = MpesaAdapter.parse_callback(payload)

        attempt = PaymentAttempt.objects.filter(correlation_id=callback.correlation_id).first()
        if attempt is None:
            logger.warning(
                "Callback for unknown correlation id",
                extra={"correlation_id": callback.correlation_id},
            )
            return None

        def apply(a: PaymentAttempt) -> bool:
            if callback.succeeded:
                if a.status == PaymentAttemptStatus.COMPLETED:
                    return False
                if a.status == PaymentAttemptStatus.FAILED and not a.expired_by_timeout:
                    logger.warning(
                        "Completion received for a rejected attempt",
                        extra={"attempt_id": str(a.id), "correlation_id": a.correlation_id},
                    )
                    return False
                a.complete(
                    receipt_number=callback.receipt_number,
                    result_description=callback.result_description,
                )
                if callback.amount_cents is not None and callback.amount_cents != a.amount_cents:
                    a.set_meta("paid_amount_cents", callback.amount_cents)
                    logger.warning(
                        "Gateway reported a different amount than requested",
                        extra={
                            "attempt_id": str(a.id),
                            "requested_cents": a.amount_cents,
                            "paid_cents": callback.amount_cents,
                        },
                    )
                return True

            if not a.is_open:
                return False
            a.fail(
                result_code=str(callback.result_code),
                result_description=callback.result_description,
            )
            return True

        transition_with_retry(attempt, apply, action="gateway_callback")

        logger.info(
            "Recorded gateway callback",
            extra={
                "attempt_id": str(attempt.id),
                "correlation_id": attempt.correlation_id,
                "result_code": callback.result_code,
                "status": attempt.status,
            },
        )
        return attempt

    # =========================================================================
    # Manual Path
    # =========================================================================

    @classmethod
    def submit_manual_payment(
        cls,
        claimant,
        amount_cents: int,
        reference_code: str,
        order_id=None,
        proof_url: str | None = None,
        proof_file_name: str | None = None,
        currency: str = "KES",
    ) -> ManualPayment:
        """
        Record an out-of-band payment claim.

        The claim starts PENDING and its Order (if any) moves to
        MANUAL_REVIEW; open push attempts on it expire as timed out. A
        reference code that was used before is flagged for
        the reviewer, not rejected.

        Raises:
            InvalidAmountError / UnsupportedCurrencyError / PaymentValidationError
            PaymentNotFoundError: Unknown order
            PermissionDeniedError: Claimant is not the order's payer
            InvalidStateTransitionError: Order cannot take a manual claim
        """
        logger = cls.get_logger()
        currency = cls._validate_money(amount_cents, currency)

        reference = normalize_reference_code(reference_code)
        if not reference:
            raise PaymentValidationError(
                "Transaction reference is required",
                details={"reference_code": ["This field is required."]},
            )
        if len(reference) > REFERENCE_CODE_MAX_LENGTH:
            raise PaymentValidationError(
                f"Transaction reference must be at most {REFERENCE_CODE_MAX_LENGTH} characters",
                details={"reference_code": reference},
            )

        order = None
        if order_id is not None:
            order = cls._get_order(order_id)
            if order.payer_id != claimant.pk:
                raise PermissionDeniedError(
                    "Only the payer can submit a payment for this order",
                    details={"order_id": str(order.id)},
                )
            cls._require_state(order, PAYABLE_STATES, action="submit_manual_payment")

        is_duplicate = ManualPayment.objects.filter(reference_code=reference).exists()
        if is_duplicate:
            logger.warning(
                "Manual payment reuses a known reference code",
                extra={"reference_code": reference, "claimant_id": str(claimant.pk)},
            )

        def submit_for_review(o: Order) -> bool:
            cls._require_state(o, PAYABLE_STATES, action="submit_manual_payment")
            o.submit_for_review()
            return True

        with cls.atomic():
            record = ManualPayment.objects.create(
                order=order,
                claimant=claimant,
                amount_cents=amount_cents,
                currency=currency,
                reference_code=reference,
                proof_url=proof_url or "",
                proof_file_name=proof_file_name or "",
                is_duplicate_reference=is_duplicate,
            )
            if order is not None:
                transition_with_retry(order, submit_for_review, action="submit_manual_payment")
                # The customer stopped waiting for the push; a late completion
                # is still accepted.
                expired = cls._expire_open_attempts(order)
                if expired:
                    logger.info(
                        "Expired open push attempts for manual claim",
                        extra={"order_id": str(order.id), "expired_attempts": expired},
                    )

        logger.info(
            "Manual payment submitted",
            extra={
                "manual_payment_id": str(record.id),
                "order_id": str(order.id) if order else None,
                "amount_cents": amount_cents,
                "has_proof": bool(record.proof_url),
            },
        )
        emit(manual_payment_submitted, sender=cls, manual_payment=record)
        return record

    @classmethod
    def review_manual_payment(
        cls,
        record_id,
        capability: ReviewerCapability | None,
        decision: str,
        notes: str | None = None,
    ) -> ManualPayment:
        """
        Verify or reject a pending manual payment.

        verify -> record VERIFIED, linked order settled through the record
        reject -> record REJECTED, linked order FAILED with the notes as
                  reason

        Raises:
            ReviewerNotAuthorizedError: Capability does not allow review
            PaymentValidationError: Unknown decision or rejection without notes
            PaymentNotFoundError: Unknown record
            AlreadyReviewedError: Record is no longer pending
        """
        logger = cls.get_logger()

        if capability is None or not capability.can_verify_payments:
            raise ReviewerNotAuthorizedError("You are not allowed to review payments")
        if decision not in ReviewDecision.values:
            raise PaymentValidationError(
                f"Unknown review decision: {decision}",
                details={"decision": decision},
            )
        notes = (notes or "").strip()
        if decision == ReviewDecision.REJECT and not notes:
            raise PaymentValidationError(
                "Rejection notes are required",
                error_code="REJECTION_NOTES_REQUIRED",
                details={"notes": ["This field is required when rejecting."]},
            )

        try:
            record = ManualPayment.objects.select_related("order").filter(pk=record_id).first()
        except (ValueError, DjangoValidationError):
            record = None
        if record is None:
            raise PaymentNotFoundError(
                "Manual payment not found",
                details={"manual_payment_id": str(record_id)},
            )

        def review(r: ManualPayment) -> bool:
            if not r.is_pending:
                raise AlreadyReviewedError(
                    "This payment has already been reviewed",
                    details={"manual_payment_id": str(r.id), "status": r.status},
                )
            if decision == ReviewDecision.VERIFY:
                r.verify(capability.reviewer, notes)
            else:
                r.reject(capability.reviewer, notes)
            return True

        settlement = None
        failed = False
        try:
            with cls.atomic():
                transition_with_retry(record, review, action="review_manual_payment")
                order = record.order
                if order is not None and decision == ReviewDecision.VERIFY:
                    settlement = cls._settle(order, manual_payment=record)
                elif order is not None:
                    failed = cls._fail_order(
                        order,
                        FailureCode.MANUAL_PAYMENT_REJECTED,
                        notes,
                        from_states=(OrderState.MANUAL_REVIEW,),
                    )
        except AlreadyReviewedError:
            logger.warning(
                "Manual payment was already reviewed",
                extra={
                    "event": "AlreadyReviewed",
                    "manual_payment_id": str(record.id),
                    "reviewer_id": str(capability.reviewer.pk),
                },
            )
            raise

        logger.info(
            "Manual payment reviewed",
            extra={
                "manual_payment_id": str(record.id),
                "decision": decision,
                "reviewer_id": str(capability.reviewer.pk),
                "order_id": str(record.order_id) if record.order_id else None,
            },
        )
        emit(manual_payment_reviewed, sender=cls, manual_payment=record, decision=decision)
        if settlement is not None:
            cls._emit_settlement(settlement, source="manual")
        if failed:
            emit(
                order_failed,
                sender=cls,
                order=record.order,
                failure_code=FailureCode.MANUAL_PAYMENT_REJECTED,
                reason=notes,
            )
        return record

    # =========================================================================
    # Settlement
    # =========================================================================

    @classmethod
    def _settle(
        cls,
        order: Order,
        attempt: PaymentAttempt | None = None,
        manual_payment: ManualPayment | None = None,
    ) -> SettlementResult:
        """
        Confirm an order with its cause and finish settlement.

        First writer wins: an order already paid through another cause is
        left untouched. A CONFIRMED order with the same cause resumes the
        remaining steps.
        """
        logger = cls.get_logger()
        cause = {"attempt": attempt} if attempt is not None else {"manual_payment": manual_payment}
        result = SettlementResult(order=order)

        def confirm(o: Order) -> bool:
            result.duplicate = False
            if o.state in PAID_STATES:
                if not o.has_settlement_cause(**cause):
                    result.duplicate = True
                return False
            cls._require_state(
                o,
                (OrderState.AWAITING_PAYMENT, OrderState.MANUAL_REVIEW, OrderState.FAILED),
                action="confirm",
            )
            o.confirm(**cause)
            return True

        with cls.atomic():
            before = order.state
            transition_with_retry(order, confirm, action="confirm")
            result.confirmed = before not in PAID_STATES and order.state == OrderState.CONFIRMED

            if result.duplicate:
                logger.warning(
                    "Order already paid through another cause, ignoring",
                    extra={
                        "event": "DuplicateSettlementAttempt",
                        "order_id": str(order.id),
                        "state": order.state,
                        "settlement_source": order.settlement_source,
                        "attempt_id": str(attempt.id) if attempt else None,
                        "manual_payment_id": str(manual_payment.id) if manual_payment else None,
                    },
                )
                return result

            if order.state != OrderState.CONFIRMED:
                return result

            result.booking = Booking.objects.filter(order=order).first()
            if result.booking is not None:
                cls._confirm_booking(result.booking)
                result.earnings_record = EarningsAllocator.settle(result.booking)

            def settle(o: Order) -> bool:
                if o.state != OrderState.CONFIRMED:
                    return False
                o.settle()
                return True

            transition_with_retry(order, settle, action="settle")
            result.settled = order.state == OrderState.SETTLED

        logger.info(
            "Order settled",
            extra={
                "order_id": str(order.id),
                "settlement_source": order.settlement_source,
                "booking_id": str(result.booking.id) if result.booking else None,
                "earnings_record_id": (
                    str(result.earnings_record.id) if result.earnings_record else None
                ),
            },
        )
        return result

    @classmethod
    def _confirm_booking(cls, booking: Booking) -> None:
        def confirm(b: Booking) -> bool:
            if b.status != BookingStatus.PENDING:
                if b.status == BookingStatus.CANCELLED:
                    cls.get_logger().warning(
                        "Paid order belongs to a cancelled booking",
                        extra={"booking_id": str(b.id), "order_id": str(b.order_id)},
                    )
                return False
            b.confirm()
            return True

        transition_with_retry(booking, confirm, action="confirm_booking")

    @classmethod
    def _emit_settlement(cls, settlement: SettlementResult, source: str) -> None:
        if settlement.confirmed:
            emit(order_confirmed, sender=cls, order=settlement.order, source=source)
        if settlement.settled:
            emit(
                order_settled,
                sender=cls,
                order=settlement.order,
                booking=settlement.booking,
                earnings_record=settlement.earnings_record,
            )

    @classmethod
    def _fail_order(cls, order: Order, code: str, reason: str, from_states) -> bool:
        """Fail the order if it is still in one of from_states. Returns True if it changed."""
        changed = False

        def fail(o: Order) -> bool:
            nonlocal changed
            changed = False
            if o.state not in from_states:
                return False
            o.fail(code=code, reason=reason)
            changed = True
            return True

        transition_with_retry(order, fail, action=f"fail:{code}")
        if changed:
            cls.get_logger().info(
                "Order failed",
                extra={"order_id": str(order.id), "failure_code": code},
            )
        return changed

    @classmethod
    def _expire_open_attempts(cls, order: Order) -> int:
        """Expire the order's open push attempts with TIMEOUT. Returns how many changed."""
        expired = 0

        def expire(a: PaymentAttempt) -> bool:
            if not a.is_open:
                return False
            a.expire()
            return True

        for attempt in order.payment_attempts.filter(status__in=OPEN_ATTEMPT_STATUSES):
            transition_with_retry(attempt, expire, action="expire_attempt")
            if attempt.expired_by_timeout:
                expired += 1
        return expired

    # =========================================================================
    # Validation Helpers
    # =========================================================================

    @classmethod
    def _get_order(cls, order_id) -> Order:
        try:
            order = Order.objects.filter(pk=order_id).first()
        except (ValueError, DjangoValidationError):
            order = None
        if order is None:
            raise PaymentNotFoundError(
                "Order not found",
                details={"order_id": str(order_id)},
            )
        return order

    @staticmethod
    def _require_state(order: Order, allowed, action: str) -> None:
        if order.state not in allowed:
            raise InvalidStateTransitionError(
                f"Cannot {action.replace('_', ' ')} for an order in state {order.state}",
                details={"order_id": str(order.id), "current_state": order.state, "action": action},
            )

    @staticmethod
    def _validate_money(amount_cents, currency: str) -> str:
        """Check amount and currency; return the normalized currency code."""
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise InvalidAmountError(
                "Amount must be a positive whole number of cents",
                details={"amount_cents": amount_cents},
            )
        code = (currency or "").strip().upper()
        supported = [c.upper() for c in getattr(settings, "PAYMENT_SUPPORTED_CURRENCIES", ["KES"])]
        if code not in supported:
            raise UnsupportedCurrencyError(
                f"Currency {currency!r} is not supported",
                details={"currency": currency, "supported": supported},
            )
        return code

    @staticmethod
    def _validate_booking_details(details: BookingDetails | None) -> None:
        if details is None:
            raise PaymentValidationError(
                "Booking details are required for booking orders",
                details={"booking": ["This field is required."]},
            )
        errors = {}
        if details.session_type not in SessionType.values:
            errors["session_type"] = [f"Unknown session type: {details.session_type}"]
        if not details.duration_hours or details.duration_hours <= 0:
            errors["duration_hours"] = ["Duration must be at least one hour."]
        if details.session_date is None or details.start_time is None:
            errors["session_date"] = ["Session date and start time are required."]
        elif details.starts_at <= timezone.now():
            errors["session_date"] = ["Session must start in the future."]
        if errors:
            raise PaymentValidationError("Invalid booking details", details=errors)
