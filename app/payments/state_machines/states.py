"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order (reconciliation workflow):
    draft → awaiting_payment → confirmed → settled        (gateway path)
    draft/awaiting_payment/failed → manual_review → confirmed → settled
    awaiting_payment → failed                           (gateway failure, timeout)
    manual_review → failed                              (claim rejected)
    failed → awaiting_payment                           (retry on the same order)
    failed → confirmed                                  (late gateway completion)
    settled → refunded

PaymentAttempt:
    initiated → awaiting_confirmation → completed
    initiated/awaiting_confirmation → failed
    failed (timeout only) → completed                   (late completion)

ManualPayment:
    pending → verified
    pending → rejected
"""

from django.db import models


class OrderState(models.TextChoices):
    """
    States for the Order reconciliation workflow.

    Terminal states: SETTLED, REFUNDED
    FAILED is recoverable (retry, manual claim, late gateway completion).
    """

    DRAFT = "draft", "Draft"
    AWAITING_PAYMENT = "awaiting_payment", "Awaiting Payment"
    MANUAL_REVIEW = "manual_review", "Manual Review"
    CONFIRMED = "confirmed", "Confirmed"
    FAILED = "failed", "Failed"
    SETTLED = "settled", "Settled"
    REFUNDED = "refunded", "Refunded"


class OrderStatus(models.TextChoices):
    """
    Customer-facing order status derived from OrderState.

    The workflow has more states than the customer needs to see; every
    workflow state maps onto exactly one of these.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


ORDER_STATE_TO_STATUS = {
    OrderState.DRAFT: OrderStatus.PENDING,
    OrderState.AWAITING_PAYMENT: OrderStatus.PENDING,
    OrderState.MANUAL_REVIEW: OrderStatus.PENDING,
    OrderState.CONFIRMED: OrderStatus.PAID,
    OrderState.SETTLED: OrderStatus.PAID,
    OrderState.FAILED: OrderStatus.FAILED,
    OrderState.REFUNDED: OrderStatus.REFUNDED,
}


class OrderPurpose(models.TextChoices):
    """What an Order pays for."""

    BEAT = "beat", "Beat License"
    BOOKING = "booking", "Studio Booking"
    OTHER = "other", "Other"


class FailureCode(models.TextChoices):
    """Machine-readable reasons recorded on failed orders."""

    GATEWAY_FAILED = "GATEWAY_FAILED", "Gateway reported failure"
    TIMEOUT = "TIMEOUT", "Gateway confirmation timed out"
    MANUAL_PAYMENT_REJECTED = "MANUAL_PAYMENT_REJECTED", "Manual payment rejected"


class PaymentAttemptStatus(models.TextChoices):
    """
    States for a single push-payment try against the gateway.

    State Flow:
        INITIATED → AWAITING_CONFIRMATION → COMPLETED
        INITIATED/AWAITING_CONFIRMATION → FAILED
    """

    INITIATED = "initiated", "Initiated"
    AWAITING_CONFIRMATION = "awaiting_confirmation", "Awaiting Confirmation"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


# Attempts that still block a new push payment for the same order.
OPEN_ATTEMPT_STATUSES = (
    PaymentAttemptStatus.INITIATED,
    PaymentAttemptStatus.AWAITING_CONFIRMATION,
)


class ManualPaymentStatus(models.TextChoices):
    """
    States for an out-of-band payment claim.

    PENDING is the only mutable state.
    """

    PENDING = "pending", "Pending"
    VERIFIED = "verified", "Verified"
    REJECTED = "rejected", "Rejected"


class ReviewDecision(models.TextChoices):
    """Decisions a reviewer can take on a manual payment."""

    VERIFY = "verify", "Verify"
    REJECT = "reject", "Reject"
