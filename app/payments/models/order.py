"""
Order model: the monetary intent driven through the reconciliation workflow.

An Order is created in DRAFT for a beat license, a studio booking or any
other purchase. It is paid either through a mobile-money push payment
(PaymentAttempt) or a manually verified transfer (ManualPayment). Exactly
one of the two is recorded as the settlement cause.

Usage:
    from payments.models import Order
    from payments.state_machines import OrderPurpose

    order = Order.objects.create(
        payer=user,
        amount_cents=400_000,
        purpose=OrderPurpose.BOOKING,
    )

    order.await_payment()   # draft -> awaiting_payment
    order.save()            # conditional UPDATE ... WHERE state = 'draft'
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    ORDER_STATE_TO_STATUS,
    OrderPurpose,
    OrderState,
    OrderStatus,
)


class Order(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Central payment entity tracking an order from intake to settlement.

    Uses django-fsm for state machine management. ConcurrentTransitionMixin
    turns every save into a compare-and-swap on the state read from the
    database, so two workers racing on the same order cannot both win.

    State Flow (gateway path):
        DRAFT -> AWAITING_PAYMENT -> CONFIRMED -> SETTLED

    State Flow (manual path):
        DRAFT/AWAITING_PAYMENT/FAILED -> MANUAL_REVIEW -> CONFIRMED -> SETTLED

    Failure & Recovery:
        AWAITING_PAYMENT/MANUAL_REVIEW -> FAILED
        FAILED -> AWAITING_PAYMENT (retry), FAILED -> CONFIRMED (late completion)

    Fields:
        payer: User paying for the order
        amount_cents: Amount in smallest currency unit
        currency: ISO 4217 currency code (upper-case)
        purpose: What the order pays for
        state: Current workflow state
        failure_code/failure_reason: Why the order last failed
        settled_attempt/settled_manual_payment: The single settlement cause
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="User paying for the order",
    )

    # ==========================================================================
    # Amount & Purpose
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Order amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="KES",
        help_text="ISO 4217 currency code (upper-case)",
    )

    purpose = models.CharField(
        max_length=20,
        choices=OrderPurpose.choices,
        default=OrderPurpose.OTHER,
        help_text="What the order pays for",
    )

    # ==========================================================================
    # Workflow State
    # ==========================================================================

    state = FSMField(
        default=OrderState.DRAFT,
        choices=OrderState.choices,
        db_index=True,
        help_text="Current reconciliation state (managed by FSM)",
    )

    failure_code = models.CharField(
        max_length=40,
        blank=True,
        default="",
        help_text="Machine-readable reason for the last failure",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable reason for the last failure",
    )

    # ==========================================================================
    # Settlement Cause
    # ==========================================================================

    settled_attempt = models.ForeignKey(
        "payments.PaymentAttempt",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Completed push payment that paid this order",
    )

    settled_manual_payment = models.ForeignKey(
        "payments.ManualPayment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Verified manual payment that paid this order",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    awaiting_payment_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["payer", "state"], name="order_payer_state_idx"),
            models.Index(fields=["state", "awaiting_payment_at"], name="order_state_awaiting_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="order_amount_positive",
            ),
            models.CheckConstraint(
                condition=~models.Q(
                    settled_attempt__isnull=False,
                    settled_manual_payment__isnull=False,
                ),
                name="order_single_settlement_cause",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, state, and amount."""
        return f"Order({self.id}, {self.state}, {self.amount_display})"

    # ==========================================================================
    # Derived Properties
    # ==========================================================================

    @property
    def status(self) -> str:
        """Customer-facing status (pending, paid, failed, refunded)."""
        return ORDER_STATE_TO_STATUS[OrderState(self.state)]

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID

    @property
    def amount_display(self) -> str:
        return f"{self.amount_cents / 100:.2f} {self.currency}"

    @property
    def settlement_source(self) -> str | None:
        """Which payment path paid the order: 'gateway', 'manual' or None."""
        if self.settled_attempt_id:
            return "gateway"
        if self.settled_manual_payment_id:
            return "manual"
        return None

    def has_settlement_cause(self, attempt=None, manual_payment=None) -> bool:
        """Return True if the given attempt or manual payment is this order's cause."""
        if attempt is not None:
            return self.settled_attempt_id == attempt.pk
        if manual_payment is not None:
            return self.settled_manual_payment_id == manual_payment.pk
        return False

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=[OrderState.DRAFT, OrderState.AWAITING_PAYMENT, OrderState.FAILED],
        target=OrderState.AWAITING_PAYMENT,
    )
    def await_payment(self):
        """
        A push payment was accepted by the gateway.

        Transition: DRAFT/AWAITING_PAYMENT/FAILED -> AWAITING_PAYMENT

        Retrying from FAILED reuses the order and clears the old failure.
        """
        self.awaiting_payment_at = timezone.now()
        self.failure_code = ""
        self.failure_reason = ""

    @transition(
        field=state,
        source=[OrderState.DRAFT, OrderState.AWAITING_PAYMENT, OrderState.FAILED],
        target=OrderState.MANUAL_REVIEW,
    )
    def submit_for_review(self):
        """
        A manual payment claim was submitted for this order.

        Transition: DRAFT/AWAITING_PAYMENT/FAILED -> MANUAL_REVIEW
        """
        self.failure_code = ""
        self.failure_reason = ""

    @transition(
        field=state,
        source=[OrderState.AWAITING_PAYMENT, OrderState.MANUAL_REVIEW, OrderState.FAILED],
        target=OrderState.CONFIRMED,
    )
    def confirm(self, attempt=None, manual_payment=None):
        """
        Record that money arrived, together with its single cause.

        Transition: AWAITING_PAYMENT/MANUAL_REVIEW/FAILED -> CONFIRMED

        Args:
            attempt: Completed PaymentAttempt (gateway path)
            manual_payment: Verified ManualPayment (manual path)

        Raises:
            ValueError: Unless exactly one cause is given
        """
        if (attempt is None) == (manual_payment is None):
            raise ValueError("Exactly one settlement cause is required")
        self.settled_attempt = attempt
        self.settled_manual_payment = manual_payment
        self.confirmed_at = timezone.now()
        self.failure_code = ""
        self.failure_reason = ""

    @transition(
        field=state,
        source=[OrderState.AWAITING_PAYMENT, OrderState.MANUAL_REVIEW],
        target=OrderState.FAILED,
    )
    def fail(self, code: str, reason: str = ""):
        """
        Mark the order as failed.

        Transition: AWAITING_PAYMENT/MANUAL_REVIEW -> FAILED

        Args:
            code: FailureCode value
            reason: Human-readable reason (gateway message, reviewer notes)
        """
        self.failure_code = code
        self.failure_reason = reason or ""
        self.failed_at = timezone.now()

    @transition(
        field=state,
        source=OrderState.CONFIRMED,
        target=OrderState.SETTLED,
    )
    def settle(self):
        """
        Settlement finished: booking confirmed and earnings allocated.

        Transition: CONFIRMED -> SETTLED
        """
        self.settled_at = timezone.now()

    @transition(
        field=state,
        source=OrderState.SETTLED,
        target=OrderState.REFUNDED,
    )
    def refund(self, reason: str = ""):
        """
        Money was returned to the payer by the payout subsystem.

        Transition: SETTLED -> REFUNDED
        """
        self.refunded_at = timezone.now()
        if reason:
            self.set_meta("refund_reason", reason)
