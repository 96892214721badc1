"""
PaymentAttempt model: one push-payment try against the mobile-money gateway.

Many attempts may exist per Order (retries), but at most one may be open
(initiated or awaiting confirmation) at a time. The state machine checks
this before creating an attempt and a partial unique constraint guards
the database against two callers racing past the check.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    OPEN_ATTEMPT_STATUSES,
    FailureCode,
    PaymentAttemptStatus,
)


def _late_completion_allowed(instance: PaymentAttempt) -> bool:
    """Only attempts that failed locally by timeout may still complete."""
    return (
        instance.status != PaymentAttemptStatus.FAILED
        or instance.result_code == FailureCode.TIMEOUT
    )


class PaymentAttempt(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A single STK push sent to the customer's phone.

    State Flow:
        INITIATED -> AWAITING_CONFIRMATION -> COMPLETED
        INITIATED/AWAITING_CONFIRMATION -> FAILED
        FAILED (local timeout) -> COMPLETED

    Fields:
        order: Order being paid
        correlation_id: Gateway CheckoutRequestID used to match callbacks
        merchant_request_id: Gateway MerchantRequestID
        phone_number: Normalized MSISDN (2547XXXXXXXX)
        result_code/result_description: Raw gateway outcome
        receipt_number: Gateway receipt for completed payments
    """

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        related_name="payment_attempts",
        help_text="Order this attempt pays for",
    )

    correlation_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway CheckoutRequestID",
    )

    merchant_request_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Gateway MerchantRequestID",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount requested in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="KES")

    phone_number = models.CharField(
        max_length=12,
        help_text="Normalized phone number the push was sent to",
    )

    status = FSMField(
        default=PaymentAttemptStatus.INITIATED,
        choices=PaymentAttemptStatus.choices,
        db_index=True,
        help_text="Current attempt status (managed by FSM)",
    )

    result_code = models.CharField(max_length=20, blank=True, default="")
    result_description = models.TextField(blank=True, default="")
    receipt_number = models.CharField(max_length=40, blank=True, default="")

    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Attempt"
        verbose_name_plural = "Payment Attempts"
        indexes = [
            models.Index(fields=["order", "status"], name="attempt_order_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status__in=OPEN_ATTEMPT_STATUSES),
                name="payment_attempt_one_open_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentAttempt({self.id}, {self.status}, {self.correlation_id})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ATTEMPT_STATUSES

    @property
    def expired_by_timeout(self) -> bool:
        return (
            self.status == PaymentAttemptStatus.FAILED
            and self.result_code == FailureCode.TIMEOUT
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentAttemptStatus.INITIATED,
        target=PaymentAttemptStatus.AWAITING_CONFIRMATION,
    )
    def mark_awaiting_confirmation(
        self,
        correlation_id: str,
        merchant_request_id: str = "",
        customer_message: str = "",
    ):
        """
        The gateway accepted the push and handed back its correlation id.

        Transition: INITIATED -> AWAITING_CONFIRMATION
        """
        self.correlation_id = correlation_id
        self.merchant_request_id = merchant_request_id or ""
        if customer_message:
            self.set_meta("customer_message", customer_message)

    @transition(
        field=status,
        source=[
            PaymentAttemptStatus.INITIATED,
            PaymentAttemptStatus.AWAITING_CONFIRMATION,
            PaymentAttemptStatus.FAILED,
        ],
        target=PaymentAttemptStatus.COMPLETED,
        conditions=[_late_completion_allowed],
    )
    def complete(self, receipt_number: str = "", result_description: str = ""):
        """
        The customer paid.

        Transition: INITIATED/AWAITING_CONFIRMATION -> COMPLETED, or
        FAILED -> COMPLETED when the failure was a local timeout.
        """
        self.result_code = "0"
        self.result_description = result_description or ""
        self.receipt_number = receipt_number or ""
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=list(OPEN_ATTEMPT_STATUSES),
        target=PaymentAttemptStatus.FAILED,
    )
    def fail(self, result_code: str = "", result_description: str = ""):
        """
        The gateway rejected the push or the customer cancelled it.

        Transition: INITIATED/AWAITING_CONFIRMATION -> FAILED
        """
        self.result_code = str(result_code or "")
        self.result_description = result_description or ""
        self.failed_at = timezone.now()

    @transition(
        field=status,
        source=list(OPEN_ATTEMPT_STATUSES),
        target=PaymentAttemptStatus.FAILED,
    )
    def expire(self):
        """
        Stop waiting for confirmation.

        Transition: INITIATED/AWAITING_CONFIRMATION -> FAILED

        The gateway may still complete the charge; complete() accepts that.
        """
        self.result_code = FailureCode.TIMEOUT
        self.result_description = "No confirmation received before the deadline"
        self.failed_at = timezone.now()
