"""
ManualPayment model: an out-of-band payment claim verified by a reviewer.

Customers who cannot finish a push payment pay through Paybill or a bank
transfer, then submit the transaction reference and optionally a proof
screenshot. A reviewer with payment-verification authority either
verifies or rejects the claim. PENDING is the only mutable state.
"""

from __future__ import annotations

from functools import reduce
from operator import or_

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import ManualPaymentStatus


def normalize_reference_code(value: str) -> str:
    """Trim and upper-case a transaction reference for storage and matching."""
    return (value or "").strip().upper()


class ManualPaymentQuerySet(models.QuerySet):
    """Query helpers used by the verification queue."""

    def pending(self) -> ManualPaymentQuerySet:
        return self.filter(status=ManualPaymentStatus.PENDING)

    def in_review_scope(self, prefixes) -> ManualPaymentQuerySet:
        """
        Restrict to human-submitted claims.

        A record is in scope when its reference code starts with one of the
        manual-channel prefixes or when a proof file is attached.
        """
        conditions = [
            models.Q(reference_code__startswith=normalize_reference_code(prefix))
            for prefix in prefixes
            if prefix
        ]
        conditions.append(~models.Q(proof_url=""))
        return self.filter(reduce(or_, conditions))

    def search(self, term: str | None) -> ManualPaymentQuerySet:
        """Match reference code or claimant username/email/name."""
        term = (term or "").strip()
        if not term:
            return self
        return self.filter(
            models.Q(reference_code__icontains=term)
            | models.Q(claimant__username__icontains=term)
            | models.Q(claimant__email__icontains=term)
            | models.Q(claimant__first_name__icontains=term)
            | models.Q(claimant__last_name__icontains=term)
        )


class ManualPayment(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A human-submitted, human-verified payment claim.

    State Flow:
        PENDING -> VERIFIED
        PENDING -> REJECTED

    Fields:
        order: Order the claim pays for (nullable, a claim may precede the order)
        claimant: User who says they paid
        reference_code: Gateway or bank transaction id (upper-cased)
        proof_url/proof_file_name: Uploaded proof of transfer, if any
        is_duplicate_reference: Another claim used the same reference code
        reviewed_by/reviewed_at/admin_notes: Reviewer decision record
    """

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="manual_payments",
        help_text="Order this claim pays for",
    )

    claimant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="manual_payments",
        help_text="User claiming the payment",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Claimed amount in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="KES")

    reference_code = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Transaction reference (trimmed, upper-case)",
    )

    proof_url = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Retrievable URL of the uploaded proof",
    )

    proof_file_name = models.CharField(max_length=255, blank=True, default="")

    status = FSMField(
        default=ManualPaymentStatus.PENDING,
        choices=ManualPaymentStatus.choices,
        db_index=True,
        help_text="Review status (managed by FSM)",
    )

    is_duplicate_reference = models.BooleanField(
        default=False,
        help_text="Another claim was submitted with the same reference code",
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reviewed_manual_payments",
    )

    reviewed_at = models.DateTimeField(null=True, blank=True)

    admin_notes = models.TextField(
        blank=True,
        default="",
        help_text="Reviewer notes shown to the claimant",
    )

    objects = ManualPaymentQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Manual Payment"
        verbose_name_plural = "Manual Payments"
        permissions = [
            ("review_manualpayment", "Can verify or reject manual payments"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="manual_payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(status=ManualPaymentStatus.PENDING)
                | models.Q(reviewed_at__isnull=False),
                name="manual_payment_reviewed_has_timestamp",
            ),
            models.CheckConstraint(
                condition=~models.Q(status=ManualPaymentStatus.REJECTED)
                | ~models.Q(admin_notes=""),
                name="manual_payment_rejection_has_notes",
            ),
        ]

    def __str__(self) -> str:
        return f"ManualPayment({self.id}, {self.reference_code}, {self.status})"

    def save(self, *args, **kwargs):
        self.reference_code = normalize_reference_code(self.reference_code)
        super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == ManualPaymentStatus.PENDING

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ManualPaymentStatus.PENDING,
        target=ManualPaymentStatus.VERIFIED,
    )
    def verify(self, reviewer, notes: str = ""):
        """
        Reviewer confirmed the money arrived.

        Transition: PENDING -> VERIFIED
        """
        self.reviewed_by = reviewer
        self.reviewed_at = timezone.now()
        self.admin_notes = notes or ""

    @transition(
        field=status,
        source=ManualPaymentStatus.PENDING,
        target=ManualPaymentStatus.REJECTED,
    )
    def reject(self, reviewer, notes: str):
        """
        Reviewer could not match the claim to a received payment.

        Transition: PENDING -> REJECTED

        Raises:
            ValueError: If notes are empty; the claimant must see why
        """
        if not (notes or "").strip():
            raise ValueError("Rejection notes are required")
        self.reviewed_by = reviewer
        self.reviewed_at = timezone.now()
        self.admin_notes = notes.strip()
