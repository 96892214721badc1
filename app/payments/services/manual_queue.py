"""
Manual payment verification queue.

Reviewer-facing view over ManualPayment records. The queue only shows
human-submitted claims: reference codes starting with one of the
MANUAL_PAYMENT_REFERENCE_PREFIXES or records carrying a proof upload.
Anything else in the table is system ledger noise and stays hidden.

Usage:
    from payments.services import ManualPaymentQueue, ReviewerCapability

    pending = ManualPaymentQueue.list(search="MPESA", status="pending")
    ManualPaymentQueue.review(
        record.id,
        ReviewerCapability.for_user(request.user),
        decision="reject",
        notes="amount mismatch",
    )
"""

from __future__ import annotations

from django.conf import settings

from core.services import BaseService

from payments.exceptions import PaymentValidationError
from payments.models import ManualPayment, ManualPaymentQuerySet
from payments.services.reconciliation import ReconciliationService, ReviewerCapability
from payments.state_machines import ManualPaymentStatus


class ManualPaymentQueue(BaseService):
    """List, count and review manual payment claims."""

    @staticmethod
    def reference_prefixes() -> list[str]:
        return list(getattr(settings, "MANUAL_PAYMENT_REFERENCE_PREFIXES", ["MPESA", "PAYBILL", "BANK"]))

    @classmethod
    def queryset(cls) -> ManualPaymentQuerySet:
        return ManualPayment.objects.in_review_scope(cls.reference_prefixes()).select_related(
            "claimant", "order", "reviewed_by"
        )

    @classmethod
    def list(cls, search: str | None = None, status: str | None = None) -> ManualPaymentQuerySet:
        """
        Claims in review scope, newest first.

        Args:
            search: Matches reference code or claimant username/email/name
            status: Optional ManualPaymentStatus filter

        Raises:
            PaymentValidationError: Unknown status value
        """
        records = cls.queryset().search(search)
        if status:
            if status not in ManualPaymentStatus.values:
                raise PaymentValidationError(
                    f"Unknown manual payment status: {status}",
                    details={"status": status, "allowed": list(ManualPaymentStatus.values)},
                )
            records = records.filter(status=status)
        return records.order_by("-created_at")

    @classmethod
    def pending_count(cls) -> int:
        """Pending claims waiting for a reviewer."""
        return cls.queryset().pending().count()

    @classmethod
    def review(
        cls,
        record_id,
        capability: ReviewerCapability | None,
        decision: str,
        notes: str | None = None,
    ) -> ManualPayment:
        """Apply a reviewer decision; see ReconciliationService.review_manual_payment."""
        return ReconciliationService.review_manual_payment(
            record_id,
            capability,
            decision,
            notes=notes,
        )
