"""
Payment admin configuration.

Orders, push payment attempts and manual payment claims are read-only here:
state changes go through ReconciliationService. The one exception is the
bulk verify action on manual payments, which calls the service as well.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from payments.models import ManualPayment, Order, PaymentAttempt
from payments.services import ManualPaymentQueue, ReviewerCapability
from payments.state_machines import ManualPaymentStatus, ReviewDecision

__all__ = [
    "ManualPaymentAdmin",
    "OrderAdmin",
    "PaymentAttemptAdmin",
]


class PaymentAttemptInline(admin.TabularInline):
    model = PaymentAttempt
    extra = 0
    can_delete = False
    fields = ["correlation_id", "phone_number", "status", "result_code", "receipt_number", "created_at"]
    readonly_fields = fields
    ordering = ["-created_at"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into orders and their reconciliation state.
    """

    list_display = [
        "id",
        "payer",
        "amount_display",
        "purpose",
        "state",
        "settlement_source",
        "created_at",
    ]
    list_filter = ["state", "purpose", "currency", "created_at"]
    search_fields = ["id", "payer__email", "payer__username"]
    readonly_fields = [
        "id",
        "payer",
        "amount_cents",
        "currency",
        "purpose",
        "state",
        "failure_code",
        "failure_reason",
        "settled_attempt",
        "settled_manual_payment",
        "awaiting_payment_at",
        "confirmed_at",
        "settled_at",
        "failed_at",
        "refunded_at",
        "metadata",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PaymentAttemptInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "payer", "state", "purpose"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "currency"),
            },
        ),
        (
            "Settlement",
            {
                "fields": ("settled_attempt", "settled_manual_payment"),
            },
        ),
        (
            "Failure",
            {
                "fields": ("failure_code", "failure_reason"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "awaiting_payment_at",
                    "confirmed_at",
                    "settled_at",
                    "failed_at",
                    "refunded_at",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
    )

    def has_add_permission(self, request) -> bool:
        """Orders are created through the API."""
        return False


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    """Admin configuration for PaymentAttempt."""

    list_display = [
        "id",
        "order",
        "correlation_id",
        "phone_number",
        "amount_cents",
        "status",
        "result_code",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "correlation_id", "merchant_request_id", "receipt_number", "phone_number"]
    readonly_fields = [field.name for field in PaymentAttempt._meta.fields]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for attempts (audit trail)."""
        return False


@admin.register(ManualPayment)
class ManualPaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for ManualPayment.

    The changelist shows every claim; the API queue shows only claims in
    review scope.
    """

    list_display = [
        "id",
        "reference_code",
        "claimant",
        "amount_cents",
        "status",
        "is_duplicate_reference",
        "reviewed_by",
        "created_at",
    ]
    list_filter = ["status", "is_duplicate_reference", "created_at"]
    search_fields = [
        "reference_code",
        "claimant__username",
        "claimant__email",
        "claimant__first_name",
        "claimant__last_name",
    ]
    readonly_fields = [field.name for field in ManualPayment._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["verify_selected"]

    def changelist_view(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context["title"] = f"Manual payments ({ManualPaymentQueue.pending_count()} pending)"
        return super().changelist_view(request, extra_context=extra_context)

    @admin.action(description="Verify selected manual payments")
    def verify_selected(self, request, queryset):
        """Bulk verify pending claims through the reconciliation service."""
        capability = ReviewerCapability.for_user(request.user)
        verified = 0
        for record in queryset.filter(status=ManualPaymentStatus.PENDING):
            try:
                ManualPaymentQueue.review(record.id, capability, ReviewDecision.VERIFY)
            except BaseApplicationError as e:
                self.message_user(request, f"{record.reference_code}: {e.message}", messages.ERROR)
                continue
            verified += 1
        self.message_user(request, f"Verified {verified} manual payments.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for claims (audit trail)."""
        return False
