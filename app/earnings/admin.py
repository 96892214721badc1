"""Earnings admin configuration."""

from django.contrib import admin

from earnings.models import EarningsRecord, ProducerSettings


@admin.register(ProducerSettings)
class ProducerSettingsAdmin(admin.ModelAdmin):
    list_display = ["producer", "commission_rate", "minimum_payout_cents", "payout_method"]
    list_filter = ["payout_method"]
    search_fields = ["producer__username", "producer__email"]
    raw_id_fields = ["producer"]


@admin.register(EarningsRecord)
class EarningsRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for EarningsRecord.

    Records are written by the allocator and are read-only here.
    """

    list_display = [
        "id",
        "producer",
        "booking",
        "gross_amount_cents",
        "platform_fee_cents",
        "net_amount_cents",
        "commission_rate",
        "status",
        "payout_batch_reference",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "producer__username", "producer__email", "payout_batch_reference"]
    readonly_fields = [field.name for field in EarningsRecord._meta.fields]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for earnings (audit trail)."""
        return False
