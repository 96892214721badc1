"""
DRF serializers for payments app.

This module provides serializers for:
- Payment intent creation (order + optional booking)
- Push payment requests and poll results
- Manual payment submission and review
- Order, attempt and manual payment display

Related files:
    - models/: Order, PaymentAttempt, ManualPayment
    - views.py: Payment API views

Usage:
    serializer = CreateIntentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from bookings.models import Booking, SessionType
from payments.models import ManualPayment, Order, PaymentAttempt
from payments.state_machines import ManualPaymentStatus, OrderPurpose, ReviewDecision

User = get_user_model()


# =============================================================================
# Request Serializers
# =============================================================================


class BookingDetailsSerializer(serializers.Serializer):
    """Studio session details for a booking intent."""

    session_type = serializers.ChoiceField(choices=SessionType.choices)
    session_date = serializers.DateField()
    start_time = serializers.TimeField()
    duration_hours = serializers.IntegerField()
    producer_id = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(),
        source="producer",
        required=False,
        allow_null=True,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class CreateIntentSerializer(serializers.Serializer):
    """
    Payment intent request.

    Amount and booking rules (positive amount, future session, duration)
    are enforced by the reconciliation service so that API and library
    callers get the same error codes.
    """

    purpose = serializers.ChoiceField(choices=OrderPurpose.choices)
    amount_cents = serializers.IntegerField()
    currency = serializers.CharField(max_length=3, required=False, default="KES")
    booking = BookingDetailsSerializer(required=False, allow_null=True)


class BeginGatewayPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    phone_number = serializers.CharField(max_length=20)


class SubmitManualPaymentSerializer(serializers.Serializer):
    """Manual payment claim; proof is an optional multipart file."""

    order_id = serializers.UUIDField(required=False, allow_null=True)
    amount_cents = serializers.IntegerField()
    currency = serializers.CharField(max_length=3, required=False, default="KES")
    reference_code = serializers.CharField(max_length=64)
    proof = serializers.FileField(required=False, allow_null=True)


class ReviewManualPaymentSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=ReviewDecision.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ManualPaymentQueueQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=ManualPaymentStatus.choices, required=False)


# =============================================================================
# Response Serializers
# =============================================================================


class OrderSerializer(serializers.ModelSerializer):
    """Order with its customer-facing status and settlement source."""

    status = serializers.CharField(read_only=True)
    settlement_source = serializers.CharField(read_only=True, allow_null=True)

    class Meta:
        """Serializer metadata."""

        model = Order
        fields = [
            "id",
            "amount_cents",
            "currency",
            "purpose",
            "state",
            "status",
            "failure_code",
            "failure_reason",
            "settlement_source",
            "confirmed_at",
            "settled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    class Meta:
        """Serializer metadata."""

        model = Booking
        fields = [
            "id",
            "order",
            "producer",
            "session_type",
            "session_date",
            "start_time",
            "duration_hours",
            "total_price_cents",
            "status",
            "notes",
            "confirmed_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentAttemptSerializer(serializers.ModelSerializer):
    customer_message = serializers.SerializerMethodField()

    class Meta:
        """Serializer metadata."""

        model = PaymentAttempt
        fields = [
            "id",
            "order",
            "correlation_id",
            "amount_cents",
            "currency",
            "phone_number",
            "status",
            "result_code",
            "result_description",
            "receipt_number",
            "customer_message",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields

    def get_customer_message(self, obj: PaymentAttempt) -> str:
        return obj.get_meta("customer_message", "")


class IntentSerializer(serializers.Serializer):
    order = OrderSerializer()
    booking = BookingSerializer(allow_null=True)


class GatewayOutcomeSerializer(serializers.Serializer):
    """Poll result: attempt status, order and whether the client can stop polling."""

    status = serializers.CharField()
    is_terminal = serializers.BooleanField()
    failure_reason = serializers.CharField()
    attempt = PaymentAttemptSerializer()
    order = OrderSerializer()


class ManualPaymentSerializer(serializers.ModelSerializer):
    """Manual payment claim as shown to claimants and reviewers."""

    claimant_username = serializers.CharField(source="claimant.username", read_only=True)
    claimant_email = serializers.CharField(source="claimant.email", read_only=True)
    reviewed_by_username = serializers.CharField(
        source="reviewed_by.username",
        read_only=True,
        allow_null=True,
        default=None,
    )

    class Meta:
        """Serializer metadata."""

        model = ManualPayment
        fields = [
            "id",
            "order",
            "claimant",
            "claimant_username",
            "claimant_email",
            "amount_cents",
            "currency",
            "reference_code",
            "proof_url",
            "proof_file_name",
            "status",
            "is_duplicate_reference",
            "reviewed_by",
            "reviewed_by_username",
            "reviewed_at",
            "admin_notes",
            "created_at",
        ]
        read_only_fields = fields
