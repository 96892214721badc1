import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Order amount in smallest currency unit (e.g., cents)"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="KES",
                        help_text="ISO 4217 currency code (upper-case)",
                        max_length=3,
                    ),
                ),
                (
                    "purpose",
                    models.CharField(
                        choices=[
                            ("beat", "Beat License"),
                            ("booking", "Studio Booking"),
                            ("other", "Other"),
                        ],
                        default="other",
                        help_text="What the order pays for",
                        max_length=20,
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("draft", "Draft"),
                            ("awaiting_payment", "Awaiting Payment"),
                            ("manual_review", "Manual Review"),
                            ("confirmed", "Confirmed"),
                            ("failed", "Failed"),
                            ("settled", "Settled"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="draft",
                        help_text="Current reconciliation state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "failure_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Machine-readable reason for the last failure",
                        max_length=40,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Human-readable reason for the last failure",
                    ),
                ),
                ("awaiting_payment_at", models.DateTimeField(blank=True, null=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payer",
                    models.ForeignKey(
                        help_text="User paying for the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payer", "state"], name="order_payer_state_idx"),
                    models.Index(
                        fields=["state", "awaiting_payment_at"],
                        name="order_state_awaiting_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="order_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "correlation_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway CheckoutRequestID",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "merchant_request_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway MerchantRequestID",
                        max_length=100,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Amount requested in smallest currency unit"
                    ),
                ),
                ("currency", models.CharField(default="KES", max_length=3)),
                (
                    "phone_number",
                    models.CharField(
                        help_text="Normalized phone number the push was sent to",
                        max_length=12,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("initiated", "Initiated"),
                            ("awaiting_confirmation", "Awaiting Confirmation"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="initiated",
                        help_text="Current attempt status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("result_code", models.CharField(blank=True, default="", max_length=20)),
                ("result_description", models.TextField(blank=True, default="")),
                ("receipt_number", models.CharField(blank=True, default="", max_length=40)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this attempt pays for",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_attempts",
                        to="payments.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Attempt",
                "verbose_name_plural": "Payment Attempts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "status"], name="attempt_order_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status__in=["initiated", "awaiting_confirmation"]),
                        fields=("order",),
                        name="payment_attempt_one_open_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ManualPayment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Claimed amount in smallest currency unit"
                    ),
                ),
                ("currency", models.CharField(default="KES", max_length=3)),
                (
                    "reference_code",
                    models.CharField(
                        db_index=True,
                        help_text="Transaction reference (trimmed, upper-case)",
                        max_length=64,
                    ),
                ),
                (
                    "proof_url",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Retrievable URL of the uploaded proof",
                        max_length=500,
                    ),
                ),
                ("proof_file_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("verified", "Verified"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Review status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "is_duplicate_reference",
                    models.BooleanField(
                        default=False,
                        help_text="Another claim was submitted with the same reference code",
                    ),
                ),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "admin_notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reviewer notes shown to the claimant",
                    ),
                ),
                (
                    "claimant",
                    models.ForeignKey(
                        help_text="User claiming the payment",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="manual_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        help_text="Order this claim pays for",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="manual_payments",
                        to="payments.order",
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reviewed_manual_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Manual Payment",
                "verbose_name_plural": "Manual Payments",
                "ordering": ["-created_at"],
                "permissions": [
                    ("review_manualpayment", "Can verify or reject manual payments"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="manual_payment_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(status="pending") | models.Q(reviewed_at__isnull=False),
                        name="manual_payment_reviewed_has_timestamp",
                    ),
                    models.CheckConstraint(
                        condition=~models.Q(status="rejected") | ~models.Q(admin_notes=""),
                        name="manual_payment_rejection_has_notes",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="order",
            name="settled_attempt",
            field=models.ForeignKey(
                blank=True,
                help_text="Completed push payment that paid this order",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="payments.paymentattempt",
            ),
        ),
        migrations.AddField(
            model_name="order",
            name="settled_manual_payment",
            field=models.ForeignKey(
                blank=True,
                help_text="Verified manual payment that paid this order",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="payments.manualpayment",
            ),
        ),
        migrations.AddConstraint(
            model_name="order",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    ("settled_attempt__isnull", False),
                    ("settled_manual_payment__isnull", False),
                    _negated=True,
                ),
                name="order_single_settlement_cause",
            ),
        ),
    ]
