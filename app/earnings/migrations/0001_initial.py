import decimal
import uuid

import django.core.validators
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

import earnings.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ProducerSettings",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
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
                    "commission_rate",
                    models.DecimalField(
                        decimal_places=2,
                        default=earnings.models.default_commission_rate,
                        help_text="Percentage kept by the producer (e.g. 70.00)",
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(decimal.Decimal("0")),
                            django.core.validators.MaxValueValidator(decimal.Decimal("100")),
                        ],
                    ),
                ),
                (
                    "minimum_payout_cents",
                    models.PositiveBigIntegerField(
                        default=earnings.models.default_minimum_payout_cents
                    ),
                ),
                (
                    "payout_method",
                    models.CharField(
                        choices=[("mpesa", "M-Pesa"), ("bank", "Bank Transfer")],
                        default="mpesa",
                        max_length=10,
                    ),
                ),
                (
                    "payout_phone_number",
                    models.CharField(blank=True, default="", max_length=12),
                ),
                (
                    "producer",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="producer_settings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Producer Settings",
                "verbose_name_plural": "Producer Settings",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(commission_rate__gte=0, commission_rate__lte=100),
                        name="producer_settings_commission_rate_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EarningsRecord",
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
                ("gross_amount_cents", models.PositiveBigIntegerField()),
                ("platform_fee_cents", models.PositiveBigIntegerField()),
                ("net_amount_cents", models.PositiveBigIntegerField()),
                (
                    "commission_rate",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Commission rate snapshot at settlement",
                        max_digits=5,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("paid", "Paid"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                (
                    "payout_batch_reference",
                    models.CharField(blank=True, db_index=True, max_length=64, null=True),
                ),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings_record",
                        to="bookings.booking",
                    ),
                ),
                (
                    "producer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["producer", "status"],
                        name="earnings_producer_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            gross_amount_cents=models.F("platform_fee_cents")
                            + models.F("net_amount_cents")
                        ),
                        name="earnings_record_split_conserves_gross",
                    ),
                ],
            },
        ),
    ]
