import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("payments", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
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
                    "session_type",
                    models.CharField(
                        choices=[
                            ("recording", "Recording"),
                            ("mixing", "Mixing"),
                            ("mastering", "Mastering"),
                            ("production", "Production"),
                            ("consultation", "Consultation"),
                        ],
                        default="recording",
                        max_length=20,
                    ),
                ),
                ("session_date", models.DateField()),
                ("start_time", models.TimeField()),
                ("duration_hours", models.PositiveSmallIntegerField(default=1)),
                (
                    "total_price_cents",
                    models.PositiveBigIntegerField(
                        help_text="Total session price in smallest currency unit"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "client",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.OneToOneField(
                        blank=True,
                        help_text="Order paying for this session",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="booking",
                        to="payments.order",
                    ),
                ),
                (
                    "producer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Producer assigned to the session",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="producer_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-session_date", "-start_time"],
                "indexes": [
                    models.Index(
                        fields=["producer", "session_date"],
                        name="booking_producer_date_idx",
                    ),
                    models.Index(fields=["client", "status"], name="booking_client_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(duration_hours__gt=0),
                        name="booking_duration_positive",
                    ),
                ],
            },
        ),
    ]
