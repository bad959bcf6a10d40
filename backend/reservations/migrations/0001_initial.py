import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Reservation",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Last rented day, inclusive.")),
                (
                    "booking_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("ACTIVE", "Active"),
                            ("CANCELED", "Canceled"),
                            ("COMPLETED", "Completed"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                (
                    "rental_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("READY_FOR_PICKUP", "Ready for pickup"),
                            ("PICKED_UP", "Picked up"),
                            ("IN_PROGRESS", "In progress"),
                            ("AWAITING_RETURN", "Awaiting return"),
                            ("RETURNED", "Returned"),
                            ("COMPLETED", "Completed"),
                        ],
                        default="PENDING",
                        max_length=24,
                    ),
                ),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("pickup_time_preference", models.TimeField(blank=True, null=True)),
                ("return_time_preference", models.TimeField(blank=True, null=True)),
                ("pickup_address", models.CharField(blank=True, default="", max_length=255)),
                ("pickup_instructions", models.TextField(blank=True, default="")),
                ("pickup_start_time", models.TimeField(blank=True, null=True)),
                ("pickup_end_time", models.TimeField(blank=True, null=True)),
                ("return_address", models.CharField(blank=True, default="", max_length=255)),
                ("return_instructions", models.TextField(blank=True, default="")),
                ("return_deadline", models.DateTimeField(blank=True, null=True)),
                ("owner_notes", models.TextField(blank=True, default="")),
                ("setup_completed_at", models.DateTimeField(blank=True, null=True)),
                ("pickup_confirmed_by_renter", models.BooleanField(default=False)),
                ("pickup_confirmed_by_renter_at", models.DateTimeField(blank=True, null=True)),
                ("pickup_confirmed_by_owner", models.BooleanField(default=False)),
                ("pickup_confirmed_by_owner_at", models.DateTimeField(blank=True, null=True)),
                ("pickup_confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("return_requested_at", models.DateTimeField(blank=True, null=True)),
                ("return_confirmed_by_renter", models.BooleanField(default=False)),
                ("return_confirmed_by_renter_at", models.DateTimeField(blank=True, null=True)),
                ("return_confirmed_by_owner", models.BooleanField(default=False)),
                ("return_confirmed_by_owner_at", models.DateTimeField(blank=True, null=True)),
                ("return_confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "external_session_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Stripe Checkout Session id created for this reservation.",
                        max_length=255,
                    ),
                ),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "canceled_by",
                    models.CharField(
                        blank=True,
                        choices=[("renter", "renter"), ("owner", "owner"), ("system", "system")],
                        default="",
                        max_length=16,
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reservations",
                        to="listings.listing",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reservations_as_owner",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "renter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reservations_as_renter",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["listing", "booking_status", "start_date", "end_date"],
                        name="reservation_availability_idx",
                    ),
                    models.Index(
                        fields=["booking_status", "created_at"], name="reservation_expiry_idx"
                    ),
                    models.Index(
                        fields=["renter", "booking_status"], name="reservation_renter_idx"
                    ),
                    models.Index(
                        fields=["owner", "booking_status"], name="reservation_owner_idx"
                    ),
                ],
            },
        ),
    ]
