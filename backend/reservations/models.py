"""Database models for listing reservations."""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models

from listings.models import Listing


class Reservation(models.Model):
    """A renter's claim on a listing for an inclusive date range."""

    class BookingStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACTIVE = "ACTIVE", "Active"
        CANCELED = "CANCELED", "Canceled"
        COMPLETED = "COMPLETED", "Completed"

    class RentalStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        READY_FOR_PICKUP = "READY_FOR_PICKUP", "Ready for pickup"
        PICKED_UP = "PICKED_UP", "Picked up"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        AWAITING_RETURN = "AWAITING_RETURN", "Awaiting return"
        RETURNED = "RETURNED", "Returned"
        COMPLETED = "COMPLETED", "Completed"

    class CanceledBy(models.TextChoices):
        RENTER = "renter", "renter"
        OWNER = "owner", "owner"
        SYSTEM = "system", "system"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    listing = models.ForeignKey(
        Listing,
        related_name="reservations",
        on_delete=models.CASCADE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="reservations_as_owner",
        on_delete=models.CASCADE,
    )
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="reservations_as_renter",
        on_delete=models.CASCADE,
    )
    start_date = models.DateField()
    end_date = models.DateField(help_text="Last rented day, inclusive.")
    booking_status = models.CharField(
        max_length=16,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING,
    )
    rental_status = models.CharField(
        max_length=24,
        choices=RentalStatus.choices,
        default=RentalStatus.PENDING,
    )
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    pickup_time_preference = models.TimeField(null=True, blank=True)
    return_time_preference = models.TimeField(null=True, blank=True)

    # Owner-provided logistics
    pickup_address = models.CharField(max_length=255, blank=True, default="")
    pickup_instructions = models.TextField(blank=True, default="")
    pickup_start_time = models.TimeField(null=True, blank=True)
    pickup_end_time = models.TimeField(null=True, blank=True)
    return_address = models.CharField(max_length=255, blank=True, default="")
    return_instructions = models.TextField(blank=True, default="")
    return_deadline = models.DateTimeField(null=True, blank=True)
    owner_notes = models.TextField(blank=True, default="")
    setup_completed_at = models.DateTimeField(null=True, blank=True)

    pickup_confirmed_by_renter = models.BooleanField(default=False)
    pickup_confirmed_by_renter_at = models.DateTimeField(null=True, blank=True)
    pickup_confirmed_by_owner = models.BooleanField(default=False)
    pickup_confirmed_by_owner_at = models.DateTimeField(null=True, blank=True)
    pickup_confirmed_at = models.DateTimeField(null=True, blank=True)

    return_requested_at = models.DateTimeField(null=True, blank=True)
    return_confirmed_by_renter = models.BooleanField(default=False)
    return_confirmed_by_renter_at = models.DateTimeField(null=True, blank=True)
    return_confirmed_by_owner = models.BooleanField(default=False)
    return_confirmed_by_owner_at = models.DateTimeField(null=True, blank=True)
    return_confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    external_session_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Checkout Session id created for this reservation.",
    )

    canceled_at = models.DateTimeField(null=True, blank=True)
    canceled_by = models.CharField(
        max_length=16,
        choices=CanceledBy.choices,
        blank=True,
        default="",
    )
    cancellation_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["listing", "booking_status", "start_date", "end_date"],
                name="reservation_availability_idx",
            ),
            models.Index(fields=["booking_status", "created_at"], name="reservation_expiry_idx"),
            models.Index(fields=["renter", "booking_status"], name="reservation_renter_idx"),
            models.Index(fields=["owner", "booking_status"], name="reservation_owner_idx"),
        ]

    def __str__(self) -> str:
        return f"Reservation {self.pk} for {self.listing_id} ({self.booking_status})"

    @property
    def days(self) -> int:
        """Number of rented days; both ends count."""
        if not self.start_date or not self.end_date:
            return 0
        return (self.end_date - self.start_date).days + 1

    def is_blocking(self) -> bool:
        """True while the reservation holds its dates against other renters."""
        return self.booking_status in BLOCKING_STATUSES

    def role_of(self, user_id) -> str | None:
        """Return "renter", "owner" or None for the given user id."""
        if user_id is None:
            return None
        if user_id == self.renter_id:
            return "renter"
        if user_id == self.owner_id:
            return "owner"
        return None


BLOCKING_STATUSES = (
    Reservation.BookingStatus.PENDING,
    Reservation.BookingStatus.ACTIVE,
)
