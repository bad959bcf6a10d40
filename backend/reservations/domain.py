"""Domain helpers for reservation availability, expiry and cancellation."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Literal, Optional

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from .errors import ConflictError, InvalidStateError, ValidationError
from .models import BLOCKING_STATUSES, Reservation

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Reservation expired"
DEFAULT_CANCEL_REASON = "User requested cancellation"

CancelActor = Literal["renter", "owner", "system"]


def validate_reservation_dates(start_date: date | None, end_date: date | None) -> None:
    """Validate that both dates exist and form an inclusive range."""
    if not start_date or not end_date:
        raise ValidationError("Start and end dates are required.")
    if start_date > end_date:
        raise ValidationError("End date must be on or after the start date.")


def conflicting_reservations(
    listing_id,
    start_date: date,
    end_date: date,
    *,
    exclude_reservation_id=None,
) -> QuerySet[Reservation]:
    """
    Reservations on the listing whose inclusive range touches [start, end].

    A shared boundary day counts as an overlap.
    """
    qs = Reservation.objects.filter(
        listing_id=listing_id,
        booking_status__in=BLOCKING_STATUSES,
        end_date__gte=start_date,
        start_date__lte=end_date,
    )
    if exclude_reservation_id is not None:
        qs = qs.exclude(pk=exclude_reservation_id)
    return qs


def has_conflict(
    listing_id,
    start_date: date,
    end_date: date,
    *,
    exclude_reservation_id=None,
) -> bool:
    return conflicting_reservations(
        listing_id,
        start_date,
        end_date,
        exclude_reservation_id=exclude_reservation_id,
    ).exists()


def ensure_available(
    listing_id,
    start_date: date,
    end_date: date,
    *,
    exclude_reservation_id=None,
) -> None:
    """Raise ConflictError when the range is already held on the listing."""
    if has_conflict(
        listing_id,
        start_date,
        end_date,
        exclude_reservation_id=exclude_reservation_id,
    ):
        raise ConflictError("Listing is not available for these dates")


def hold_cutoff(now: Optional[datetime] = None) -> datetime:
    """Unpaid holds created at or before this instant are stale."""
    now = now or timezone.now()
    return now - timedelta(minutes=settings.RESERVATION_HOLD_MINUTES)


def stale_holds(cutoff: datetime) -> QuerySet[Reservation]:
    return Reservation.objects.filter(
        booking_status=Reservation.BookingStatus.PENDING,
        created_at__lte=cutoff,
    )


def reclaim_reservations(
    reservation_ids: Iterable,
    *,
    cutoff: datetime,
    now: Optional[datetime] = None,
) -> int:
    """
    Cancel the given holds if they are still unpaid and stale.

    The PENDING/age predicate is re-applied inside the UPDATE itself, so a
    hold activated by a webhook after it was selected is left untouched.
    """
    ids = list(reservation_ids)
    if not ids:
        return 0
    now = now or timezone.now()
    return Reservation.objects.filter(
        pk__in=ids,
        booking_status=Reservation.BookingStatus.PENDING,
        created_at__lte=cutoff,
    ).update(
        booking_status=Reservation.BookingStatus.CANCELED,
        canceled_by=Reservation.CanceledBy.SYSTEM,
        cancellation_reason=EXPIRED_REASON,
        canceled_at=now,
        updated_at=now,
    )


def release_stale_holds(listing_id=None, *, now: Optional[datetime] = None) -> int:
    """Reclaim stale unpaid holds, optionally only those on one listing."""
    now = now or timezone.now()
    cutoff = hold_cutoff(now)
    qs = stale_holds(cutoff)
    if listing_id is not None:
        qs = qs.filter(listing_id=listing_id)
    ids = list(qs.values_list("pk", flat=True))
    released = reclaim_reservations(ids, cutoff=cutoff, now=now)
    if released:
        logger.info(
            "reservations: released %s stale hold(s)",
            released,
            extra={"listing_id": listing_id},
        )
    return released


def is_expired_hold(reservation: Reservation) -> bool:
    """True when the reservation was canceled by the expiry sweep."""
    return (
        reservation.booking_status == Reservation.BookingStatus.CANCELED
        and reservation.canceled_by == Reservation.CanceledBy.SYSTEM
        and reservation.cancellation_reason == EXPIRED_REASON
    )


def is_overdue(today: date, reservation: Reservation) -> bool:
    """True once the last rented day is behind us."""
    if not reservation.end_date:
        return False
    return today > reservation.end_date


def assert_can_cancel(reservation: Reservation) -> None:
    if not reservation.is_blocking():
        raise InvalidStateError("Only pending or active reservations can be canceled.")


def mark_canceled(
    reservation: Reservation,
    *,
    actor: CancelActor,
    reason: str | None = None,
    now: Optional[datetime] = None,
) -> list[str]:
    """Apply cancellation fields in memory; returns the fields to save."""
    reservation.booking_status = Reservation.BookingStatus.CANCELED
    reservation.canceled_by = actor
    reservation.cancellation_reason = (reason or "").strip() or DEFAULT_CANCEL_REASON
    reservation.canceled_at = now or timezone.now()
    return [
        "booking_status",
        "canceled_by",
        "cancellation_reason",
        "canceled_at",
        "updated_at",
    ]
