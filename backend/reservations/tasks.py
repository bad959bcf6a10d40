"""Celery tasks for reservations."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from celery import shared_task
from django.utils import timezone

from .domain import hold_cutoff, reclaim_reservations, stale_holds
from .models import Reservation
from .services import refresh_rental_status

logger = logging.getLogger(__name__)


def expire_pending_reservations_now(now: Optional[datetime] = None) -> int:
    """
    Cancel unpaid holds older than the hold window.

    Selection and mutation are separate steps; the mutation re-checks the
    PENDING status so a reservation activated in between is left alone.
    """
    now = now or timezone.now()
    cutoff = hold_cutoff(now)
    candidate_ids = list(stale_holds(cutoff).values_list("pk", flat=True))
    expired_count = reclaim_reservations(candidate_ids, cutoff=cutoff, now=now)
    if expired_count:
        logger.info(
            "reservations: expired %s of %s stale hold(s)",
            expired_count,
            len(candidate_ids),
        )
    return expired_count


@shared_task(name="reservations.expire_pending_reservations")
def expire_pending_reservations() -> int:
    """Returns the number of reservations reclaimed."""
    return expire_pending_reservations_now()


def advance_overdue_rentals_now(today: Optional[date] = None) -> int:
    today = today or timezone.localdate()
    advanced = 0
    candidate_ids = Reservation.objects.filter(
        booking_status=Reservation.BookingStatus.ACTIVE,
        rental_status=Reservation.RentalStatus.IN_PROGRESS,
        end_date__lt=today,
    ).values_list("pk", flat=True)

    for reservation_id in list(candidate_ids):
        try:
            reservation = refresh_rental_status(reservation_id, today=today)
        except Exception:
            logger.exception("advance_overdue_rentals: failed for reservation %s", reservation_id)
            continue
        if (
            reservation is not None
            and reservation.rental_status == Reservation.RentalStatus.AWAITING_RETURN
        ):
            advanced += 1
    return advanced


@shared_task(name="reservations.advance_overdue_rentals")
def advance_overdue_rentals() -> int:
    """
    Move rentals whose period has ended to AWAITING_RETURN.

    Returns the number of reservations advanced.
    """
    return advance_overdue_rentals_now()
