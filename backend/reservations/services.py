"""Reservation operations: checkout, rental handoff and cancellation."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping, Optional

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from core.redis import publish_reservation_event
from listings.services import lock_bookable_listing
from notifications import tasks as notification_tasks
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    create_reservation_checkout_session,
)

from .domain import (
    assert_can_cancel,
    ensure_available,
    is_overdue,
    mark_canceled,
    release_stale_holds,
    validate_reservation_dates,
)
from .errors import ForbiddenError, InternalError, NotFoundError, ValidationError
from .models import Reservation
from .state_machine import Event, GateFlags, StatePair, apply_event

logger = logging.getLogger(__name__)

SETUP_FIELDS = (
    "pickup_address",
    "pickup_instructions",
    "pickup_start_time",
    "pickup_end_time",
    "return_address",
    "return_instructions",
    "return_deadline",
    "owner_notes",
)


def participant_reservations(user) -> QuerySet[Reservation]:
    """Reservations where the user is the renter or the listing owner."""
    if not getattr(user, "is_authenticated", False):
        return Reservation.objects.none()
    return (
        Reservation.objects.select_related("listing", "owner", "renter")
        .filter(Q(owner=user) | Q(renter=user))
        .order_by("-created_at")
    )


def _parse_id(reservation_id) -> uuid.UUID:
    if isinstance(reservation_id, uuid.UUID):
        return reservation_id
    try:
        return uuid.UUID(str(reservation_id))
    except ValueError as exc:
        raise NotFoundError("Reservation not found") from exc


def get_reservation_for(reservation_id, user, *, for_update: bool = False) -> Reservation:
    """
    Load a reservation visible to ``user``.

    Non-participants get NotFoundError so existence is not leaked. With
    ``for_update`` the row is locked; callers must be inside a transaction.
    """
    qs = Reservation.objects.select_related("listing", "owner", "renter")
    if for_update:
        qs = qs.select_for_update(of=("self",))
    reservation = qs.filter(pk=_parse_id(reservation_id)).first()
    if reservation is None or reservation.role_of(getattr(user, "id", None)) is None:
        raise NotFoundError("Reservation not found")
    return reservation


def _queue_notification(task, *args) -> None:
    try:
        task.delay(*args)
    except Exception:
        logger.info(
            "notifications: could not queue %s",
            getattr(task, "name", task),
            exc_info=True,
        )


def _apply_state(reservation: Reservation, new_state: StatePair) -> list[str]:
    """Copy a state pair onto the row; returns the changed field names."""
    changed = []
    if reservation.booking_status != new_state.booking_status:
        reservation.booking_status = new_state.booking_status
        changed.append("booking_status")
    if reservation.rental_status != new_state.rental_status:
        reservation.rental_status = new_state.rental_status
        changed.append("rental_status")
    return changed


# --- Checkout ---------------------------------------------------------------


def create_checkout(
    renter,
    *,
    listing_id,
    start_date: date,
    end_date: date,
    total_price: Decimal,
    pickup_time: Optional[time] = None,
    return_time: Optional[time] = None,
) -> dict[str, str]:
    """
    Place a PENDING hold on the listing and open a Stripe Checkout session.

    The listing row lock serializes concurrent checkouts for the same listing,
    so the availability check and the insert act as one step. Returns
    ``{sessionId, url, reservationId}``.
    """
    validate_reservation_dates(start_date, end_date)
    if total_price is None or total_price <= 0:
        raise ValidationError("Total price must be greater than zero.")

    now = timezone.now()
    with transaction.atomic():
        listing = lock_bookable_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing not found or not available")
        if listing.owner_id == renter.id:
            raise ValidationError("You cannot rent your own listing")
        release_stale_holds(listing.id, now=now)
        ensure_available(listing.id, start_date, end_date)
        reservation = Reservation.objects.create(
            listing=listing,
            owner_id=listing.owner_id,
            renter=renter,
            start_date=start_date,
            end_date=end_date,
            total_price=total_price,
            pickup_time_preference=pickup_time,
            return_time_preference=return_time,
        )

    try:
        session_id, url = create_reservation_checkout_session(reservation)
    except (StripeConfigurationError, StripeTransientError, StripePaymentError) as exc:
        logger.exception(
            "checkout: could not create Stripe session",
            extra={"reservation_id": str(reservation.pk), "listing_id": listing.id},
        )
        raise InternalError("Unable to start checkout; please try again.") from exc

    Reservation.objects.filter(pk=reservation.pk).update(external_session_id=session_id)
    reservation.external_session_id = session_id
    logger.info(
        "checkout: reservation %s created",
        reservation.pk,
        extra={"listing_id": listing.id, "session_id": session_id},
    )
    return {"sessionId": session_id, "url": url, "reservationId": str(reservation.pk)}


# --- Rental handoff ---------------------------------------------------------


def setup_rental(reservation_id, actor, details: Mapping[str, Any]) -> Reservation:
    """Owner records pickup/return logistics; moves PENDING to READY_FOR_PICKUP."""
    now = timezone.now()
    with transaction.atomic():
        reservation = get_reservation_for(reservation_id, actor, for_update=True)
        if reservation.role_of(actor.id) != "owner":
            raise ForbiddenError("Only the listing owner can set up this rental.")
        first_setup = reservation.rental_status == Reservation.RentalStatus.PENDING
        new_state = apply_event(StatePair.of(reservation), Event.SETUP)

        update_fields = _apply_state(reservation, new_state)
        for field in SETUP_FIELDS:
            if field in details:
                setattr(reservation, field, details[field])
                update_fields.append(field)
        reservation.setup_completed_at = now
        update_fields += ["setup_completed_at", "updated_at"]
        reservation.save(update_fields=update_fields)

        if first_setup:
            pk = str(reservation.pk)
            transaction.on_commit(
                lambda: _queue_notification(notification_tasks.send_rental_ready_email, pk)
            )
        transaction.on_commit(
            lambda: publish_reservation_event(reservation, "reservation:rental_status")
        )
    return reservation


def _set_confirmation(
    reservation_id,
    actor,
    *,
    phase: str,
    confirmed: bool,
    today: Optional[date] = None,
) -> Reservation:
    """Shared pickup/return gate: write the actor's flag, then evaluate the gate."""
    now = timezone.now()
    today = today or timezone.localdate()
    if phase == "pickup":
        event = Event.CONFIRM_PICKUP if confirmed else Event.UNCONFIRM_PICKUP
    else:
        event = Event.CONFIRM_RETURN if confirmed else Event.UNCONFIRM_RETURN

    with transaction.atomic():
        reservation = get_reservation_for(reservation_id, actor, for_update=True)
        role = reservation.role_of(actor.id)
        update_fields: list[str] = []

        if phase == "return":
            update_fields += _advance_if_overdue(reservation, today, now)
        advanced = "rental_status" in update_fields

        flag = f"{phase}_confirmed_by_{role}"
        renter_flag = getattr(reservation, f"{phase}_confirmed_by_renter")
        owner_flag = getattr(reservation, f"{phase}_confirmed_by_owner")
        gate = GateFlags(
            renter=confirmed if role == "renter" else renter_flag,
            owner=confirmed if role == "owner" else owner_flag,
        )
        new_state = apply_event(StatePair.of(reservation), event, gate)

        setattr(reservation, flag, confirmed)
        setattr(reservation, f"{flag}_at", now if confirmed else None)
        update_fields += [flag, f"{flag}_at"]

        changed = _apply_state(reservation, new_state)
        if changed:
            update_fields += changed
            if phase == "pickup":
                reservation.pickup_confirmed_at = now
                update_fields.append("pickup_confirmed_at")
            else:
                reservation.return_confirmed_at = now
                reservation.completed_at = now
                update_fields += ["return_confirmed_at", "completed_at"]
        reservation.save(update_fields=list(dict.fromkeys(update_fields + ["updated_at"])))

        event_type = (
            "reservation:rental_status" if changed or advanced else "reservation:confirmation"
        )
        transaction.on_commit(lambda: publish_reservation_event(reservation, event_type))

    if changed:
        logger.info(
            "reservations: %s gate fired for %s",
            phase,
            reservation.pk,
            extra={"rental_status": reservation.rental_status},
        )
    return reservation


def set_pickup_confirmation(
    reservation_id, actor, confirmed: bool, *, today: Optional[date] = None
) -> Reservation:
    return _set_confirmation(
        reservation_id, actor, phase="pickup", confirmed=confirmed, today=today
    )


def set_return_confirmation(
    reservation_id, actor, confirmed: bool, *, today: Optional[date] = None
) -> Reservation:
    return _set_confirmation(
        reservation_id, actor, phase="return", confirmed=confirmed, today=today
    )


def initiate_return(reservation_id, actor) -> Reservation:
    """Either party starts the return before the rental period is over."""
    now = timezone.now()
    with transaction.atomic():
        reservation = get_reservation_for(reservation_id, actor, for_update=True)
        new_state = apply_event(StatePair.of(reservation), Event.INITIATE_RETURN)
        update_fields = _apply_state(reservation, new_state)
        reservation.return_requested_at = now
        reservation.save(update_fields=update_fields + ["return_requested_at", "updated_at"])
        transaction.on_commit(
            lambda: publish_reservation_event(reservation, "reservation:rental_status")
        )
    return reservation


def _advance_if_overdue(reservation: Reservation, today: date, now: datetime) -> list[str]:
    """Time trigger on a locked row: IN_PROGRESS past the end date awaits return."""
    if (
        reservation.booking_status != Reservation.BookingStatus.ACTIVE
        or reservation.rental_status != Reservation.RentalStatus.IN_PROGRESS
        or not is_overdue(today, reservation)
    ):
        return []
    new_state = apply_event(StatePair.of(reservation), Event.PERIOD_ELAPSED)
    changed = _apply_state(reservation, new_state)
    if reservation.return_requested_at is None:
        reservation.return_requested_at = now
        changed.append("return_requested_at")
    return changed


def needs_refresh(reservation: Reservation, today: Optional[date] = None) -> bool:
    today = today or timezone.localdate()
    return (
        reservation.booking_status == Reservation.BookingStatus.ACTIVE
        and reservation.rental_status == Reservation.RentalStatus.IN_PROGRESS
        and is_overdue(today, reservation)
    )


def refresh_rental_status(reservation_id, *, today: Optional[date] = None) -> Optional[Reservation]:
    """
    Apply the time-driven transition to one reservation if it is due.

    Returns the (possibly updated) reservation, or None when it does not exist.
    """
    now = timezone.now()
    today = today or timezone.localdate()
    with transaction.atomic():
        reservation = (
            Reservation.objects.select_for_update().filter(pk=_parse_id(reservation_id)).first()
        )
        if reservation is None:
            return None
        changed = _advance_if_overdue(reservation, today, now)
        if changed:
            reservation.save(update_fields=changed + ["updated_at"])
            transaction.on_commit(
                lambda: publish_reservation_event(reservation, "reservation:rental_status")
            )
    return reservation


# --- Cancellation -----------------------------------------------------------


def cancel_reservation(reservation_id, actor, reason: Optional[str] = None) -> Reservation:
    """Renter or owner cancels a pending or active reservation."""
    with transaction.atomic():
        reservation = get_reservation_for(reservation_id, actor, for_update=True)
        assert_can_cancel(reservation)
        update_fields = mark_canceled(
            reservation,
            actor=reservation.role_of(actor.id),
            reason=reason,
        )
        reservation.save(update_fields=update_fields)

        pk = str(reservation.pk)
        transaction.on_commit(
            lambda: _queue_notification(notification_tasks.send_reservation_canceled_email, pk)
        )
        transaction.on_commit(
            lambda: publish_reservation_event(reservation, "reservation:canceled")
        )

    logger.info(
        "reservations: %s canceled by %s",
        reservation.pk,
        reservation.canceled_by,
        extra={"listing_id": reservation.listing_id},
    )
    return reservation
