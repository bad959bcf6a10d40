"""
Rental status transition table.

Pure functions over (booking_status, rental_status) pairs; no database access.
Services load and lock the row, call ``apply_event`` and persist the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import InvalidStateError
from .models import Reservation

Booking = Reservation.BookingStatus
Rental = Reservation.RentalStatus


class Event(str, Enum):
    SETUP = "setup"
    CONFIRM_PICKUP = "confirm_pickup"
    UNCONFIRM_PICKUP = "unconfirm_pickup"
    INITIATE_RETURN = "initiate_return"
    PERIOD_ELAPSED = "period_elapsed"
    CONFIRM_RETURN = "confirm_return"
    UNCONFIRM_RETURN = "unconfirm_return"


@dataclass(frozen=True)
class StatePair:
    booking_status: str
    rental_status: str

    @classmethod
    def of(cls, reservation: Reservation) -> "StatePair":
        return cls(reservation.booking_status, reservation.rental_status)


@dataclass(frozen=True)
class GateFlags:
    """Post-update confirmation flags of both parties."""

    renter: bool = False
    owner: bool = False

    @property
    def both(self) -> bool:
        return bool(self.renter and self.owner)


PERMITTED_STATES: dict[Event, frozenset[str]] = {
    Event.SETUP: frozenset({Rental.PENDING, Rental.READY_FOR_PICKUP}),
    Event.CONFIRM_PICKUP: frozenset({Rental.READY_FOR_PICKUP}),
    Event.UNCONFIRM_PICKUP: frozenset({Rental.READY_FOR_PICKUP}),
    Event.INITIATE_RETURN: frozenset({Rental.IN_PROGRESS}),
    Event.PERIOD_ELAPSED: frozenset({Rental.IN_PROGRESS}),
    Event.CONFIRM_RETURN: frozenset({Rental.AWAITING_RETURN}),
    Event.UNCONFIRM_RETURN: frozenset({Rental.AWAITING_RETURN}),
}

# Transitions that immediately chain into the next state.
FOLLOW_UPS: dict[str, StatePair] = {
    Rental.PICKED_UP: StatePair(Booking.ACTIVE, Rental.IN_PROGRESS),
    Rental.RETURNED: StatePair(Booking.COMPLETED, Rental.COMPLETED),
}

_REJECTIONS: dict[Event, str] = {
    Event.SETUP: "Rental setup is only possible before pickup.",
    Event.CONFIRM_PICKUP: "Pickup can only be confirmed when the rental is ready for pickup.",
    Event.UNCONFIRM_PICKUP: "Pickup confirmation can no longer be withdrawn.",
    Event.INITIATE_RETURN: "A return can only be started while the rental is in progress.",
    Event.PERIOD_ELAPSED: "The rental is not in progress.",
    Event.CONFIRM_RETURN: "Return can only be confirmed once the rental is awaiting return.",
    Event.UNCONFIRM_RETURN: "Return confirmation can no longer be withdrawn.",
}


def can_apply(state: StatePair, event: Event) -> bool:
    return state.booking_status == Booking.ACTIVE and state.rental_status in PERMITTED_STATES[
        event
    ]


def settle(state: StatePair) -> StatePair:
    """Follow automatic transitions until a resting state is reached."""
    while state.rental_status in FOLLOW_UPS:
        state = FOLLOW_UPS[state.rental_status]
    return state


def apply_event(
    state: StatePair,
    event: Event | str,
    gate: Optional[GateFlags] = None,
) -> StatePair:
    """
    Return the pair reached by applying ``event`` to ``state``.

    Gate events (confirm/unconfirm pickup or return) take the post-update
    confirmation flags; the gated transition fires only when both are set.
    Raises InvalidStateError when the event is not permitted.
    """
    event = Event(event)
    if state.booking_status != Booking.ACTIVE:
        raise InvalidStateError("Reservation must be active for this action.")
    if state.rental_status not in PERMITTED_STATES[event]:
        raise InvalidStateError(_REJECTIONS[event])

    if event is Event.SETUP:
        return StatePair(Booking.ACTIVE, Rental.READY_FOR_PICKUP)
    if event in (Event.INITIATE_RETURN, Event.PERIOD_ELAPSED):
        return StatePair(Booking.ACTIVE, Rental.AWAITING_RETURN)
    if event is Event.CONFIRM_PICKUP and gate is not None and gate.both:
        return settle(StatePair(Booking.ACTIVE, Rental.PICKED_UP))
    if event is Event.CONFIRM_RETURN and gate is not None and gate.both:
        return settle(StatePair(Booking.ACTIVE, Rental.RETURNED))
    return state
