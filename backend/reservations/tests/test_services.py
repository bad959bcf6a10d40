"""Tests for rental handoff and cancellation services."""

from __future__ import annotations

from datetime import date, time

import pytest

from reservations import services
from reservations.errors import ForbiddenError, InvalidStateError, NotFoundError
from reservations.models import Reservation

pytestmark = pytest.mark.django_db

B = Reservation.BookingStatus
R = Reservation.RentalStatus


@pytest.fixture
def active_reservation(reservation_factory):
    return reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        booking_status=B.ACTIVE,
    )


@pytest.fixture
def ready_reservation(reservation_factory):
    return reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        booking_status=B.ACTIVE,
        rental_status=R.READY_FOR_PICKUP,
    )


@pytest.fixture
def in_progress_reservation(reservation_factory):
    return reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        booking_status=B.ACTIVE,
        rental_status=R.IN_PROGRESS,
    )


def test_setup_rental_records_logistics(
    active_reservation, owner_user, django_capture_on_commit_callbacks, monkeypatch
):
    queued = []
    monkeypatch.setattr(
        "reservations.services.notification_tasks.send_rental_ready_email.delay",
        lambda reservation_id: queued.append(reservation_id),
    )

    with django_capture_on_commit_callbacks(execute=True):
        reservation = services.setup_rental(
            active_reservation.pk,
            owner_user,
            {
                "pickup_address": "12 Main St",
                "pickup_start_time": time(9, 0),
                "pickup_end_time": time(11, 0),
                "return_address": "12 Main St",
                "owner_notes": "Ring the bell",
            },
        )

    reservation.refresh_from_db()
    assert reservation.rental_status == R.READY_FOR_PICKUP
    assert reservation.pickup_address == "12 Main St"
    assert reservation.setup_completed_at is not None
    assert queued == [str(reservation.pk)]


def test_setup_rental_is_owner_only(active_reservation, renter_user):
    with pytest.raises(ForbiddenError):
        services.setup_rental(active_reservation.pk, renter_user, {"pickup_address": "x"})


def test_setup_rental_requires_active_booking(reservation_factory, owner_user):
    pending = reservation_factory(start_date=date(2024, 6, 1), end_date=date(2024, 6, 7))

    with pytest.raises(InvalidStateError):
        services.setup_rental(pending.pk, owner_user, {"pickup_address": "x"})

    pending.refresh_from_db()
    assert pending.rental_status == R.PENDING
    assert pending.pickup_address == ""


def test_non_participant_gets_not_found(active_reservation, other_user):
    with pytest.raises(NotFoundError):
        services.setup_rental(active_reservation.pk, other_user, {})
    with pytest.raises(NotFoundError):
        services.cancel_reservation(active_reservation.pk, other_user)


def test_unknown_or_malformed_id_is_not_found(owner_user):
    with pytest.raises(NotFoundError):
        services.get_reservation_for("not-a-uuid", owner_user)


def test_pickup_gate_needs_both_parties(ready_reservation, renter_user, owner_user):
    after_renter = services.set_pickup_confirmation(ready_reservation.pk, renter_user, True)
    assert after_renter.rental_status == R.READY_FOR_PICKUP
    assert after_renter.pickup_confirmed_by_renter is True
    assert after_renter.pickup_confirmed_by_renter_at is not None

    after_owner = services.set_pickup_confirmation(ready_reservation.pk, owner_user, True)

    after_owner.refresh_from_db()
    assert after_owner.rental_status == R.IN_PROGRESS
    assert after_owner.pickup_confirmed_at is not None


def test_unconfirming_pickup_prevents_the_gate(ready_reservation, renter_user, owner_user):
    services.set_pickup_confirmation(ready_reservation.pk, renter_user, True)
    services.set_pickup_confirmation(ready_reservation.pk, renter_user, False)
    reservation = services.set_pickup_confirmation(ready_reservation.pk, owner_user, True)

    reservation.refresh_from_db()
    assert reservation.rental_status == R.READY_FOR_PICKUP
    assert reservation.pickup_confirmed_by_renter is False
    assert reservation.pickup_confirmed_by_renter_at is None
    assert reservation.pickup_confirmed_by_owner is True


def test_unconfirm_after_gate_is_rejected(in_progress_reservation, renter_user):
    with pytest.raises(InvalidStateError):
        services.set_pickup_confirmation(in_progress_reservation.pk, renter_user, False)

    in_progress_reservation.refresh_from_db()
    assert in_progress_reservation.rental_status == R.IN_PROGRESS


def test_confirming_return_before_pickup_is_rejected(ready_reservation, renter_user):
    with pytest.raises(InvalidStateError):
        services.set_return_confirmation(
            ready_reservation.pk, renter_user, True, today=date(2024, 6, 3)
        )

    ready_reservation.refresh_from_db()
    assert ready_reservation.return_confirmed_by_renter is False


def test_initiate_return_by_either_party(in_progress_reservation, renter_user):
    reservation = services.initiate_return(in_progress_reservation.pk, renter_user)

    assert reservation.rental_status == R.AWAITING_RETURN
    assert reservation.return_requested_at is not None


def test_refresh_rental_status_waits_for_end_date(in_progress_reservation):
    unchanged = services.refresh_rental_status(in_progress_reservation.pk, today=date(2024, 6, 7))
    assert unchanged.rental_status == R.IN_PROGRESS

    advanced = services.refresh_rental_status(in_progress_reservation.pk, today=date(2024, 6, 8))
    assert advanced.rental_status == R.AWAITING_RETURN


def test_return_confirmation_applies_elapsed_period_first(
    in_progress_reservation, renter_user, owner_user
):
    services.set_return_confirmation(
        in_progress_reservation.pk, renter_user, True, today=date(2024, 6, 8)
    )
    reservation = services.set_return_confirmation(
        in_progress_reservation.pk, owner_user, True, today=date(2024, 6, 8)
    )

    reservation.refresh_from_db()
    assert reservation.rental_status == R.COMPLETED
    assert reservation.booking_status == B.COMPLETED
    assert reservation.return_confirmed_at is not None
    assert reservation.completed_at is not None


def test_return_confirmation_during_rental_period_is_rejected(in_progress_reservation, renter_user):
    with pytest.raises(InvalidStateError):
        services.set_return_confirmation(
            in_progress_reservation.pk, renter_user, True, today=date(2024, 6, 5)
        )


def test_cancel_pending_reservation_by_renter(
    reservation_factory, renter_user, django_capture_on_commit_callbacks, monkeypatch
):
    reservation = reservation_factory(start_date=date(2024, 6, 1), end_date=date(2024, 6, 7))
    queued = []
    monkeypatch.setattr(
        "reservations.services.notification_tasks.send_reservation_canceled_email.delay",
        lambda reservation_id: queued.append(reservation_id),
    )

    with django_capture_on_commit_callbacks(execute=True):
        canceled = services.cancel_reservation(reservation.pk, renter_user, "Plans changed")

    canceled.refresh_from_db()
    assert canceled.booking_status == B.CANCELED
    assert canceled.canceled_by == Reservation.CanceledBy.RENTER
    assert canceled.cancellation_reason == "Plans changed"
    assert canceled.canceled_at is not None
    assert queued == [str(reservation.pk)]


def test_cancel_active_reservation_by_owner_uses_default_reason(active_reservation, owner_user):
    canceled = services.cancel_reservation(active_reservation.pk, owner_user)

    assert canceled.canceled_by == Reservation.CanceledBy.OWNER
    assert canceled.cancellation_reason == "User requested cancellation"


def test_cancel_completed_reservation_is_rejected_without_change(reservation_factory, renter_user):
    completed = reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        booking_status=B.COMPLETED,
        rental_status=R.COMPLETED,
    )
    before = Reservation.objects.filter(pk=completed.pk).values().get()

    with pytest.raises(InvalidStateError):
        services.cancel_reservation(completed.pk, renter_user)

    assert Reservation.objects.filter(pk=completed.pk).values().get() == before
