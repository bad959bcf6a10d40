from datetime import date
from decimal import Decimal

import pytest
from django.core import mail

from notifications import tasks
from notifications.models import NotificationLog
from payments.models import Payment
from reservations.models import Reservation


@pytest.fixture
def reservation(reservation_factory):
    return reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        booking_status=Reservation.BookingStatus.ACTIVE,
    )


@pytest.mark.django_db
def test_confirmed_email_reaches_renter_and_owner(settings, reservation):
    settings.FRONTEND_ORIGIN = "https://frontend.example"

    tasks.send_reservation_confirmed_email.run(str(reservation.pk))

    assert sorted(message.to[0] for message in mail.outbox) == [
        "owner@example.com",
        "renter@example.com",
    ]
    renter_mail = next(m for m in mail.outbox if m.to == ["renter@example.com"])
    assert "Pro Camera Kit" in renter_mail.subject
    assert f"https://frontend.example/reservations/{reservation.pk}" in renter_mail.body
    assert NotificationLog.objects.filter(status=NotificationLog.Status.SENT).count() == 2


@pytest.mark.django_db
def test_rental_ready_email_lists_pickup_details(reservation):
    reservation.pickup_address = "12 Main St"
    reservation.pickup_instructions = "Side door"
    reservation.save(update_fields=["pickup_address", "pickup_instructions"])

    tasks.send_rental_ready_email.run(str(reservation.pk))

    assert len(mail.outbox) == 1
    assert "12 Main St" in mail.outbox[0].body
    assert "Side door" in mail.outbox[0].body


@pytest.mark.django_db
def test_canceled_email_skips_the_party_who_canceled(reservation):
    reservation.booking_status = Reservation.BookingStatus.CANCELED
    reservation.canceled_by = Reservation.CanceledBy.RENTER
    reservation.cancellation_reason = "Plans changed"
    reservation.save()

    tasks.send_reservation_canceled_email.run(str(reservation.pk))

    assert [m.to for m in mail.outbox] == [["owner@example.com"]]
    assert "Plans changed" in mail.outbox[0].body


@pytest.mark.django_db
def test_missing_recipient_is_logged_as_failed(reservation):
    renter = reservation.renter
    renter.email = ""
    renter.save(update_fields=["email"])

    tasks.send_rental_ready_email.run(str(reservation.pk))

    assert mail.outbox == []
    log = NotificationLog.objects.get()
    assert log.status == NotificationLog.Status.FAILED
    assert log.reservation_id == reservation.pk


@pytest.mark.django_db
def test_refund_email_mentions_amount(reservation):
    payment = Payment.objects.create(
        reservation=reservation,
        user=reservation.renter,
        listing=reservation.listing,
        external_session_id="cs_refund",
        amount=Decimal("700.00"),
    )

    tasks.send_payment_needs_refund_email.run(str(payment.pk))

    assert len(mail.outbox) == 1
    assert "700.00 USD" in mail.outbox[0].body


@pytest.mark.django_db
def test_unknown_reservation_is_a_no_op():
    tasks.send_reservation_confirmed_email.run("00000000-0000-0000-0000-000000000000")

    assert mail.outbox == []
