from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
import stripe

from payments import stripe_api

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize(
    "error,expected",
    [
        (stripe.error.RateLimitError("slow down"), stripe_api.StripeTransientError),
        (stripe.error.APIConnectionError("offline"), stripe_api.StripeTransientError),
        (stripe.error.AuthenticationError("bad key"), stripe_api.StripeConfigurationError),
        (stripe.error.InvalidRequestError("bad param", "amount"), stripe_api.StripePaymentError),
    ],
)
def test_handle_stripe_error_maps_sdk_errors(error, expected):
    with pytest.raises(expected):
        stripe_api._handle_stripe_error(error)


def test_to_cents_rounds_half_up():
    assert stripe_api._to_cents(Decimal("10.005")) == 1001
    assert stripe_api._to_cents(Decimal("700")) == 70000


def test_session_urls_use_frontend_origin(reservation_factory, settings, stripe_session_create):
    settings.FRONTEND_ORIGIN = "https://rent.example.com/"
    reservation = reservation_factory(
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 7),
        total_price=Decimal("700.00"),
    )

    session_id, url = stripe_api.create_reservation_checkout_session(reservation)

    call = stripe_session_create[0]
    assert (session_id, url) == ("cs_test_1", "https://checkout.test/1")
    assert call["success_url"].startswith(
        f"https://rent.example.com/reservations/{reservation.pk}?status=success"
    )
    assert call["success_url"].endswith("session_id={CHECKOUT_SESSION_ID}")
    assert call["cancel_url"] == (
        f"https://rent.example.com/listings/{reservation.listing_id}?status=cancel"
    )
    assert call["client_reference_id"] == f"reservation:{reservation.pk}"


def test_session_without_url_is_configuration_error(reservation_factory, monkeypatch):
    reservation = reservation_factory(start_date=date(2024, 6, 1), end_date=date(2024, 6, 7))
    monkeypatch.setattr(
        "payments.stripe_api.stripe.checkout.Session.create",
        lambda **kwargs: {"id": "cs_x"},
    )

    with pytest.raises(stripe_api.StripeConfigurationError):
        stripe_api.create_reservation_checkout_session(reservation)
