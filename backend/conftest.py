"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from decimal import Decimal
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from listings.models import Listing
from reservations.models import Reservation

User = get_user_model()


def _create_user(*, username: str) -> User:
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="testpass",
    )


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def owner_user():
    return _create_user(username="owner")


@pytest.fixture
def renter_user():
    return _create_user(username="renter")


@pytest.fixture
def other_user():
    return _create_user(username="other")


@pytest.fixture
def listing(owner_user):
    return Listing.objects.create(
        owner=owner_user,
        title="Pro Camera Kit",
        description="Mirrorless camera with two lenses.",
        daily_price=Decimal("100.00"),
        is_active=True,
        is_available=True,
    )


@pytest.fixture
def reservation_factory(listing, renter_user) -> Callable[..., Reservation]:
    def _create_reservation(
        *,
        listing_override: Listing | None = None,
        renter=None,
        start_date,
        end_date,
        booking_status=Reservation.BookingStatus.PENDING,
        rental_status=Reservation.RentalStatus.PENDING,
        total_price=Decimal("700.00"),
        **extra_fields,
    ) -> Reservation:
        selected_listing = listing_override or listing
        return Reservation.objects.create(
            listing=selected_listing,
            owner=selected_listing.owner,
            renter=renter or renter_user,
            start_date=start_date,
            end_date=end_date,
            booking_status=booking_status,
            rental_status=rental_status,
            total_price=total_price,
            **extra_fields,
        )

    return _create_reservation


@pytest.fixture
def stripe_session_create(monkeypatch):
    """Replace Stripe session creation; returns the list of captured kwargs."""
    calls: list[dict] = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return {"id": f"cs_test_{len(calls)}", "url": f"https://checkout.test/{len(calls)}"}

    monkeypatch.setattr("payments.stripe_api.stripe.checkout.Session.create", fake_create)
    return calls
