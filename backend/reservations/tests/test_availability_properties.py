"""Double-booking checks over many randomly overlapping checkout attempts."""

from __future__ import annotations

import random
import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.db import connection, connections

from reservations.errors import ConflictError
from reservations.models import BLOCKING_STATUSES, Reservation
from reservations.services import create_checkout

User = get_user_model()
BASE = date(2024, 6, 1)


def _random_ranges(seed: int, count: int) -> list[tuple[date, date]]:
    rng = random.Random(seed)
    ranges = []
    for _ in range(count):
        start = BASE + timedelta(days=rng.randint(0, 40))
        ranges.append((start, start + timedelta(days=rng.randint(0, 6))))
    return ranges


def _overlaps(a: tuple[date, date], b: tuple[date, date]) -> bool:
    return a[1] >= b[0] and a[0] <= b[1]


def _assert_disjoint(listing) -> list[tuple[date, date]]:
    held = list(
        Reservation.objects.filter(listing=listing, booking_status__in=BLOCKING_STATUSES)
        .order_by("start_date")
        .values_list("start_date", "end_date")
    )
    for i, first in enumerate(held):
        for second in held[i + 1 :]:
            assert not _overlaps(first, second), (first, second)
    return held


@pytest.mark.django_db
@pytest.mark.parametrize("seed", [7, 21, 1337])
def test_sequential_attempts_accept_exactly_the_greedy_disjoint_subset(
    listing, stripe_session_create, seed
):
    attempts = _random_ranges(seed, 25)
    renters = [
        User.objects.create_user(username=f"renter-{i}", password="x") for i in range(len(attempts))
    ]

    expected: list[tuple[date, date]] = []
    for renter, requested in zip(renters, attempts):
        should_succeed = not any(_overlaps(requested, kept) for kept in expected)
        try:
            create_checkout(
                renter,
                listing_id=listing.id,
                start_date=requested[0],
                end_date=requested[1],
                total_price=Decimal("100.00"),
            )
        except ConflictError:
            assert not should_succeed, requested
        else:
            assert should_succeed, requested
            expected.append(requested)

    held = _assert_disjoint(listing)
    assert sorted(held) == sorted(expected)


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(
    connection.vendor != "postgresql",
    reason="row locks are only enforced on PostgreSQL",
)
def test_concurrent_checkouts_never_double_book(listing, stripe_session_create):
    attempts = _random_ranges(99, 12) + [(BASE, BASE + timedelta(days=3))] * 4
    renters = [
        User.objects.create_user(username=f"racer-{i}", password="x") for i in range(len(attempts))
    ]
    barrier = threading.Barrier(len(attempts))
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(renter, requested):
        result = "error"
        try:
            barrier.wait()
            create_checkout(
                renter,
                listing_id=listing.id,
                start_date=requested[0],
                end_date=requested[1],
                total_price=Decimal("100.00"),
            )
            result = "ok"
        except ConflictError:
            result = "conflict"
        finally:
            connections.close_all()
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=attempt, args=(renter, requested))
        for renter, requested in zip(renters, attempts)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    held = _assert_disjoint(listing)
    assert len(outcomes) == len(attempts)
    assert outcomes.count("ok") == len(held)
    assert outcomes.count("ok") >= 1
