"""Read-only listing lookups used by the reservation engine."""

from __future__ import annotations

from django.db.models import QuerySet

from .models import Listing


def bookable_listings() -> QuerySet[Listing]:
    """Listings that currently accept new reservations."""
    return Listing.objects.filter(is_active=True, is_available=True)


def lock_bookable_listing(listing_id) -> Listing | None:
    """
    Fetch a bookable listing and take a row lock on it.

    Must be called inside ``transaction.atomic()``; the lock serializes every
    checkout for the same listing until the surrounding transaction ends.
    Only the listing row is locked, not the joined owner row.
    """
    return (
        bookable_listings()
        .select_for_update(of=("self",))
        .select_related("owner")
        .filter(pk=listing_id)
        .first()
    )


def lock_listing(listing_id) -> Listing | None:
    """Row-lock a listing regardless of its availability flags."""
    return Listing.objects.select_for_update().filter(pk=listing_id).first()
