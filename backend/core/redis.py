"""Realtime reservation events on per-user Redis streams."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_STREAM_MAXLEN = 1000


@lru_cache(maxsize=4)
def _client_for(url: str) -> "redis.Redis":
    return redis.Redis.from_url(url)


def get_redis_client() -> Optional["redis.Redis"]:
    """Client for settings.REDIS_URL, or None when realtime events are off."""
    url = getattr(settings, "REDIS_URL", None)
    if not url:
        return None
    return _client_for(url)


def user_stream_key(user_id: int) -> str:
    return f"events:user:{int(user_id)}"


def push_event(user_id: int, event_type: str, payload: Dict[str, Any]) -> str | None:
    """
    Append one event to a user's stream.

    Returns the entry id, or None when Redis is off or the write failed.
    Realtime delivery never fails the caller.
    """
    client = get_redis_client()
    if client is None:
        return None
    fields = {
        "type": event_type,
        "payload": json.dumps(payload or {}, separators=(",", ":"), default=str),
    }
    maxlen = getattr(settings, "REALTIME_STREAM_MAXLEN", DEFAULT_STREAM_MAXLEN)
    try:
        entry_id = client.xadd(user_stream_key(user_id), fields, maxlen=maxlen, approximate=True)
    except Exception:
        logger.warning(
            "events: failed to push %s for user %s",
            event_type,
            user_id,
            exc_info=True,
        )
        return None
    if isinstance(entry_id, bytes):
        entry_id = entry_id.decode("utf-8")
    return str(entry_id)


def push_event_to_users(
    user_ids: Iterable[int | None], event_type: str, payload: Dict[str, Any]
) -> int:
    """Fan an event out to every distinct user id; returns how many were pushed."""
    pushed = 0
    for user_id in {int(uid) for uid in user_ids if uid}:
        if push_event(user_id, event_type, payload) is not None:
            pushed += 1
    return pushed


def reservation_event_payload(reservation) -> Dict[str, Any]:
    return {
        "reservation_id": str(reservation.pk),
        "listing_id": reservation.listing_id,
        "booking_status": reservation.booking_status,
        "rental_status": reservation.rental_status,
    }


def publish_reservation_event(reservation, event_type: str) -> int:
    """Notify both parties of a reservation about a status change."""
    return push_event_to_users(
        [reservation.renter_id, reservation.owner_id],
        event_type,
        reservation_event_payload(reservation),
    )
