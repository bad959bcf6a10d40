import json
from datetime import date

import pytest

from core import redis as core_redis


class FakeRedis:
    def __init__(self):
        self.entries = []

    def xadd(self, key, data, maxlen=None, approximate=None):
        self.entries.append((key, data))
        self.maxlen = maxlen
        return f"{len(self.entries)}-0".encode()


@pytest.fixture
def fake_redis(monkeypatch, settings):
    settings.REDIS_URL = "redis://example:6379/0"
    client = FakeRedis()
    monkeypatch.setattr(core_redis, "get_redis_client", lambda: client)
    return client


def test_push_event_is_skipped_without_redis(settings):
    settings.REDIS_URL = ""

    assert core_redis.push_event(1, "reservation:activated", {}) is None


def test_push_event_writes_stream_entry(fake_redis):
    entry_id = core_redis.push_event(7, "reservation:activated", {"reservation_id": "abc"})

    assert entry_id == "1-0"
    key, data = fake_redis.entries[0]
    assert key == "events:user:7"
    assert data["type"] == "reservation:activated"
    assert json.loads(data["payload"]) == {"reservation_id": "abc"}


def test_push_event_to_users_deduplicates(fake_redis):
    pushed = core_redis.push_event_to_users([3, 3, None, 4], "reservation:canceled", {})

    assert pushed == 2
    assert sorted(key for key, _ in fake_redis.entries) == ["events:user:3", "events:user:4"]


def test_push_event_swallows_redis_failures(monkeypatch, settings):
    settings.REDIS_URL = "redis://example:6379/0"

    class Broken:
        def xadd(self, *args, **kwargs):
            raise ConnectionError("down")

    monkeypatch.setattr(core_redis, "get_redis_client", lambda: Broken())

    assert core_redis.push_event(1, "reservation:activated", {}) is None


def test_stream_length_follows_setting(fake_redis, settings):
    settings.REALTIME_STREAM_MAXLEN = 50

    core_redis.push_event(1, "reservation:activated", {})

    assert fake_redis.maxlen == 50


@pytest.mark.django_db
def test_publish_reservation_event_reaches_both_parties(fake_redis, reservation_factory):
    reservation = reservation_factory(start_date=date(2024, 6, 1), end_date=date(2024, 6, 3))

    pushed = core_redis.publish_reservation_event(reservation, "reservation:canceled")

    assert pushed == 2
    keys = sorted(key for key, _ in fake_redis.entries)
    assert keys == sorted(
        [
            core_redis.user_stream_key(reservation.renter_id),
            core_redis.user_stream_key(reservation.owner_id),
        ]
    )
    payload = json.loads(fake_redis.entries[0][1]["payload"])
    assert payload == {
        "reservation_id": str(reservation.pk),
        "listing_id": reservation.listing_id,
        "booking_status": "PENDING",
        "rental_status": "PENDING",
    }


@pytest.mark.django_db
def test_healthz(api_client):
    resp = api_client.get("/api/healthz")

    assert resp.status_code == 200
