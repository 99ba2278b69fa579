from __future__ import annotations

from datetime import timedelta

from weather_core.cache import format_http_date, parse_http_date
from weather_core.entities import CacheKey, Location


def test_store_then_lookup_before_expiry_returns_same_result(cache, clock):
    key = CacheKey.from_location(Location(59.91, 10.75))
    payload = {"temp": 15.0}
    cache.store(key, payload, format_http_date(clock() + timedelta(minutes=10)), "Wed, 01 May 2024 11:30:00 GMT")

    cached, last_modified = cache.lookup(key)

    assert cached is payload
    assert last_modified == "Wed, 01 May 2024 11:30:00 GMT"
    assert cache.stats() == {"hits": 1, "misses": 0, "keys": 1}


def test_expired_lookup_still_returns_last_modified(cache, clock):
    key = CacheKey.from_location(Location(59.91, 10.75))
    cache.store(key, {"temp": 15.0}, format_http_date(clock() + timedelta(minutes=10)), "Wed, 01 May 2024 11:30:00 GMT")

    clock.advance(10 * 60)

    cached, last_modified = cache.lookup(key)
    assert cached is None
    assert last_modified == "Wed, 01 May 2024 11:30:00 GMT"


def test_lookup_of_unknown_key_is_a_miss(cache):
    cached, last_modified = cache.lookup(CacheKey(1, 2))

    assert cached is None
    assert last_modified is None
    assert cache.misses == 1


def test_unparseable_expires_falls_back_to_ten_minutes(cache, clock):
    key = CacheKey(1, 2)

    entry = cache.store(key, {"temp": 1.0}, "not a date", None)

    assert clock() < entry.expires <= clock() + timedelta(minutes=10)
    assert entry.last_modified is None


def test_missing_expires_falls_back_to_ten_minutes(cache, clock):
    entry = cache.store(CacheKey(1, 2), {"temp": 1.0}, None, None)

    assert entry.expires == clock() + timedelta(minutes=10)


def test_revalidate_keeps_payload_and_last_modified(cache, clock):
    key = CacheKey(1, 2)
    payload = {"temp": 1.0}
    cache.store(key, payload, format_http_date(clock() + timedelta(minutes=5)), "Wed, 01 May 2024 11:30:00 GMT")
    clock.advance(6 * 60)
    new_expiry = clock() + timedelta(minutes=30)

    entry = cache.revalidate(key, format_http_date(new_expiry))

    assert entry.result is payload
    assert entry.last_modified == "Wed, 01 May 2024 11:30:00 GMT"
    assert entry.expires == new_expiry
    assert cache.lookup(key)[0] is payload


def test_revalidate_without_expires_extends_by_fallback(cache, clock):
    key = CacheKey(1, 2)
    cache.store(key, {"temp": 1.0}, format_http_date(clock() + timedelta(minutes=5)), None)
    clock.advance(6 * 60)

    entry = cache.revalidate(key, "garbage")

    assert entry.expires == clock() + timedelta(minutes=10)


def test_revalidate_without_entry_returns_none(cache):
    assert cache.revalidate(CacheKey(1, 2), None) is None


def test_parse_http_date():
    parsed = parse_http_date("Wed, 01 May 2024 12:10:00 GMT")

    assert parsed is not None
    assert (parsed.year, parsed.month, parsed.day, parsed.hour, parsed.minute) == (2024, 5, 1, 12, 10)
    assert parse_http_date("") is None
    assert parse_http_date("yesterday") is None


def test_cache_key_quantization():
    base = CacheKey.from_location(Location(59.912, 10.751, 14), altitude_resolution=20)

    assert CacheKey.from_location(Location(59.95, 10.79, 19), altitude_resolution=20) == base
    assert CacheKey.from_location(Location(60.01, 10.75, 14), altitude_resolution=20) != base
    assert CacheKey.from_location(Location(59.91, 10.85, 14), altitude_resolution=20) != base
    assert CacheKey.from_location(Location(59.91, 10.75, 25), altitude_resolution=20) != base
    assert str(base) == "599-107-0"


def test_cache_key_altitude_bucket_truncates_toward_zero():
    below = CacheKey.from_location(Location(52.37, 4.89, -10), altitude_resolution=20)
    above = CacheKey.from_location(Location(52.37, 4.89, 10), altitude_resolution=20)

    assert below.altitude_bucket == 0
    assert below == above
    assert CacheKey.from_location(Location(31.5, 35.5, -430), altitude_resolution=20).altitude_bucket == -21


def test_cache_key_ignores_altitude_without_resolution():
    low = CacheKey.from_location(Location(45.42, -75.69, 10))
    high = CacheKey.from_location(Location(45.42, -75.69, 900))

    assert low == high
    assert str(low) == "454--756"
