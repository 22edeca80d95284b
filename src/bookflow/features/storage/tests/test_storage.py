from __future__ import annotations

from datetime import UTC, datetime

import pytest
import simpy

from bookflow.core.types import SimClock
from bookflow.features.storage.service import (
    CookieJar,
    MemoryStorage,
    SafeStore,
    StorageUnavailableError,
    UnavailableStorage,
)


def _clock(env: simpy.Environment) -> SimClock:
    return SimClock(env, datetime(2026, 1, 1, tzinfo=UTC))


def test_safe_store_round_trips_through_memory_backend():
    store = SafeStore(MemoryStorage())

    assert store.get("k") is None
    assert store.set("k", "v") is True
    assert store.get("k") == "v"
    assert store.remove("k") is True
    assert store.get("k") is None


def test_safe_store_absorbs_backend_failures():
    store = SafeStore(UnavailableStorage(), debug=True)

    assert store.get("k") is None
    assert store.set("k", "v") is False
    assert store.remove("k") is False


def test_safe_store_without_backend_reports_no_data():
    store = SafeStore(None)

    assert store.get("k") is None
    assert store.set("k", "v") is False


def test_unavailable_storage_raises_directly():
    with pytest.raises(StorageUnavailableError):
        UnavailableStorage().get_item("k")


def test_cookie_jar_from_header_ignores_fragments_without_equals():
    jar = CookieJar.from_header("a=1; junk; =nameless; b = two ")

    assert jar.get("a") == "1"
    assert jar.get("b") == "two"
    assert jar.get("junk") is None
    assert jar.header() == "a=1; b=two"


def test_cookie_jar_expires_on_the_clock():
    env = simpy.Environment()
    jar = CookieJar(clock=_clock(env))

    jar.set("short", "x", max_age_s=10)
    jar.set("session", "y")
    assert jar.has("short")

    env.run(until=10)

    assert jar.get("short") is None
    assert jar.get("session") == "y"


def test_cookie_jar_rejects_invalid_names():
    jar = CookieJar()

    with pytest.raises(ValueError):
        jar.set("bad name", "v")
    with pytest.raises(ValueError):
        jar.set("", "v")


def test_cookie_jar_keeps_attributes():
    env = simpy.Environment()
    jar = CookieJar(clock=_clock(env))

    jar.set("ab_test_variant", "user_1_abc", max_age_s=60, path="/", same_site="Lax")
    c = jar.get_cookie("ab_test_variant")

    assert c is not None
    assert c.same_site == "Lax"
    assert c.expires_ms == _clock(env).now_ms() + 60_000

    jar.remove("ab_test_variant")
    assert not jar.has("ab_test_variant")
