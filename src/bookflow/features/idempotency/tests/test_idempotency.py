from __future__ import annotations

from bookflow.features.idempotency.service import IdempotencyGuard
from bookflow.features.storage.service import MemoryStorage, SafeStore, UnavailableStorage


def test_acquire_returns_true_exactly_once_per_key():
    guard = IdempotencyGuard(SafeStore(MemoryStorage()), prefix="p_")

    assert guard.acquire("a") is True
    assert guard.acquire("a") is False
    assert guard.acquire("b") is True


def test_durable_marker_blocks_a_fresh_guard():
    backend = MemoryStorage()
    IdempotencyGuard(SafeStore(backend), prefix="p_").acquire("a")

    assert backend.get_item("p_a") == "true"

    remounted = IdempotencyGuard(SafeStore(backend), prefix="p_")
    assert remounted.is_acquired("a")
    assert remounted.acquire("a") is False


def test_in_memory_guard_holds_without_storage():
    guard = IdempotencyGuard(SafeStore(UnavailableStorage()), prefix="p_")

    assert guard.acquire("a") is True
    assert guard.acquire("a") is False


def test_marker_must_match_exactly():
    backend = MemoryStorage({"p_a": "yes"})
    guard = IdempotencyGuard(SafeStore(backend), prefix="p_")

    assert guard.storage_key("a") == "p_a"
    assert guard.acquire("a") is True
