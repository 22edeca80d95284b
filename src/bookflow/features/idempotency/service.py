from __future__ import annotations

from bookflow.features.storage.service import SafeStore


class IdempotencyGuard:
    """
    Fire-once token: an in-memory set (survives repeated invocation on the
    same instance) backed by a durable store (survives a remount within the
    same browser session).

    acquire(key) returns True exactly once per key; the durable marker is
    written before the caller proceeds.
    """

    MARKER = "true"

    def __init__(self, store: SafeStore, *, prefix: str) -> None:
        self._store = store
        self._prefix = prefix
        self._acquired: set[str] = set()

    def storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def is_acquired(self, key: str) -> bool:
        if key in self._acquired:
            return True
        return self._store.get(self.storage_key(key)) == self.MARKER

    def acquire(self, key: str) -> bool:
        if self.is_acquired(key):
            self._acquired.add(key)
            return False
        self._acquired.add(key)
        # best effort: with storage unavailable the in-memory guard still holds
        self._store.set(self.storage_key(key), self.MARKER)
        return True
