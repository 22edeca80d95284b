from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from bookflow.core.logging import get_logger
from bookflow.core.types import Clock, SystemClock

_logger = get_logger("bookflow.storage")


class StorageUnavailableError(RuntimeError):
    pass


class KeyValueStorage(Protocol):
    """
    Shape of window.localStorage / window.sessionStorage.
    """

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class UnavailableStorage:
    """
    Private browsing / storage disabled: every access raises.
    """

    def get_item(self, key: str) -> str | None:
        raise StorageUnavailableError(f"storage unavailable (get {key!r})")

    def set_item(self, key: str, value: str) -> None:
        raise StorageUnavailableError(f"storage unavailable (set {key!r})")

    def remove_item(self, key: str) -> None:
        raise StorageUnavailableError(f"storage unavailable (remove {key!r})")


class SafeStore:
    """
    Failure-safe facade over a KeyValueStorage.

    Reads that fail return None ("no record"); writes and removes that fail
    return False and are otherwise ignored.
    """

    def __init__(self, backend: KeyValueStorage | None, *, debug: bool = False) -> None:
        self.backend = backend
        self.debug = debug

    def get(self, key: str) -> str | None:
        if self.backend is None:
            return None
        try:
            return self.backend.get_item(key)
        except Exception:  # noqa: BLE001
            self._log_failure("get", key)
            return None

    def set(self, key: str, value: str) -> bool:
        if self.backend is None:
            return False
        try:
            self.backend.set_item(key, value)
            return True
        except Exception:  # noqa: BLE001
            self._log_failure("set", key)
            return False

    def remove(self, key: str) -> bool:
        if self.backend is None:
            return False
        try:
            self.backend.remove_item(key)
            return True
        except Exception:  # noqa: BLE001
            self._log_failure("remove", key)
            return False

    def _log_failure(self, op: str, key: str) -> None:
        if self.debug:
            _logger.warning(
                f"storage {op} failed for {key!r}",
                extra={"feature": "storage", "reason": "storage_unavailable"},
                exc_info=True,
            )


@dataclass(slots=True)
class Cookie:
    name: str
    value: str
    expires_ms: int | None = None  # None -> session cookie
    path: str = "/"
    same_site: str = "Lax"


class CookieJar:
    """
    Per-origin cookie store with document.cookie semantics:
    expired cookies are invisible, header() renders "a=1; b=2".
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._cookies: dict[str, Cookie] = {}

    @classmethod
    def from_header(cls, header: str, clock: Clock | None = None) -> CookieJar:
        jar = cls(clock=clock)
        for part in (header or "").split(";"):
            name, sep, value = part.strip().partition("=")
            # fragments without "=" or without a name are ignored
            if not sep or not name.strip():
                continue
            jar._cookies[name.strip()] = Cookie(name=name.strip(), value=value.strip())
        return jar

    def _live(self, name: str) -> Cookie | None:
        c = self._cookies.get(name)
        if c is None:
            return None
        if c.expires_ms is not None and c.expires_ms <= self._clock.now_ms():
            del self._cookies[name]
            return None
        return c

    def get(self, name: str) -> str | None:
        c = self._live(name)
        return c.value if c is not None else None

    def has(self, name: str) -> bool:
        return self._live(name) is not None

    def set(
        self,
        name: str,
        value: str,
        *,
        max_age_s: float | None = None,
        path: str = "/",
        same_site: str = "Lax",
    ) -> None:
        if not name or any(ch in name for ch in "=; "):
            raise ValueError(f"invalid cookie name: {name!r}")
        expires_ms = None
        if max_age_s is not None:
            expires_ms = self._clock.now_ms() + int(float(max_age_s) * 1000)
        self._cookies[name] = Cookie(
            name=name, value=str(value), expires_ms=expires_ms, path=path, same_site=same_site
        )

    def remove(self, name: str) -> None:
        self._cookies.pop(name, None)

    def get_cookie(self, name: str) -> Cookie | None:
        return self._live(name)

    def header(self) -> str:
        live = [c for c in list(self._cookies.values()) if self._live(c.name) is not None]
        return "; ".join(f"{c.name}={c.value}" for c in live)
