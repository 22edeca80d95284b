from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qsl, urljoin, urlsplit

import simpy

from bookflow.core.types import Clock, SimClock
from bookflow.features.page.types import Element, Listener, PageEvent
from bookflow.features.storage.service import CookieJar, KeyValueStorage, MemoryStorage

# gtag-style analytics hook: gtag("event", name, params)
AnalyticsHook = Callable[..., Any]

SUPPORTED_EVENT_TYPES: set[str] = {"scroll", "click", "navigate"}


class BrowserPage:
    """
    One browser tab for one origin.

    Holds everything the tracking core reads from the browser: location,
    title, document/viewport metrics, scroll position, cookies, local and
    session storage, the analytics hook, and window/document listeners.
    All time comes from the simpy environment.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        url: str,
        title: str = "",
        document_height: float = 0.0,
        viewport_height: float = 0.0,
        clock: Clock | None = None,
        cookies: CookieJar | None = None,
        local_storage: KeyValueStorage | None = None,
        session_storage: KeyValueStorage | None = None,
        gtag: AnalyticsHook | None = None,
    ) -> None:
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname:
            raise ValueError(f"page url must be absolute: {url!r}")

        self.env = env
        self.clock = clock or SimClock(env, datetime(2026, 1, 1, tzinfo=UTC))
        self.url = url
        self.title = title
        self.document_height = float(document_height)
        self.viewport_height = float(viewport_height)
        self.scroll_y = 0.0

        self.cookies = cookies if cookies is not None else CookieJar(clock=self.clock)
        self.local_storage = local_storage if local_storage is not None else MemoryStorage()
        self.session_storage = session_storage if session_storage is not None else MemoryStorage()
        self.gtag = gtag

        self._listeners: dict[str, list[tuple[Listener, bool]]] = {}

    # ----- Location -----
    @property
    def pathname(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def search(self) -> str:
        return urlsplit(self.url).query

    def query_params(self) -> list[tuple[str, str]]:
        return parse_qsl(self.search, keep_blank_values=True)

    def query_param(self, name: str) -> str | None:
        for k, v in self.query_params():
            if k == name:
                return v
        return None

    def resolve_href(self, href: str) -> str:
        return urljoin(self.url, href)

    # ----- Metrics -----
    @property
    def scrollable_height(self) -> float:
        return self.document_height - self.viewport_height

    # ----- Listeners -----
    def add_event_listener(self, event_type: str, fn: Listener, *, passive: bool = False) -> None:
        if event_type not in SUPPORTED_EVENT_TYPES:
            raise ValueError(f"Unsupported event type={event_type!r}")
        entries = self._listeners.setdefault(event_type, [])
        # same listener registered twice is a no-op (DOM semantics)
        if any(f == fn for f, _ in entries):
            return
        entries.append((fn, passive))

    def remove_event_listener(self, event_type: str, fn: Listener) -> None:
        entries = self._listeners.get(event_type, [])
        self._listeners[event_type] = [(f, p) for f, p in entries if f != fn]

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch(self, event: PageEvent) -> None:
        for fn, _passive in list(self._listeners.get(event.type, [])):
            fn(event)

    # ----- User actions -----
    def scroll_to(self, y: float) -> None:
        max_y = max(0.0, self.scrollable_height)
        self.scroll_y = min(max(0.0, float(y)), max_y)
        self.dispatch(PageEvent(type="scroll"))

    def click(self, target: Element) -> None:
        self.dispatch(PageEvent(type="click", target=target))

    def navigate(
        self,
        url: str,
        *,
        title: str | None = None,
        document_height: float | None = None,
    ) -> None:
        """
        Client-side navigation: same tab, same storage, listeners kept.
        """
        self.url = self.resolve_href(url)
        if title is not None:
            self.title = title
        if document_height is not None:
            self.document_height = float(document_height)
        self.scroll_y = 0.0
        self.dispatch(PageEvent(type="navigate", detail={"url": self.url}))
