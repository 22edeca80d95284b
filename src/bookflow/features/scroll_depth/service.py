from __future__ import annotations

import math
from collections.abc import Sequence

import simpy

from bookflow.core.config import DEFAULT_SCROLL_THRESHOLDS
from bookflow.features.events.service import EventTracker
from bookflow.features.page.service import BrowserPage
from bookflow.features.page.types import PageEvent

MIN_THROTTLE_MS = 150.0


def scroll_percent(scroll_y: float, scrollable_height: float) -> int | None:
    """
    Rounded scroll depth; None for pages that do not scroll.
    """
    if scrollable_height <= 0:
        return None
    # Math.round semantics (half up)
    return int(math.floor(scroll_y / scrollable_height * 100 + 0.5))


class ScrollDepthTracker:
    """
    Fires scroll_depth once per threshold per pathname.

    Scroll handling is throttled: the first scroll after a quiet period is
    evaluated immediately, later ones inside the window collapse into one
    trailing evaluation at the end of the window. Thresholds compare with
    >=, so a threshold crossed between evaluations still fires.
    """

    def __init__(
        self,
        *,
        page: BrowserPage,
        tracker: EventTracker,
        thresholds: Sequence[int] = DEFAULT_SCROLL_THRESHOLDS,
        throttle_ms: float = MIN_THROTTLE_MS,
        enabled: bool = True,
    ) -> None:
        if float(throttle_ms) < MIN_THROTTLE_MS:
            raise ValueError(f"throttle_ms must be >= {MIN_THROTTLE_MS}")
        self.page = page
        self.tracker = tracker
        self.thresholds = tuple(sorted(int(t) for t in thresholds))
        self.throttle_s = float(throttle_ms) / 1000.0
        self.enabled = enabled

        self.fired: set[int] = set()
        self._pathname: str | None = None
        self._last_eval_s: float | None = None
        self._pending: simpy.Process | None = None
        self._mounted = False

    @property
    def env(self) -> simpy.Environment:
        return self.page.env

    def mount(self) -> None:
        if not self.enabled or self._mounted:
            return
        self._mounted = True
        self._reset(self.page.pathname)
        self.page.add_event_listener("scroll", self._on_scroll, passive=True)
        self.page.add_event_listener("navigate", self._on_navigate)
        # page may load already scrolled
        self.evaluate()

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self.page.remove_event_listener("scroll", self._on_scroll)
        self.page.remove_event_listener("navigate", self._on_navigate)
        self._cancel_pending()

    def _reset(self, pathname: str) -> None:
        self._pathname = pathname
        self.fired = set()
        self._last_eval_s = None
        self._cancel_pending()

    def _cancel_pending(self) -> None:
        if self._pending is not None and self._pending.is_alive:
            self._pending.interrupt("cancelled")
        self._pending = None

    def _on_navigate(self, _event: PageEvent) -> None:
        if self.page.pathname == self._pathname:
            return
        self._reset(self.page.pathname)
        self.evaluate()

    def _on_scroll(self, _event: PageEvent) -> None:
        now = float(self.env.now)
        if self._last_eval_s is None or now - self._last_eval_s >= self.throttle_s:
            self.evaluate()
            return
        if self._pending is None:
            delay = self._last_eval_s + self.throttle_s - now
            self._pending = self.env.process(self._trailing(delay))

    def _trailing(self, delay: float):
        try:
            yield self.env.timeout(delay)
        except simpy.Interrupt:
            return
        self._pending = None
        if self._mounted:
            self.evaluate()

    def evaluate(self) -> list[int]:
        """
        Check the current scroll position; returns thresholds fired now.
        """
        self._last_eval_s = float(self.env.now)
        pct = scroll_percent(self.page.scroll_y, self.page.scrollable_height)
        if pct is None:
            return []

        newly: list[int] = []
        for threshold in self.thresholds:
            if pct >= threshold and threshold not in self.fired:
                self.fired.add(threshold)
                newly.append(threshold)
                self.tracker.track_scroll_depth(
                    percent_scrolled=threshold,
                    page_path=self.page.pathname,
                    page_title=self.page.title,
                )
        return newly
