from __future__ import annotations

from urllib.parse import urlsplit

from bookflow.features.events.service import EventTracker
from bookflow.features.page.service import BrowserPage
from bookflow.features.page.types import PageEvent


def link_hostname(url: str) -> str:
    """
    Hostname of an absolute link; ValueError for links without one
    (javascript:, mailto:, data:, malformed).
    """
    host = urlsplit(url).hostname
    if not host:
        raise ValueError(f"link has no hostname: {url!r}")
    return host


class OutboundClickTracker:
    """
    One document-level click listener for the whole page. Clicks inside a
    link whose host differs from the page host are tracked as outbound.
    """

    def __init__(self, *, page: BrowserPage, tracker: EventTracker, enabled: bool = True) -> None:
        self.page = page
        self.tracker = tracker
        self.enabled = enabled
        self._attached = False

    def mount(self) -> None:
        if not self.enabled or self._attached:
            return
        self.page.add_event_listener("click", self.handle_click)
        self._attached = True

    def unmount(self) -> None:
        if not self._attached:
            return
        self.page.remove_event_listener("click", self.handle_click)
        self._attached = False

    def handle_click(self, event: PageEvent) -> None:
        if event.target is None:
            return
        anchor = event.target.closest("a")
        if anchor is None or not anchor.href:
            return

        try:
            href = self.page.resolve_href(anchor.href)
            domain = link_hostname(href)
        except ValueError:
            return

        if domain == self.page.hostname:
            return

        text = anchor.text_content().strip()
        self.tracker.track_outbound_click(
            link_url=href,
            link_text=text or None,
            link_domain=domain,
        )
