from __future__ import annotations

import json

import simpy

from bookflow.core.logging import get_logger
from bookflow.features.cms.types import PromotionalOffer
from bookflow.features.events.service import EventTracker
from bookflow.features.page.service import BrowserPage
from bookflow.features.promo_dialog.types import (
    CONVERTED,
    DISMISSED,
    PENDING,
    SHOWN,
    DialogView,
    LinkAttrs,
)
from bookflow.features.storage.service import SafeStore

DISMISS_KEY_PREFIX = "promo_dismissed_"
MS_PER_DAY = 24 * 60 * 60 * 1000
UNSAFE_LINK_PREFIXES = ("javascript:", "data:", "vbscript:")
SAFE_PLACEHOLDER = "#"

_logger = get_logger("bookflow.promo_dialog")


def sanitize_link(url: str | None) -> str:
    candidate = (url or "").strip()
    if not candidate or candidate.lower().startswith(UNSAFE_LINK_PREFIXES):
        return SAFE_PLACEHOLDER
    return candidate


def is_external_link(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def _reject_constant(name: str) -> float:
    raise ValueError(f"non-finite number {name} in dismissal record")


def dismissal_key(offer_id: str) -> str:
    return f"{DISMISS_KEY_PREFIX}{offer_id}"


def is_dismissed(
    store: SafeStore,
    offer_id: str,
    dismiss_duration_days: float,
    now_ms: int,
    *,
    debug: bool = False,
) -> bool:
    """
    True while a dismissal record younger than dismiss_duration_days exists.
    Unreadable records are purged and count as absent.
    """
    raw = store.get(dismissal_key(offer_id))
    if raw is None:
        return False
    try:
        record = json.loads(raw, parse_constant=_reject_constant)
        timestamp = record["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
            raise TypeError(f"timestamp must be numeric, got {type(timestamp).__name__}")
    except (ValueError, TypeError, KeyError):
        if debug:
            _logger.warning(
                "corrupt dismissal record purged",
                extra={"feature": "promo_dialog", "offer_id": offer_id, "reason": "corrupt"},
            )
        store.remove(dismissal_key(offer_id))
        return False
    return now_ms - timestamp < float(dismiss_duration_days) * MS_PER_DAY


def record_dismissal(store: SafeStore, offer_id: str, now_ms: int) -> bool:
    return store.set(dismissal_key(offer_id), json.dumps({"timestamp": now_ms}))


class PromotionalDialogController:
    """
    pending -> shown -> dismissed | converted

    mount() starts the display-delay timer unless the offer was dismissed
    recently; unmount() cancels it. Both exits from shown write a fresh
    dismissal record. The CTA exit tracks only the CTA click: the close that
    follows it is not a dismiss.
    """

    def __init__(
        self,
        *,
        page: BrowserPage,
        offer: PromotionalOffer,
        tracker: EventTracker,
        debug: bool = False,
    ) -> None:
        self.page = page
        self.offer = offer
        self.tracker = tracker
        self.debug = debug
        self.store = SafeStore(page.local_storage, debug=debug)

        self.state = PENDING
        self.suppressed = False
        self._timer: simpy.Process | None = None

    @property
    def is_open(self) -> bool:
        return self.state == SHOWN

    def mount(self) -> None:
        if self.state != PENDING or self._timer is not None:
            return
        if is_dismissed(
            self.store,
            self.offer.id,
            self.offer.dismiss_duration_days,
            self.page.clock.now_ms(),
            debug=self.debug,
        ):
            self.suppressed = True
            return
        self.suppressed = False
        self._timer = self.page.env.process(self._show_after_delay())

    def unmount(self) -> None:
        if self._timer is not None and self._timer.is_alive:
            self._timer.interrupt("unmount")
        self._timer = None

    def _show_after_delay(self):
        try:
            yield self.page.env.timeout(max(0.0, float(self.offer.display_delay_seconds)))
        except simpy.Interrupt:
            return
        self._timer = None
        if self.state != PENDING:
            return
        self.state = SHOWN
        self.tracker.track_promo_view(offer_id=self.offer.id, offer_title=self.offer.title)

    def dismiss(self) -> None:
        """
        "No thanks", overlay click, escape: every non-CTA close.
        """
        if self.state != SHOWN:
            return
        self.state = DISMISSED
        self.tracker.track_promo_dismiss(offer_id=self.offer.id, offer_title=self.offer.title)
        record_dismissal(self.store, self.offer.id, self.page.clock.now_ms())

    def on_open_change(self, is_open: bool) -> None:
        if not is_open:
            self.dismiss()

    def click_cta(self) -> LinkAttrs:
        cta = self.cta_link()
        if self.state != SHOWN:
            return cta
        # leave SHOWN first so the close that follows is not a dismiss
        self.state = CONVERTED
        self.tracker.track_promo_cta_click(
            offer_id=self.offer.id,
            offer_title=self.offer.title,
            cta_text=self.offer.cta_text,
            cta_link=cta.href,
        )
        record_dismissal(self.store, self.offer.id, self.page.clock.now_ms())
        return cta

    def cta_link(self) -> LinkAttrs:
        href = sanitize_link(self.offer.cta_link)
        if is_external_link(href):
            return LinkAttrs(
                href=href, text=self.offer.cta_text, target="_blank", rel="noopener noreferrer"
            )
        return LinkAttrs(href=href, text=self.offer.cta_text)

    def render(self) -> DialogView:
        return DialogView(
            open=self.is_open,
            title=self.offer.title,
            description=self.offer.description,
            cta=self.cta_link(),
            image=self.offer.image,
            image_alt=self.offer.image_alt or "",
        )
