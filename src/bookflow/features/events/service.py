from __future__ import annotations

import functools
import re
import secrets
import time
import uuid
from collections.abc import Callable
from typing import Any

from bookflow.core.logging import get_logger
from bookflow.features.events.schema import (
    ALLOWED_EVENT_NAMES,
    BEGIN_CHECKOUT,
    BOOKING_BUTTON_CLICKED,
    BOOKING_FORM_SUBMITTED,
    BOOKING_REDIRECT,
    CURRENCY,
    FORM_INTERACTION,
    FORM_INTERACTION_TYPES,
    LINK_TEXT_MAX_CHARS,
    OUTBOUND_CLICK,
    PROMO_DIALOG_CTA_CLICK,
    PROMO_DIALOG_DISMISS,
    PROMO_DIALOG_VIEW,
    PURCHASE,
    SCROLL_DEPTH,
    VARIANT_ASSIGNED,
    VIEW_ITEM,
    TrackedEvent,
    TreatmentTrackingData,
)
from bookflow.features.page.service import BrowserPage

DEFAULT_CONSENT_COOKIE = "HeavenlyTreatmentsCookieConsent"

_logger = get_logger("bookflow.events")


class RecordingSink:
    """
    In-memory gtag: records every ("event", name, params) call.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.events: list[TrackedEvent] = []

    def __call__(self, command: str, name: str, params: dict[str, Any] | None = None) -> None:
        self.calls.append((command, name, params))
        if command == "event":
            self.events.append(TrackedEvent(name=name, properties=params))

    def named(self, name: str) -> list[TrackedEvent]:
        return [e for e in self.events if e.name == name]


def consent_gated(fn: Callable[..., None]) -> Callable[..., None]:
    """
    The single gate in front of the analytics sink: no browser, no sink, or
    no consent means the call is dropped without error.
    """

    @functools.wraps(fn)
    def wrapper(self: EventTracker, name: str, properties: dict[str, Any] | None = None) -> None:
        reason = self.blocked_reason()
        if reason is not None:
            self._debug(f"event blocked ({reason}): {name}", name, reason)
            return None
        return fn(self, name, properties)

    return wrapper


class EventTracker:
    """
    Consent-aware, failure-safe adapter in front of the analytics hook.

    One instance per page load. The typed track_* helpers only fix payload
    shape; all gating lives in track_event.
    """

    def __init__(
        self,
        page: BrowserPage | None,
        *,
        consent_cookie: str = DEFAULT_CONSENT_COOKIE,
        debug: bool = False,
    ) -> None:
        self.page = page
        self.consent_cookie = consent_cookie
        self.debug = debug

    # ----------------------------
    # Gate
    # ----------------------------
    def has_consent(self) -> bool:
        if self.page is None:
            return False
        try:
            return self.page.cookies.get(self.consent_cookie) == "true"
        except Exception:  # noqa: BLE001
            return False

    def blocked_reason(self) -> str | None:
        if self.page is None:
            return "no_browser"
        if not self.has_consent():
            return "no_consent"
        if not callable(self.page.gtag):
            return "no_sink"
        return None

    @consent_gated
    def track_event(self, name: str, properties: dict[str, Any] | None = None) -> None:
        if name not in ALLOWED_EVENT_NAMES:
            self._debug(f"event dropped (unknown name): {name}", name, "unknown_event")
            return
        gtag = self.page.gtag  # type: ignore[union-attr]
        try:
            gtag("event", name, properties)
        except Exception:  # noqa: BLE001
            self._debug(f"error tracking event {name!r}", name, "sink_error", exc_info=True)
            return
        self._debug(f"event tracked: {name}", name, "tracked")

    def _debug(self, msg: str, name: str, reason: str, *, exc_info: bool = False) -> None:
        if not self.debug:
            return
        _logger.info(
            msg,
            extra={"feature": "events", "event_name": name, "reason": reason},
            exc_info=exc_info,
        )

    # ----------------------------
    # A/B test events
    # ----------------------------
    def track_variant_assigned(self, *, variant: str, cohort: str, visitor_id: str) -> None:
        self.track_event(
            VARIANT_ASSIGNED,
            {"ab_test_variant": variant, "ab_test_cohort": cohort, "user_id": visitor_id},
        )

    def track_booking_button_click(
        self, *, variant: str, context: str, treatment_name: str | None = None
    ) -> None:
        self.track_event(
            BOOKING_BUTTON_CLICKED,
            {"variant": variant, "context": context, "treatment_name": treatment_name or "none"},
        )

    def track_booking_redirect(
        self,
        *,
        variant: str,
        destination: str,
        context: str,
        treatment_name: str | None = None,
    ) -> None:
        self.track_event(
            BOOKING_REDIRECT,
            {
                "variant": variant,
                "destination": destination,
                "context": context,
                "treatment_name": treatment_name or "none",
            },
        )

    def track_booking_form_submitted(self, *, variant: str) -> None:
        self.track_event(BOOKING_FORM_SUBMITTED, {"variant": variant})

    # ----------------------------
    # E-commerce events
    # ----------------------------
    def track_view_item(self, treatment: TreatmentTrackingData) -> None:
        self.track_event(
            VIEW_ITEM,
            {
                "currency": CURRENCY,
                "value": treatment.price if treatment.price is not None else 0,
                "items": [treatment.as_item()],
            },
        )

    def track_begin_checkout(
        self, treatment: TreatmentTrackingData | None = None, context: str | None = None
    ) -> None:
        self.track_event(
            BEGIN_CHECKOUT,
            {
                "currency": CURRENCY,
                "value": treatment.price if treatment and treatment.price is not None else 0,
                "items": [treatment.as_item()] if treatment else [],
                "checkout_option": context,
            },
        )

    def track_purchase(
        self,
        transaction_id: str,
        value: float,
        treatment: TreatmentTrackingData | None = None,
        source: str | None = None,
    ) -> None:
        self.track_event(
            PURCHASE,
            {
                "currency": CURRENCY,
                "transaction_id": transaction_id,
                "value": value,
                "items": [treatment.as_item()] if treatment else [],
                "booking_source": source,
            },
        )

    # ----------------------------
    # Engagement events
    # ----------------------------
    def track_scroll_depth(
        self, *, percent_scrolled: int, page_path: str, page_title: str | None = None
    ) -> None:
        self.track_event(
            SCROLL_DEPTH,
            {
                "percent_scrolled": percent_scrolled,
                "page_path": page_path,
                "page_title": page_title,
            },
        )

    def track_outbound_click(
        self, *, link_url: str, link_domain: str, link_text: str | None = None
    ) -> None:
        self.track_event(
            OUTBOUND_CLICK,
            {
                "link_url": link_url,
                "link_text": link_text[:LINK_TEXT_MAX_CHARS] if link_text is not None else None,
                "link_domain": link_domain,
                "outbound": True,
            },
        )

    def track_form_interaction(
        self,
        *,
        form_name: str,
        interaction_type: str,
        field_name: str | None = None,
        error_message: str | None = None,
    ) -> None:
        if interaction_type not in FORM_INTERACTION_TYPES:
            self._debug(
                f"unknown form interaction type: {interaction_type!r}",
                FORM_INTERACTION,
                "bad_payload",
            )
            return
        self.track_event(
            FORM_INTERACTION,
            {
                "form_name": form_name,
                "field_name": field_name,
                "interaction_type": interaction_type,
                "error_message": error_message,
            },
        )

    # ----------------------------
    # Promotional dialog events
    # ----------------------------
    def track_promo_view(self, *, offer_id: str, offer_title: str) -> None:
        self.track_event(PROMO_DIALOG_VIEW, {"offer_id": offer_id, "offer_title": offer_title})

    def track_promo_dismiss(self, *, offer_id: str, offer_title: str) -> None:
        self.track_event(PROMO_DIALOG_DISMISS, {"offer_id": offer_id, "offer_title": offer_title})

    def track_promo_cta_click(
        self, *, offer_id: str, offer_title: str, cta_text: str, cta_link: str
    ) -> None:
        self.track_event(
            PROMO_DIALOG_CTA_CLICK,
            {
                "offer_id": offer_id,
                "offer_title": offer_title,
                "cta_text": cta_text,
                "cta_link": cta_link,
            },
        )


# ----------------------------
# Utilities
# ----------------------------

_NUMBER_PREFIX = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_price(price: str | None) -> float | None:
    """
    Parse a free-text price ("£40", "from £1,200.50") into a number.
    Everything except digits and dots is stripped; the leading numeric
    literal of the remainder is parsed. None when nothing numeric remains.
    """
    if not price:
        return None
    cleaned = re.sub(r"[^0-9.]", "", price)
    m = _NUMBER_PREFIX.match(cleaned)
    if m is None:
        return None
    return float(m.group(0))


def generate_transaction_id(
    uuid_factory: Callable[[], uuid.UUID] | None = uuid.uuid4,
) -> str:
    """
    booking_<uuid4>, or booking_<epoch_ms>_<16 hex chars> when no UUID
    source is available.
    """
    if uuid_factory is not None:
        try:
            return f"booking_{uuid_factory()}"
        except (NotImplementedError, OSError):
            pass
    return f"booking_{time.time_ns() // 1_000_000}_{secrets.token_hex(8)}"
