from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from bookflow.core.config import DEFAULT_SCROLL_THRESHOLDS
from bookflow.features.events.schema import TreatmentTrackingData
from bookflow.features.events.service import EventTracker, parse_price
from bookflow.features.page.service import BrowserPage
from bookflow.features.scroll_depth.service import ScrollDepthTracker


@dataclass(frozen=True, slots=True)
class TreatmentView:
    id: str
    title: str
    category: str | None = None
    price: str | None = None  # free text, e.g. "£40"


class TreatmentViewTracker:
    """
    view_item once per distinct treatment id; re-renders with the same id
    are ignored, a different id (client-side navigation) fires again.
    """

    def __init__(self, *, tracker: EventTracker) -> None:
        self.tracker = tracker
        self._last_id: str | None = None

    def on_render(self, treatment: TreatmentView) -> bool:
        if treatment.id == self._last_id:
            return False
        self._last_id = treatment.id
        self.tracker.track_view_item(
            TreatmentTrackingData(
                id=treatment.id,
                name=treatment.title,
                category=treatment.category,
                price=parse_price(treatment.price),
            )
        )
        return True


class TreatmentPageTracker:
    """
    Detail-page tracking bundle: view_item on render, optional scroll depth.
    """

    def __init__(
        self,
        *,
        page: BrowserPage,
        tracker: EventTracker,
        enable_scroll_tracking: bool = True,
        thresholds: Sequence[int] = DEFAULT_SCROLL_THRESHOLDS,
        throttle_ms: float = 150.0,
    ) -> None:
        self.views = TreatmentViewTracker(tracker=tracker)
        self.scroll = ScrollDepthTracker(
            page=page,
            tracker=tracker,
            thresholds=thresholds,
            throttle_ms=throttle_ms,
            enabled=enable_scroll_tracking,
        )

    def mount(self, treatment: TreatmentView) -> None:
        self.views.on_render(treatment)
        self.scroll.mount()

    def render(self, treatment: TreatmentView) -> None:
        self.views.on_render(treatment)

    def unmount(self) -> None:
        self.scroll.unmount()
