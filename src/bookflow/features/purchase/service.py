from __future__ import annotations

import uuid
from collections.abc import Callable
from urllib.parse import urlencode

from bookflow.features.events.schema import TreatmentTrackingData, treatment_id_from_name
from bookflow.features.events.service import EventTracker, generate_transaction_id, parse_price
from bookflow.features.idempotency.service import IdempotencyGuard
from bookflow.features.page.service import BrowserPage
from bookflow.features.storage.service import SafeStore

PURCHASE_GUARD_PREFIX = "booking_tracked_"


class BookingConfirmationTracker:
    """
    Tracks the booking confirmation page as a purchase.

    Reads ?treatment=&price=&category=&source= from the page URL. At most one
    purchase per distinct parameter set per browser session: an in-memory
    guard absorbs repeated mount calls on the same instance, sessionStorage
    (booking_tracked_<params>) absorbs remounts.
    """

    def __init__(
        self,
        *,
        page: BrowserPage,
        tracker: EventTracker,
        guard: IdempotencyGuard | None = None,
        uuid_factory: Callable[[], uuid.UUID] | None = uuid.uuid4,
        debug: bool = False,
    ) -> None:
        self.page = page
        self.tracker = tracker
        self.guard = guard or IdempotencyGuard(
            SafeStore(page.session_storage, debug=debug), prefix=PURCHASE_GUARD_PREFIX
        )
        self.uuid_factory = uuid_factory

    def params_key(self) -> str:
        return urlencode(self.page.query_params())

    def on_mount(self) -> str | None:
        """
        Returns the transaction id when a purchase was tracked, None when the
        parameter set was already handled in this session.
        """
        if not self.guard.acquire(self.params_key()):
            return None

        treatment_name = self.page.query_param("treatment")
        category = self.page.query_param("category")
        source = self.page.query_param("source") or "form"

        price = parse_price(self.page.query_param("price"))
        if price is None:
            price = 0.0

        transaction_id = generate_transaction_id(self.uuid_factory)

        treatment = None
        if treatment_name:
            treatment = TreatmentTrackingData(
                id=treatment_id_from_name(treatment_name),
                name=treatment_name,
                category=category or None,
                price=price,
            )

        self.tracker.track_purchase(transaction_id, price, treatment, source)
        return transaction_id
