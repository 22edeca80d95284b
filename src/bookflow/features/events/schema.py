from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# A/B test
VARIANT_ASSIGNED = "ab_test_variant_assigned"
BOOKING_BUTTON_CLICKED = "booking_button_clicked"
BOOKING_REDIRECT = "booking_redirect"
BOOKING_FORM_SUBMITTED = "booking_form_submitted"

# E-commerce
VIEW_ITEM = "view_item"
BEGIN_CHECKOUT = "begin_checkout"
PURCHASE = "purchase"

# Engagement
SCROLL_DEPTH = "scroll_depth"
OUTBOUND_CLICK = "outbound_click"
FORM_INTERACTION = "form_interaction"

# Promotional dialog
PROMO_DIALOG_VIEW = "promo_dialog_view"
PROMO_DIALOG_DISMISS = "promo_dialog_dismiss"
PROMO_DIALOG_CTA_CLICK = "promo_dialog_cta_click"

ALLOWED_EVENT_NAMES: set[str] = {
    VARIANT_ASSIGNED,
    BOOKING_BUTTON_CLICKED,
    BOOKING_REDIRECT,
    BOOKING_FORM_SUBMITTED,
    VIEW_ITEM,
    BEGIN_CHECKOUT,
    PURCHASE,
    SCROLL_DEPTH,
    OUTBOUND_CLICK,
    FORM_INTERACTION,
    PROMO_DIALOG_VIEW,
    PROMO_DIALOG_DISMISS,
    PROMO_DIALOG_CTA_CLICK,
}

FORM_INTERACTION_TYPES: set[str] = {"start", "focus", "blur", "error", "submit"}

CURRENCY = "GBP"
LINK_TEXT_MAX_CHARS = 100


@dataclass(frozen=True, slots=True)
class TrackedEvent:
    name: str
    properties: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class TreatmentTrackingData:
    id: str
    name: str
    category: str | None = None
    price: float | None = None

    def as_item(self) -> dict[str, Any]:
        return {
            "item_id": self.id,
            "item_name": self.name,
            "item_category": self.category,
            "price": self.price,
            "quantity": 1,
        }


def treatment_id_from_name(name: str) -> str:
    """
    Fallback item id for treatments known only by their display name.
    "Hot Stone  Massage" -> "treatment_hot_stone_massage"
    """
    return "treatment_" + "_".join(name.lower().split())
