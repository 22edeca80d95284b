from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class PromotionalOffer:
    id: str
    title: str
    description: str
    cta_text: str
    cta_link: str
    dismiss_duration_days: float
    display_delay_seconds: float
    image: str | None = None
    image_alt: str | None = None


@dataclass(frozen=True, slots=True)
class OfferRecord:
    """
    Offer as stored in the content repository, with its scheduling fields.
    """

    offer: PromotionalOffer
    is_active: bool
    created_at: datetime
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True, slots=True)
class TreatmentCategory:
    id: str
    slug: str
    name: str
    description: str = ""
    short_description: str = ""


@dataclass(frozen=True, slots=True)
class Treatment:
    id: str
    slug: str
    title: str
    category: str  # category slug
    description: str = ""
    duration: str | None = None
    price: str | None = None  # free text, e.g. "from £40"
    external_booking_url: str | None = None
    key_features: tuple[str, ...] = ()
