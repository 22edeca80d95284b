from __future__ import annotations

from dataclasses import dataclass

NAVBAR = "navbar"
TREATMENT_CARD = "treatment-card"
TREATMENT_DETAIL = "treatment-detail"
LOCATION_SECTION = "location-section"

ALLOWED_PLACEMENTS: set[str] = {NAVBAR, TREATMENT_CARD, TREATMENT_DETAIL, LOCATION_SECTION}

DESTINATION_FORM = "form"
DESTINATION_EXTERNAL = "fresha"


@dataclass(frozen=True, slots=True)
class TreatmentRef:
    title: str
    external_url: str | None = None  # dedicated external booking page
    id: str | None = None
    category: str | None = None
    price: str | None = None  # free text, e.g. "from £40"


@dataclass(frozen=True, slots=True)
class BookingContext:
    """
    Where a "Book Now" call-to-action sits, and for which treatment.
    """

    placement: str
    treatment: TreatmentRef | None = None

    def __post_init__(self) -> None:
        if self.placement not in ALLOWED_PLACEMENTS:
            raise ValueError(
                f"Unsupported placement={self.placement!r}. Allowed={sorted(ALLOWED_PLACEMENTS)}"
            )
