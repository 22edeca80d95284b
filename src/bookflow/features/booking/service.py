from __future__ import annotations

from urllib.parse import quote

from bookflow.core.config import ExperimentConfig
from bookflow.features.booking.types import (
    DESTINATION_EXTERNAL,
    DESTINATION_FORM,
    BookingContext,
)
from bookflow.features.events.schema import TreatmentTrackingData, treatment_id_from_name
from bookflow.features.events.service import EventTracker, parse_price
from bookflow.features.variant.service import VariantService
from bookflow.features.variant.types import VariantAssignment

# characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "!~*'()"


def contact_form_url(cfg: ExperimentConfig, treatment_title: str | None = None) -> str:
    if treatment_title:
        return f"{cfg.contact_path}?treatment={quote(treatment_title, safe=_URI_COMPONENT_SAFE)}"
    return cfg.contact_path


def resolve_booking_url(
    context: BookingContext,
    assignment: VariantAssignment | None,
    cfg: ExperimentConfig,
) -> str:
    """
    Destination for a "Book Now" action. Pure: safe to call while rendering.

    Control (or experiment off, or no assignment yet): contact form, with the
    treatment title prefilled. External arm: treatment's own booking page,
    else the site-wide one, else the bare contact form.
    """
    title = context.treatment.title if context.treatment else None

    if not cfg.enabled or assignment is None or not assignment.is_external:
        return contact_form_url(cfg, title)

    if context.treatment is not None and context.treatment.external_url:
        return context.treatment.external_url
    if cfg.general_external_url:
        return cfg.general_external_url
    return cfg.contact_path


def booking_destination(url: str, cfg: ExperimentConfig) -> str:
    path = url.split("?", 1)[0]
    return DESTINATION_FORM if path == cfg.contact_path else DESTINATION_EXTERNAL


class BookingButton:
    """
    "Book Now" call-to-action. href follows the visitor's arm; a click tracks
    the button click, the redirect destination, and begin_checkout when a
    treatment is attached.
    """

    def __init__(
        self,
        *,
        context: BookingContext,
        variants: VariantService,
        tracker: EventTracker,
    ) -> None:
        self.context = context
        self.variants = variants
        self.tracker = tracker

    @property
    def href(self) -> str:
        return resolve_booking_url(self.context, self.variants.resolve(), self.variants.cfg)

    def click(self) -> str:
        assignment = self.variants.resolve()
        url = resolve_booking_url(self.context, assignment, self.variants.cfg)
        destination = booking_destination(url, self.variants.cfg)
        treatment = self.context.treatment
        title = treatment.title if treatment else None

        self.tracker.track_booking_button_click(
            variant=assignment.variant, context=self.context.placement, treatment_name=title
        )
        self.tracker.track_booking_redirect(
            variant=assignment.variant,
            destination=destination,
            context=self.context.placement,
            treatment_name=title,
        )

        if treatment is not None and treatment.title:
            self.tracker.track_begin_checkout(
                TreatmentTrackingData(
                    id=treatment.id or treatment_id_from_name(treatment.title),
                    name=treatment.title,
                    category=treatment.category,
                    price=parse_price(treatment.price),
                ),
                f"{destination}_{self.context.placement}",
            )
        return url


def record_booking_form_submitted(tracker: EventTracker, assignment: VariantAssignment) -> None:
    tracker.track_booking_form_submitted(variant=assignment.variant)
