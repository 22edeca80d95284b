from __future__ import annotations

import pytest
import simpy

from bookflow.core.config import DEFAULT_EXTERNAL_BOOKING_URL, ExperimentConfig
from bookflow.core.rng import RNG
from bookflow.features.booking.service import (
    BookingButton,
    booking_destination,
    contact_form_url,
    record_booking_form_submitted,
    resolve_booking_url,
)
from bookflow.features.booking.types import (
    NAVBAR,
    TREATMENT_CARD,
    TREATMENT_DETAIL,
    BookingContext,
    TreatmentRef,
)
from bookflow.features.events.schema import (
    BEGIN_CHECKOUT,
    BOOKING_BUTTON_CLICKED,
    BOOKING_FORM_SUBMITTED,
    BOOKING_REDIRECT,
)
from bookflow.features.events.service import EventTracker, RecordingSink
from bookflow.features.page.service import BrowserPage
from bookflow.features.variant.service import VARIANT_COOKIE_NAME, VariantService
from bookflow.features.variant.types import (
    CONTROL_ASSIGNMENT,
    VARIANT_EXTERNAL,
    VARIANT_FORM,
    VariantAssignment,
)

ON = ExperimentConfig(enabled=True, general_external_url=DEFAULT_EXTERNAL_BOOKING_URL)
EXTERNAL = VariantAssignment(variant=VARIANT_EXTERNAL, cohort="test", visitor_id="user_1_a")

HOT_STONE = TreatmentRef(
    title="Hot Stone Massage",
    external_url="https://www.fresha.com/hot-stone",
    id="t-hot-stone",
    category="massages",
    price="from £55",
)

# code-unit sum is odd: external arm
EXTERNAL_IDENTITY = "user_a"
# code-unit sum is even: form arm
FORM_IDENTITY = "user_b"


def _button(identity: str, context: BookingContext, cfg: ExperimentConfig = ON):
    sink = RecordingSink()
    page = BrowserPage(
        env=simpy.Environment(), url="https://www.heavenlytreatments.co.uk/", gtag=sink
    )
    page.cookies.set("HeavenlyTreatmentsCookieConsent", "true")
    page.cookies.set(VARIANT_COOKIE_NAME, identity)
    tracker = EventTracker(page)
    variants = VariantService(page=page, cfg=cfg, tracker=tracker, rng=RNG(1))
    return BookingButton(context=context, variants=variants, tracker=tracker), sink


def test_contact_form_url_encodes_title_like_uri_component():
    assert contact_form_url(ON) == "/contact"
    assert (
        contact_form_url(ON, "Hot Stone & Oils (60')")
        == "/contact?treatment=Hot%20Stone%20%26%20Oils%20(60')"
    )


def test_control_routes_to_contact_form_with_treatment():
    url = resolve_booking_url(BookingContext(TREATMENT_CARD, HOT_STONE), CONTROL_ASSIGNMENT, ON)
    assert url == "/contact?treatment=Hot%20Stone%20Massage"


def test_experiment_off_ignores_assignment():
    off = ExperimentConfig(enabled=False)
    assert resolve_booking_url(BookingContext(NAVBAR), EXTERNAL, off) == "/contact"


def test_missing_assignment_routes_to_contact_form():
    assert resolve_booking_url(BookingContext(NAVBAR), None, ON) == "/contact"


def test_external_arm_prefers_treatment_page_then_site_wide():
    assert (
        resolve_booking_url(BookingContext(TREATMENT_DETAIL, HOT_STONE), EXTERNAL, ON)
        == "https://www.fresha.com/hot-stone"
    )
    no_page = TreatmentRef(title="Luxury Facial")
    assert (
        resolve_booking_url(BookingContext(TREATMENT_DETAIL, no_page), EXTERNAL, ON)
        == DEFAULT_EXTERNAL_BOOKING_URL
    )


def test_external_arm_without_any_external_page_falls_back_to_bare_contact():
    cfg = ExperimentConfig(enabled=True, general_external_url=None)
    ctx = BookingContext(TREATMENT_DETAIL, TreatmentRef(title="Luxury Facial"))
    assert resolve_booking_url(ctx, EXTERNAL, cfg) == "/contact"


def test_booking_destination():
    assert booking_destination("/contact?treatment=x", ON) == "form"
    assert booking_destination("https://www.fresha.com/x", ON) == "fresha"


def test_unknown_placement_rejected():
    with pytest.raises(ValueError):
        BookingContext(placement="footer")


def test_click_on_external_arm_tracks_click_redirect_and_checkout():
    button, sink = _button(EXTERNAL_IDENTITY, BookingContext(TREATMENT_DETAIL, HOT_STONE))

    assert button.href == "https://www.fresha.com/hot-stone"
    url = button.click()

    assert url == "https://www.fresha.com/hot-stone"
    assert [e.name for e in sink.events] == [
        BOOKING_BUTTON_CLICKED,
        BOOKING_REDIRECT,
        BEGIN_CHECKOUT,
    ]
    assert sink.events[0].properties == {
        "variant": VARIANT_EXTERNAL,
        "context": TREATMENT_DETAIL,
        "treatment_name": "Hot Stone Massage",
    }
    assert sink.events[1].properties == {
        "variant": VARIANT_EXTERNAL,
        "destination": "fresha",
        "context": TREATMENT_DETAIL,
        "treatment_name": "Hot Stone Massage",
    }
    assert sink.events[2].properties == {
        "currency": "GBP",
        "value": 55.0,
        "items": [
            {
                "item_id": "t-hot-stone",
                "item_name": "Hot Stone Massage",
                "item_category": "massages",
                "price": 55.0,
                "quantity": 1,
            }
        ],
        "checkout_option": "fresha_treatment-detail",
    }


def test_click_without_treatment_skips_checkout():
    button, sink = _button(FORM_IDENTITY, BookingContext(NAVBAR))

    assert button.click() == "/contact"
    assert [e.name for e in sink.events] == [BOOKING_BUTTON_CLICKED, BOOKING_REDIRECT]
    assert sink.events[0].properties["treatment_name"] == "none"
    assert sink.events[1].properties["destination"] == "form"
    assert sink.events[1].properties["variant"] == VARIANT_FORM


def test_form_submission_records_variant():
    button, sink = _button(FORM_IDENTITY, BookingContext(NAVBAR))
    tracker = button.tracker

    record_booking_form_submitted(tracker, CONTROL_ASSIGNMENT)

    assert sink.named(BOOKING_FORM_SUBMITTED)[0].properties == {"variant": VARIANT_FORM}
