from __future__ import annotations

from pathlib import Path

import pytest
import simpy

from bookflow.core.config import parse_config
from bookflow.features.bootstrap.service import PageSession, bootstrap_run, resolve_content_path
from bookflow.features.bootstrap.types import parse_journeys
from bookflow.features.cms.service import YamlContentRepository
from bookflow.features.events.service import RecordingSink
from bookflow.features.page.service import BrowserPage

CONTENT = """
treatments:
  - id: t-hot-stone
    slug: hot-stone-massage
    title: Hot Stone Massage
    category: massages
    price: "from £55"
    external_booking_url: https://www.fresha.com/hot-stone
promotional_offers:
  - id: offer-winter
    title: Winter Warmer
    cta_text: Book now
    cta_link: /contact
    display_delay_seconds: 3
    is_active: true
    created_at: 2025-12-01T00:00:00
"""


def _cfg(tmp_path: Path, journeys: list[dict], **sections):
    data = {
        "run": {"run_id": "test_run", "seed": 1, "start_date": "2026-01-05T09:00:00"},
        "storage": {"duckdb_path": str(tmp_path / "bookflow.duckdb")},
        "logging": {"level": "WARNING"},
        "experiment": {"enabled": True},
        "analytics": {"sink": "memory"},
        "journeys": journeys,
    }
    data.update(sections)
    return parse_config(data, environ={})


def _names(res) -> list[str]:
    return [e.name for e in res.events]


def test_no_consent_means_no_events(tmp_path):
    cfg = _cfg(
        tmp_path,
        [
            {
                "id": "anon",
                "steps": [
                    {"action": "visit", "path": "/", "document_height": 3000},
                    {"action": "scroll", "percent": 100},
                    {"action": "book", "placement": "navbar"},
                    {"action": "click_link", "href": "https://www.instagram.com/x", "text": "IG"},
                ],
            }
        ],
    )

    res = bootstrap_run(cfg)

    assert res.num_events == 0
    assert res.duckdb_path is None


def test_consent_mid_page_enables_tracking_from_then_on(tmp_path):
    cfg = _cfg(
        tmp_path,
        [
            {
                "id": "late",
                "steps": [
                    {"action": "visit", "path": "/about"},
                    {"action": "click_link", "href": "https://www.instagram.com/x", "text": "IG"},
                    {"action": "consent", "granted": True},
                    {"action": "click_link", "href": "https://www.fresha.com/x", "text": "Fresha"},
                ],
            }
        ],
    )

    res = bootstrap_run(cfg)

    assert _names(res) == ["outbound_click"]
    assert res.events[0].properties["link_domain"] == "www.fresha.com"


def test_external_arm_books_on_treatment_page(tmp_path):
    content = tmp_path / "content.yaml"
    content.write_text(CONTENT)
    cfg = _cfg(
        tmp_path,
        [
            {
                "id": "returning",
                "consent": True,
                # code-unit sum is odd: external arm
                "cookies": {"ab_test_variant": "user_a"},
                "steps": [
                    {"action": "visit", "path": "/treatments/massages/hot-stone-massage"},
                    {"action": "view_treatment", "slug": "hot-stone-massage"},
                    {"action": "book", "placement": "treatment-detail", "treatment": "hot-stone-massage"},
                ],
            }
        ],
        content={"path": str(content)},
    )

    res = bootstrap_run(cfg)

    assert _names(res) == [
        "view_item",
        "booking_button_clicked",
        "booking_redirect",
        "begin_checkout",
    ]
    redirect = res.events[2].properties
    assert redirect["variant"] == "fresha"
    assert redirect["destination"] == "fresha"
    assert res.events[3].properties["checkout_option"] == "fresha_treatment-detail"
    assert res.events[3].properties["value"] == 55.0


def test_form_arm_books_fills_form_and_confirms_once(tmp_path):
    cfg = _cfg(
        tmp_path,
        [
            {
                "id": "form",
                "consent": True,
                # code-unit sum is even: form arm
                "cookies": {"ab_test_variant": "user_b"},
                "steps": [
                    {"action": "visit", "path": "/"},
                    {"action": "book", "placement": "navbar"},
                    {"action": "focus", "field": "name"},
                    {"action": "blur", "field": "name", "has_value": False},
                    {"action": "field_error", "field": "email", "message": "Required"},
                    {"action": "submit_form"},
                    {
                        "action": "confirm_booking",
                        "query": {"treatment": "Swedish Massage", "price": "£45"},
                        "mounts": 2,
                    },
                    {
                        "action": "confirm_booking",
                        "query": {"treatment": "Swedish Massage", "price": "£45"},
                    },
                ],
            }
        ],
    )

    res = bootstrap_run(cfg)

    assert _names(res) == [
        "booking_button_clicked",
        "booking_redirect",
        "form_interaction",
        "form_interaction",
        "form_interaction",
        "form_interaction",
        "booking_form_submitted",
        "purchase",
    ]
    assert res.events[1].properties["destination"] == "form"
    assert [e.properties["interaction_type"] for e in res.events[2:6]] == [
        "start",
        "focus",
        "error",
        "submit",
    ]
    assert res.events[7].properties["value"] == 45.0
    assert res.events[7].properties["booking_source"] == "form"


def test_promo_dialog_dismissal_survives_page_loads(tmp_path):
    content = tmp_path / "content.yaml"
    content.write_text(CONTENT)
    cfg = _cfg(
        tmp_path,
        [
            {
                "id": "promo",
                "consent": True,
                "cookies": {"ab_test_variant": "user_b"},
                "steps": [
                    {"action": "visit", "path": "/"},
                    {"action": "wait", "seconds": 5},
                    {"action": "promo_dismiss"},
                    {"action": "visit", "path": "/treatments"},
                    {"action": "wait", "seconds": 5},
                    {"action": "promo_cta"},
                ],
            }
        ],
        content={"path": str(content)},
    )

    res = bootstrap_run(cfg)

    assert _names(res) == ["promo_dialog_view", "promo_dialog_dismiss"]


def test_step_before_visit_is_rejected(tmp_path):
    cfg = _cfg(tmp_path, [{"id": "bad", "steps": [{"action": "scroll", "y": 10}]}])

    with pytest.raises(ValueError):
        bootstrap_run(cfg)


def test_parse_journeys_validates_actions():
    with pytest.raises(ValueError):
        parse_journeys([{"id": "x", "steps": [{"action": "teleport"}]}])
    with pytest.raises(ValueError):
        parse_journeys([{"id": "x", "steps": []}, {"id": "x", "steps": []}])

    (journey,) = parse_journeys([{"steps": [{"action": "visit", "path": "/"}]}])
    assert journey.id == "journey_1"
    assert journey.steps[0].get("path") == "/"


def test_relative_content_path_resolves_next_to_config(tmp_path):
    cfg = _cfg(tmp_path, [], content={"path": "content.yaml"})
    config_path = tmp_path / "conf" / "bookflow.yaml"

    assert resolve_content_path(cfg, str(config_path)) == tmp_path / "conf" / "content.yaml"
    assert resolve_content_path(cfg, None) == Path("content.yaml")


def test_page_session_wires_and_unwires_site_trackers(tmp_path):
    content = tmp_path / "content.yaml"
    content.write_text(CONTENT)
    cfg = _cfg(tmp_path, [])
    sink = RecordingSink()
    page = BrowserPage(
        env=simpy.Environment(), url="https://www.heavenlytreatments.co.uk/", gtag=sink
    )

    session = PageSession(page=page, cfg=cfg, content=YamlContentRepository(content))
    assignment = session.mount()
    session.mount()

    assert assignment.visitor_id.startswith("user_")
    assert session.dialog is not None
    assert page.listener_count("click") == 1
    assert page.listener_count("scroll") == 1

    session.unmount()
    page.env.run(until=10)

    assert page.listener_count("click") == 0
    assert page.listener_count("scroll") == 0
    assert session.dialog.state == "pending"
