import pytest

from bookflow.core.config import DEFAULT_EXTERNAL_BOOKING_URL, parse_config


def _base(**sections) -> dict:
    data = {
        "run": {"run_id": "auto", "seed": 1, "start_date": "2026-01-01"},
        "storage": {"duckdb_path": "out/bookflow.duckdb"},
        "logging": {"level": "info"},
    }
    data.update(sections)
    return data


def test_defaults():
    cfg = parse_config(_base(), environ={})

    assert cfg.experiment.enabled is False
    assert cfg.experiment.contact_path == "/contact"
    assert cfg.experiment.general_external_url == DEFAULT_EXTERNAL_BOOKING_URL
    assert cfg.analytics.consent_cookie == "HeavenlyTreatmentsCookieConsent"
    assert cfg.analytics.sink == "duckdb"
    assert cfg.tracking.scroll_thresholds == (25, 50, 75, 90)
    assert cfg.tracking.scroll_throttle_ms == 150.0
    assert cfg.logging.level == "INFO"
    assert cfg.site.origin == "https://www.heavenlytreatments.co.uk"
    assert cfg.journeys == []


@pytest.mark.parametrize("missing", ["run", "storage", "logging"])
def test_missing_required_section(missing):
    data = _base()
    del data[missing]
    with pytest.raises(ValueError):
        parse_config(data, environ={})


@pytest.mark.parametrize(
    ("value", "expected"),
    [("true", True), ("TRUE", False), ("1", False), ("false", False)],
)
def test_ab_test_env_flag_must_be_exactly_true(value, expected):
    cfg = parse_config(
        _base(experiment={"enabled": True}), environ={"BOOKFLOW_AB_TEST_ENABLED": value}
    )
    assert cfg.experiment.enabled is expected


def test_debug_env_flag_overrides_file():
    cfg = parse_config(_base(), environ={"BOOKFLOW_ANALYTICS_DEBUG": "true"})
    assert cfg.analytics.debug is True


def test_general_external_url_can_be_disabled():
    cfg = parse_config(_base(experiment={"general_external_url": None}), environ={})
    assert cfg.experiment.general_external_url is None


@pytest.mark.parametrize(
    "section",
    [
        {"tracking": {"scroll_throttle_ms": 100}},
        {"tracking": {"scroll_thresholds": [0, 50]}},
        {"tracking": {"scroll_thresholds": [150]}},
        {"analytics": {"sink": "bigquery"}},
        {"experiment": {"enabled": "maybe"}},
    ],
)
def test_malformed_values_rejected(section):
    with pytest.raises(ValueError):
        parse_config(_base(**section), environ={})


def test_threshold_type_errors():
    with pytest.raises(TypeError):
        parse_config(_base(tracking={"scroll_thresholds": ["half"]}), environ={})
    with pytest.raises(TypeError):
        parse_config(_base(journeys={"id": "x"}), environ={})
