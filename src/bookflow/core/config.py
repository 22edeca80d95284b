from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SCROLL_THRESHOLDS: tuple[int, ...] = (25, 50, 75, 90)
DEFAULT_EXTERNAL_BOOKING_URL = (
    "https://www.fresha.com/book-now/heavenly-treatments-with-hayleybell-wvoyw0pw/"
    "all-offer?share=true&pId=2525483"
)

AB_TEST_ENV_VAR = "BOOKFLOW_AB_TEST_ENABLED"
DEBUG_ENV_VAR = "BOOKFLOW_ANALYTICS_DEBUG"


@dataclass(frozen=True)
class RunConfig:
    run_id: str
    seed: int
    start_date: str


@dataclass(frozen=True)
class ExperimentConfig:
    enabled: bool = False
    contact_path: str = "/contact"
    # Site-wide external booking page; None means fall back to the contact form.
    general_external_url: str | None = None


@dataclass(frozen=True)
class AnalyticsConfig:
    consent_cookie: str = "HeavenlyTreatmentsCookieConsent"
    debug: bool = False
    sink: str = "duckdb"  # "duckdb" | "memory"


@dataclass(frozen=True)
class TrackingConfig:
    scroll_thresholds: tuple[int, ...] = DEFAULT_SCROLL_THRESHOLDS
    scroll_throttle_ms: float = 150.0
    form_name: str = "contact_form"


@dataclass(frozen=True)
class FlushConfig:
    every_n_events: int = 5000
    or_every_seconds: float = 30.0


@dataclass(frozen=True)
class StorageConfig:
    duckdb_path: str
    clean_slate: bool = True
    flush: FlushConfig = FlushConfig()


@dataclass(frozen=True)
class SiteConfig:
    origin: str = "https://www.heavenlytreatments.co.uk"


@dataclass(frozen=True)
class ContentConfig:
    path: str | None = None


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    run: RunConfig
    storage: StorageConfig
    logging: LoggingConfig
    experiment: ExperimentConfig = ExperimentConfig()
    analytics: AnalyticsConfig = AnalyticsConfig()
    tracking: TrackingConfig = TrackingConfig()
    site: SiteConfig = SiteConfig()
    content: ContentConfig = ContentConfig()
    journeys: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)  # original parsed YAML (for hashing / debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def _env_flag(environ: Mapping[str, str], name: str) -> bool | None:
    if name not in environ:
        return None
    return environ[name] == "true"


def as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"{key} must be a boolean")


def _parse_thresholds(raw: Any) -> tuple[int, ...]:
    if raw is None:
        return DEFAULT_SCROLL_THRESHOLDS
    if not isinstance(raw, list | tuple):
        raise TypeError("tracking.scroll_thresholds must be a list")
    out: list[int] = []
    for idx, item in enumerate(raw):
        try:
            t = int(item)
        except (TypeError, ValueError) as e:
            raise TypeError(f"tracking.scroll_thresholds[{idx}] must be an integer") from e
        if not (0 < t <= 100):
            raise ValueError(f"tracking.scroll_thresholds[{idx}] must be in (0, 100]")
        out.append(t)
    return tuple(out)


def parse_config(
    data: dict[str, Any], environ: Mapping[str, str] | None = None
) -> AppConfig:
    env = os.environ if environ is None else environ

    for key in ["run", "storage", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    run = data.get("run") or {}
    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}
    experiment = data.get("experiment") or {}
    analytics = data.get("analytics") or {}
    tracking = data.get("tracking") or {}
    flush = storage.get("flush") or {}

    run_cfg = RunConfig(
        run_id=str(run.get("run_id", "auto")),
        seed=int(run["seed"]),
        start_date=str(run["start_date"]),
    )

    storage_cfg = StorageConfig(
        duckdb_path=str(storage["duckdb_path"]),
        clean_slate=bool(storage.get("clean_slate", True)),
        flush=FlushConfig(
            every_n_events=int(flush.get("every_n_events", 5000)),
            or_every_seconds=float(flush.get("or_every_seconds", 30.0)),
        ),
    )

    enabled = as_bool(experiment.get("enabled", False), "experiment.enabled")
    env_enabled = _env_flag(env, AB_TEST_ENV_VAR)
    if env_enabled is not None:
        enabled = env_enabled

    general_url = experiment.get("general_external_url", DEFAULT_EXTERNAL_BOOKING_URL)
    experiment_cfg = ExperimentConfig(
        enabled=enabled,
        contact_path=str(experiment.get("contact_path", "/contact")),
        general_external_url=str(general_url) if general_url else None,
    )

    debug = as_bool(analytics.get("debug", False), "analytics.debug")
    env_debug = _env_flag(env, DEBUG_ENV_VAR)
    if env_debug is not None:
        debug = env_debug

    sink = str(analytics.get("sink", "duckdb")).strip().lower()
    if sink not in ("duckdb", "memory"):
        raise ValueError(f"Unsupported analytics.sink: {sink!r}")

    analytics_cfg = AnalyticsConfig(
        consent_cookie=str(analytics.get("consent_cookie", AnalyticsConfig.consent_cookie)),
        debug=debug,
        sink=sink,
    )

    throttle_ms = float(tracking.get("scroll_throttle_ms", 150.0))
    if throttle_ms < 150.0:
        raise ValueError("tracking.scroll_throttle_ms must be >= 150")

    tracking_cfg = TrackingConfig(
        scroll_thresholds=_parse_thresholds(tracking.get("scroll_thresholds")),
        scroll_throttle_ms=throttle_ms,
        form_name=str(tracking.get("form_name", "contact_form")),
    )

    site = data.get("site") or {}
    content = data.get("content") or {}

    journeys = data.get("journeys") or []
    if not isinstance(journeys, list):
        raise TypeError("journeys must be a list")

    return AppConfig(
        run=run_cfg,
        storage=storage_cfg,
        logging=LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper()),
        experiment=experiment_cfg,
        analytics=analytics_cfg,
        tracking=tracking_cfg,
        site=SiteConfig(origin=str(site.get("origin", SiteConfig.origin)).rstrip("/")),
        content=ContentConfig(path=str(content["path"]) if content.get("path") else None),
        journeys=list(journeys),
        raw=data,
    )


def load_config(path: str | Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    data = load_yaml(path)
    return parse_config(data, environ=environ)
