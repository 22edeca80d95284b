from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urljoin

import simpy

from bookflow.core.config import AppConfig
from bookflow.core.ids import IdsService, deterministic_run_id_from_config
from bookflow.core.logging import get_logger, set_level
from bookflow.core.rng import RNG
from bookflow.core.types import Clock, RunContext, SimClock
from bookflow.features.booking.service import (
    BookingButton,
    booking_destination,
    record_booking_form_submitted,
)
from bookflow.features.booking.types import DESTINATION_FORM, BookingContext, TreatmentRef
from bookflow.features.bootstrap.types import Journey, JourneyStep, parse_journeys
from bookflow.features.cms.service import ContentRepository, YamlContentRepository
from bookflow.features.events.schema import TrackedEvent
from bookflow.features.events.service import EventTracker, RecordingSink
from bookflow.features.form_tracking.service import FormTracker
from bookflow.features.outbound.service import OutboundClickTracker
from bookflow.features.page.service import AnalyticsHook, BrowserPage
from bookflow.features.page.types import link
from bookflow.features.persistence.duckdb_adapter import DuckDBAdapter
from bookflow.features.persistence.service import PersistenceService, WarehouseSink
from bookflow.features.promo_dialog.service import PromotionalDialogController
from bookflow.features.purchase.service import BookingConfirmationTracker
from bookflow.features.scroll_depth.service import ScrollDepthTracker
from bookflow.features.storage.service import CookieJar, MemoryStorage
from bookflow.features.treatment_view.service import TreatmentView, TreatmentViewTracker
from bookflow.features.variant.service import (
    VARIANT_COOKIE_MAX_AGE_S,
    VARIANT_COOKIE_NAME,
    VariantService,
)
from bookflow.features.variant.types import VariantAssignment

CONSENT_COOKIE_MAX_AGE_S = 365 * 24 * 60 * 60
CONFIRMATION_PATH = "/booking-confirmation"


class PageSession:
    """
    Everything one page load owns: tracker, variant service, site-wide
    trackers and the promotional dialog. Built explicitly per page load;
    mount() after construction, unmount() before the page goes away.
    """

    def __init__(
        self,
        *,
        page: BrowserPage,
        cfg: AppConfig,
        content: ContentRepository | None = None,
        rng: RNG | None = None,
    ) -> None:
        self.page = page
        self.cfg = cfg
        self.content = content

        self.tracker = EventTracker(
            page, consent_cookie=cfg.analytics.consent_cookie, debug=cfg.analytics.debug
        )
        self.variants = VariantService(
            page=page, cfg=cfg.experiment, tracker=self.tracker, rng=rng
        )
        self.outbound = OutboundClickTracker(page=page, tracker=self.tracker)
        self.scroll = ScrollDepthTracker(
            page=page,
            tracker=self.tracker,
            thresholds=cfg.tracking.scroll_thresholds,
            throttle_ms=cfg.tracking.scroll_throttle_ms,
        )
        self.form = FormTracker(form_name=cfg.tracking.form_name, tracker=self.tracker)
        self.treatment_views = TreatmentViewTracker(tracker=self.tracker)

        self.dialog: PromotionalDialogController | None = None
        offer = content.get_active_promotional_offer(page.clock.now()) if content else None
        if offer is not None:
            self.dialog = PromotionalDialogController(
                page=page, offer=offer, tracker=self.tracker, debug=cfg.analytics.debug
            )

        self._confirmation: BookingConfirmationTracker | None = None
        self.mounted = False

    def mount(self) -> VariantAssignment:
        assignment = self.variants.resolve()
        if self.mounted:
            return assignment
        self.mounted = True
        self.outbound.mount()
        self.scroll.mount()
        if self.dialog is not None:
            self.dialog.mount()
        return assignment

    def unmount(self) -> None:
        if not self.mounted:
            return
        self.mounted = False
        if self.dialog is not None:
            self.dialog.unmount()
        self.scroll.unmount()
        self.outbound.unmount()

    def booking_button(
        self, placement: str, treatment: TreatmentRef | None = None
    ) -> BookingButton:
        return BookingButton(
            context=BookingContext(placement=placement, treatment=treatment),
            variants=self.variants,
            tracker=self.tracker,
        )

    def submit_booking_form(self) -> None:
        self.form.on_form_submit()
        record_booking_form_submitted(self.tracker, self.variants.resolve())

    def confirm_booking(self) -> str | None:
        if self._confirmation is None:
            self._confirmation = BookingConfirmationTracker(
                page=self.page, tracker=self.tracker, debug=self.cfg.analytics.debug
            )
        return self._confirmation.on_mount()


SinkFactory = Callable[[str], AnalyticsHook]


class JourneyRunner:
    """
    Replays scripted journeys as simpy processes. Each journey gets its own
    browser profile; every visit is a fresh page and a fresh PageSession.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        cfg: AppConfig,
        clock: Clock,
        rng: RNG,
        sink_factory: SinkFactory,
        content: ContentRepository | None = None,
        run_id: str | None = None,
    ) -> None:
        self.env = env
        self.cfg = cfg
        self.clock = clock
        self.rng = rng
        self.sink_factory = sink_factory
        self.content = content
        self.run_id = run_id
        self._logger = get_logger("bookflow.journeys")

    def start(self, journey: Journey) -> simpy.Process:
        return self.env.process(self._run(journey))

    def _run(self, journey: Journey):
        if journey.start_after_s > 0:
            yield self.env.timeout(journey.start_after_s)

        cookies = CookieJar(clock=self.clock)
        for name, value in journey.cookies.items():
            cookies.set(name, value, max_age_s=VARIANT_COOKIE_MAX_AGE_S)
        if journey.consent:
            cookies.set(
                self.cfg.analytics.consent_cookie, "true", max_age_s=CONSENT_COOKIE_MAX_AGE_S
            )
        local_storage = MemoryStorage()
        session_storage = MemoryStorage()
        sink = self.sink_factory(journey.id)

        session: PageSession | None = None

        def open_page(url: str, step: JourneyStep) -> PageSession:
            page = BrowserPage(
                env=self.env,
                url=urljoin(self.cfg.site.origin + "/", url),
                title=str(step.get("title", "")),
                document_height=float(step.get("document_height", journey.viewport_height)),
                viewport_height=journey.viewport_height,
                clock=self.clock,
                cookies=cookies,
                local_storage=local_storage,
                session_storage=session_storage,
                gtag=sink,
            )
            if isinstance(sink, WarehouseSink):
                sink.page = page
            opened = PageSession(page=page, cfg=self.cfg, content=self.content, rng=self.rng)
            assignment = opened.mount()
            if isinstance(sink, WarehouseSink):
                sink.visitor_id = assignment.visitor_id or None
                sink.variant = assignment.variant
            return opened

        for step in journey.steps:
            if step.action == "wait":
                yield self.env.timeout(max(0.0, float(step.get("seconds", 0.0))))
                continue

            if step.action in ("visit", "confirm_booking"):
                if session is not None:
                    session.unmount()
                if step.action == "visit":
                    session = open_page(str(step.get("path", "/")), step)
                    continue
                query = step.get("query") or {}
                path = str(step.get("path", CONFIRMATION_PATH))
                url = f"{path}?{urlencode(query)}" if query else path
                session = open_page(url, step)
                # effects may run more than once per mount
                for _ in range(max(1, int(step.get("mounts", 1)))):
                    session.confirm_booking()
                continue

            if session is None:
                raise ValueError(f"journey {journey.id!r}: {step.action!r} before any visit")
            self._apply(session, step)

        if session is not None:
            session.unmount()

        self._logger.info(
            "journey finished",
            extra={
                "run_id": self.run_id,
                "feature": "journeys",
                "visitor_id": cookies.get(VARIANT_COOKIE_NAME),
            },
        )

    def _treatment(self, step: JourneyStep) -> TreatmentView | None:
        slug = step.get("slug")
        if slug and self.content is not None:
            t = self.content.get_treatment_by_slug(str(slug))
            if t is None:
                return None
            return TreatmentView(id=t.id, title=t.title, category=t.category, price=t.price)
        if step.get("id") and step.get("title"):
            return TreatmentView(
                id=str(step.get("id")),
                title=str(step.get("title")),
                category=step.get("category"),
                price=None if step.get("price") is None else str(step.get("price")),
            )
        return None

    def _treatment_ref(self, step: JourneyStep) -> TreatmentRef | None:
        slug = step.get("treatment")
        if not slug:
            return None
        if self.content is not None:
            t = self.content.get_treatment_by_slug(str(slug))
            if t is not None:
                return TreatmentRef(
                    title=t.title,
                    external_url=t.external_booking_url,
                    id=t.id,
                    category=t.category,
                    price=t.price,
                )
        return TreatmentRef(title=str(slug))

    def _apply(self, session: PageSession, step: JourneyStep) -> None:
        page = session.page
        action = step.action

        if action == "navigate":
            doc_h = step.get("document_height")
            page.navigate(
                str(step.get("path", "/")),
                title=step.get("title"),
                document_height=None if doc_h is None else float(doc_h),
            )
        elif action == "scroll":
            if step.get("percent") is not None:
                y = float(step.get("percent")) / 100.0 * max(0.0, page.scrollable_height)
            else:
                y = float(step.get("y", 0.0))
            page.scroll_to(y)
        elif action == "click_link":
            page.click(link(step.get("href"), str(step.get("text", ""))))
        elif action == "consent":
            granted = "true" if step.get("granted", True) else "false"
            page.cookies.set(
                self.cfg.analytics.consent_cookie, granted, max_age_s=CONSENT_COOKIE_MAX_AGE_S
            )
        elif action == "focus":
            session.form.on_field_focus(str(step.get("field")))
        elif action == "blur":
            session.form.on_field_blur(str(step.get("field")), bool(step.get("has_value", True)))
        elif action == "field_error":
            session.form.on_field_error(str(step.get("field")), str(step.get("message", "")))
        elif action == "submit_form":
            session.submit_booking_form()
        elif action == "view_treatment":
            treatment = self._treatment(step)
            if treatment is None:
                self._logger.warning(
                    "treatment not found",
                    extra={"run_id": self.run_id, "feature": "journeys", "reason": "not_found"},
                )
                return
            session.treatment_views.on_render(treatment)
        elif action == "book":
            button = session.booking_button(
                str(step.get("placement", "navbar")), self._treatment_ref(step)
            )
            url = button.click()
            # the contact form is a client-side route, external pages leave the site
            if booking_destination(url, self.cfg.experiment) == DESTINATION_FORM:
                page.navigate(url, title="Contact")
        elif action == "promo_cta":
            if session.dialog is not None:
                session.dialog.click_cta()
        elif action == "promo_dismiss":
            if session.dialog is not None:
                session.dialog.dismiss()


@dataclass(frozen=True)
class BootstrapResult:
    ctx: RunContext
    duckdb_path: str | None
    num_events: int
    events: list[TrackedEvent] = field(default_factory=list)  # memory sink only


def resolve_content_path(cfg: AppConfig, config_path: str | None) -> Path | None:
    if not cfg.content.path:
        return None
    p = Path(cfg.content.path)
    if not p.is_absolute() and config_path is not None:
        p = Path(config_path).resolve().parent / p
    return p


def bootstrap_run(cfg: AppConfig, config_path: str | None = None) -> BootstrapResult:
    raw: dict[str, Any] = cfg.raw if isinstance(cfg.raw, dict) else {}

    # ----- run identity -----
    run_id = deterministic_run_id_from_config(raw) if cfg.run.run_id == "auto" else cfg.run.run_id
    set_level(cfg.logging.level)
    logger = get_logger("bookflow.bootstrap")

    rng = RNG(cfg.run.seed)
    ids = IdsService(run_id=run_id)

    start_dt_utc = datetime.fromisoformat(cfg.run.start_date).replace(tzinfo=UTC)
    ctx = RunContext(run_id=run_id, seed=cfg.run.seed, start_dt_utc=start_dt_utc)

    env = simpy.Environment()
    clock = SimClock(env, start_dt_utc)

    journeys = parse_journeys(cfg.journeys)
    content_path = resolve_content_path(cfg, config_path)
    content = YamlContentRepository(content_path) if content_path is not None else None

    # ----- sinks -----
    persistence: PersistenceService | None = None
    recorders: list[RecordingSink] = []

    if cfg.analytics.sink == "duckdb":
        adapter = DuckDBAdapter(path=cfg.storage.duckdb_path, clean_slate=cfg.storage.clean_slate)
        persistence = PersistenceService(
            adapter=adapter,
            every_n_events=cfg.storage.flush.every_n_events,
            or_every_seconds=cfg.storage.flush.or_every_seconds,
        )
        persistence.open()
        persistence.start_periodic_flush(env)
        store = persistence

        def sink_factory(journey_id: str) -> AnalyticsHook:
            return WarehouseSink(
                persistence=store,
                ids=ids,
                run_id=run_id,
                env=env,
                clock=clock,
                journey_id=journey_id,
            )

    else:

        def sink_factory(journey_id: str) -> AnalyticsHook:
            recorder = RecordingSink()
            recorders.append(recorder)
            return recorder

    runner = JourneyRunner(
        env=env,
        cfg=cfg,
        clock=clock,
        rng=rng,
        sink_factory=sink_factory,
        content=content,
        run_id=run_id,
    )

    # ----- run lifecycle -----
    try:
        procs = [runner.start(j) for j in journeys]
        logger.info("starting replay", extra={"run_id": run_id, "feature": "bootstrap"})
        env.run(until=env.all_of(procs))
        if persistence is not None:
            persistence.flush(reason="bootstrap_finish")
    finally:
        if persistence is not None:
            persistence.close()

    if persistence is not None:
        num_events = persistence.total_emitted
        events: list[TrackedEvent] = []
        duckdb_path: str | None = cfg.storage.duckdb_path
    else:
        events = [e for r in recorders for e in r.events]
        num_events = len(events)
        duckdb_path = None

    logger.info("replay finished", extra={"run_id": run_id, "feature": "bootstrap"})
    return BootstrapResult(ctx=ctx, duckdb_path=duckdb_path, num_events=num_events, events=events)
