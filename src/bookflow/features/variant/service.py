from __future__ import annotations

from bookflow.core.config import ExperimentConfig
from bookflow.core.ids import is_visitor_identity, visitor_identity
from bookflow.core.rng import RNG
from bookflow.features.events.service import EventTracker
from bookflow.features.page.service import BrowserPage
from bookflow.features.variant.types import (
    COHORT_CONTROL,
    COHORT_TEST,
    CONTROL_ASSIGNMENT,
    VARIANT_EXTERNAL,
    VARIANT_FORM,
    VariantAssignment,
)

VARIANT_COOKIE_NAME = "ab_test_variant"
VARIANT_COOKIE_MAX_AGE_S = 365 * 24 * 60 * 60


def stable_hash(value: str) -> int:
    """
    31-multiplier string hash over UTF-16 code units, wrapped to a signed
    32-bit integer, absolute value. Independent of PYTHONHASHSEED, so a
    visitor keeps the same cohort across processes and across existing
    cookies.
    """
    h = 0
    data = value.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def assign_variant(identity: str) -> VariantAssignment:
    if stable_hash(identity) % 2 == 0:
        return VariantAssignment(variant=VARIANT_FORM, cohort=COHORT_CONTROL, visitor_id=identity)
    return VariantAssignment(variant=VARIANT_EXTERNAL, cohort=COHORT_TEST, visitor_id=identity)


def is_valid_identity(value: str | None) -> bool:
    """
    Cookie values not shaped like user_<...> (tampered, legacy) are treated
    as absent and replaced.
    """
    return is_visitor_identity(value)


def describe_variant(variant: str) -> str:
    if variant == VARIANT_FORM:
        return "Control - Contact Form"
    if variant == VARIANT_EXTERNAL:
        return "Test - Direct Fresha Booking"
    return "Unknown Variant"


class VariantService:
    """
    Cookie-backed visitor identity + deterministic 50/50 booking-flow split.

    - identity cookie: ab_test_variant=user_<epoch_ms>_<9 base36 chars>
    - the assignment is recomputed from the identity on every read
    - VariantAssigned is tracked once, when the identity is first created
    """

    def __init__(
        self,
        *,
        page: BrowserPage | None,
        cfg: ExperimentConfig,
        tracker: EventTracker,
        rng: RNG | None = None,
    ) -> None:
        self.page = page
        self.cfg = cfg
        self.tracker = tracker
        self.rng = rng or RNG()
        self._assignment: VariantAssignment | None = None

    def is_experiment_enabled(self) -> bool:
        return bool(self.cfg.enabled)

    def new_identity(self) -> str:
        if self.page is None:
            raise RuntimeError("new_identity() needs a browser context")
        return visitor_identity(self.page.clock.now_ms(), self.rng)

    def read_identity(self) -> str | None:
        if self.page is None:
            return None
        try:
            value = self.page.cookies.get(VARIANT_COOKIE_NAME)
        except Exception:  # noqa: BLE001
            return None
        return value if is_valid_identity(value) else None

    def _get_or_create(self) -> tuple[str, bool]:
        if self.page is None:
            return "", False

        existing = self.read_identity()
        if existing is not None:
            return existing, False

        identity = self.new_identity()
        try:
            self.page.cookies.set(
                VARIANT_COOKIE_NAME,
                identity,
                max_age_s=VARIANT_COOKIE_MAX_AGE_S,
                path="/",
                same_site="Lax",
            )
        except Exception:  # noqa: BLE001
            # identity still usable for this page view
            pass
        return identity, True

    def get_or_create_visitor_identity(self) -> str:
        identity, _created = self._get_or_create()
        return identity

    def resolve(self) -> VariantAssignment:
        """
        Assignment for the current visitor; control when the experiment is
        off or there is no browser context.
        """
        if self._assignment is not None:
            return self._assignment

        if not self.is_experiment_enabled() or self.page is None:
            self._assignment = CONTROL_ASSIGNMENT
            return self._assignment

        identity, created = self._get_or_create()
        assignment = assign_variant(identity)
        if created:
            self.tracker.track_variant_assigned(
                variant=assignment.variant,
                cohort=assignment.cohort,
                visitor_id=assignment.visitor_id,
            )
        self._assignment = assignment
        return assignment
