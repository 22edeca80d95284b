from __future__ import annotations

from dataclasses import dataclass

VARIANT_FORM = "form"
VARIANT_EXTERNAL = "fresha"
ALLOWED_VARIANTS: set[str] = {VARIANT_FORM, VARIANT_EXTERNAL}

COHORT_CONTROL = "control"
COHORT_TEST = "test"


@dataclass(frozen=True, slots=True)
class VariantAssignment:
    """
    Booking-flow arm for one visitor. Derived from the visitor identity,
    never stored on its own.
    """

    variant: str
    cohort: str
    visitor_id: str = ""

    @property
    def is_external(self) -> bool:
        return self.variant == VARIANT_EXTERNAL


CONTROL_ASSIGNMENT = VariantAssignment(variant=VARIANT_FORM, cohort=COHORT_CONTROL)
