from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

JOURNEY_ACTIONS: set[str] = {
    "visit",
    "navigate",
    "wait",
    "scroll",
    "click_link",
    "consent",
    "focus",
    "blur",
    "field_error",
    "submit_form",
    "view_treatment",
    "book",
    "promo_cta",
    "promo_dismiss",
    "confirm_booking",
}


@dataclass(frozen=True, slots=True)
class JourneyStep:
    action: str
    params: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


@dataclass(frozen=True, slots=True)
class Journey:
    """
    One scripted visitor: a browser profile (cookies, localStorage,
    sessionStorage) shared by every page load in the journey.
    """

    id: str
    steps: tuple[JourneyStep, ...]
    start_after_s: float = 0.0
    consent: bool = False
    viewport_height: float = 800.0
    cookies: dict[str, str] = field(default_factory=dict)


def parse_journeys(raw: list[dict[str, Any]]) -> list[Journey]:
    journeys: list[Journey] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        where = f"journeys[{idx}]"
        if not isinstance(item, dict):
            raise TypeError(f"{where} must be a mapping")

        journey_id = str(item.get("id") or f"journey_{idx + 1}")
        if journey_id in seen:
            raise ValueError(f"{where}.id duplicates {journey_id!r}")
        seen.add(journey_id)

        raw_steps = item.get("steps") or []
        if not isinstance(raw_steps, list):
            raise TypeError(f"{where}.steps must be a list")

        steps: list[JourneyStep] = []
        for s_idx, raw_step in enumerate(raw_steps):
            if not isinstance(raw_step, dict) or "action" not in raw_step:
                raise ValueError(f"{where}.steps[{s_idx}] must be a mapping with an action")
            action = str(raw_step["action"])
            if action not in JOURNEY_ACTIONS:
                raise ValueError(
                    f"{where}.steps[{s_idx}]: unsupported action={action!r}. "
                    f"Allowed={sorted(JOURNEY_ACTIONS)}"
                )
            params = {k: v for k, v in raw_step.items() if k != "action"}
            steps.append(JourneyStep(action=action, params=params))

        cookies = item.get("cookies") or {}
        if not isinstance(cookies, dict):
            raise TypeError(f"{where}.cookies must be a mapping")

        start_after_s = float(item.get("start_after_s", 0.0))
        if start_after_s < 0:
            raise ValueError(f"{where}.start_after_s must be >= 0")

        journeys.append(
            Journey(
                id=journey_id,
                steps=tuple(steps),
                start_after_s=start_after_s,
                consent=bool(item.get("consent", False)),
                viewport_height=float(item.get("viewport_height", 800.0)),
                cookies={str(k): str(v) for k, v in cookies.items()},
            )
        )
    return journeys
