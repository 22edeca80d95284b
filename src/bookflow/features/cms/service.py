from __future__ import annotations

from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, Protocol

import yaml

from bookflow.core.config import as_bool
from bookflow.core.logging import get_logger
from bookflow.features.cms.types import (
    OfferRecord,
    PromotionalOffer,
    Treatment,
    TreatmentCategory,
)

_logger = get_logger("bookflow.cms")


class ContentRepository(Protocol):
    def get_treatments(self) -> list[Treatment]: ...
    def get_treatment_by_slug(self, slug: str) -> Treatment | None: ...
    def get_categories(self) -> list[TreatmentCategory]: ...
    def get_category_by_slug(self, slug: str) -> TreatmentCategory | None: ...
    def get_treatments_by_category(self, category_slug: str) -> list[Treatment]: ...
    def get_active_promotional_offer(self, now: datetime) -> PromotionalOffer | None: ...


def _as_datetime(value: Any, key: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value)
    else:
        raise TypeError(f"{key} must be a date/datetime")
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def _require(raw: dict[str, Any], key: str, where: str) -> Any:
    if key not in raw or raw[key] in (None, ""):
        raise ValueError(f"{where}.{key} is required")
    return raw[key]


def parse_category(raw: dict[str, Any], where: str = "categories") -> TreatmentCategory:
    return TreatmentCategory(
        id=str(_require(raw, "id", where)),
        slug=str(_require(raw, "slug", where)),
        name=str(_require(raw, "name", where)),
        description=str(raw.get("description") or ""),
        short_description=str(raw.get("short_description") or ""),
    )


def parse_treatment(raw: dict[str, Any], where: str = "treatments") -> Treatment:
    features = raw.get("key_features") or []
    if not isinstance(features, list):
        raise TypeError(f"{where}.key_features must be a list")
    return Treatment(
        id=str(_require(raw, "id", where)),
        slug=str(_require(raw, "slug", where)),
        title=str(_require(raw, "title", where)),
        category=str(_require(raw, "category", where)),
        description=str(raw.get("description") or ""),
        duration=str(raw["duration"]) if raw.get("duration") else None,
        price=str(raw["price"]) if raw.get("price") else None,
        external_booking_url=str(raw["external_booking_url"])
        if raw.get("external_booking_url")
        else None,
        key_features=tuple(str(f) for f in features),
    )


def parse_offer(raw: dict[str, Any], where: str = "promotional_offers") -> OfferRecord:
    offer = PromotionalOffer(
        id=str(_require(raw, "id", where)),
        title=str(_require(raw, "title", where)),
        description=str(raw.get("description") or ""),
        cta_text=str(_require(raw, "cta_text", where)),
        cta_link=str(_require(raw, "cta_link", where)),
        dismiss_duration_days=float(raw.get("dismiss_duration_days", 7)),
        display_delay_seconds=float(raw.get("display_delay_seconds", 3)),
        image=str(raw["image"]) if raw.get("image") else None,
        image_alt=str(raw["image_alt"]) if raw.get("image_alt") else None,
    )
    created_at = _as_datetime(_require(raw, "created_at", where), f"{where}.created_at")
    if created_at is None:
        raise ValueError(f"{where}.created_at is required")
    return OfferRecord(
        offer=offer,
        is_active=as_bool(raw.get("is_active", False), f"{where}.is_active"),
        created_at=created_at,
        start_date=_as_datetime(raw.get("start_date"), f"{where}.start_date"),
        end_date=_as_datetime(raw.get("end_date"), f"{where}.end_date"),
    )


def select_active_offer(records: list[OfferRecord], now: datetime) -> PromotionalOffer | None:
    """
    Active flag set, now inside the optional [start_date, end_date] window;
    the most recently created offer wins on overlap.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    live = [
        r
        for r in records
        if r.is_active
        and (r.start_date is None or r.start_date <= now)
        and (r.end_date is None or now <= r.end_date)
    ]
    if not live:
        return None
    return max(live, key=lambda r: r.created_at).offer


class YamlContentRepository:
    """
    Read-only content source backed by a YAML file:

    categories: [{id, slug, name, ...}]
    treatments: [{id, slug, title, category, price, external_booking_url, ...}]
    promotional_offers: [{id, title, cta_text, cta_link, is_active, created_at, ...}]

    Every call re-reads the file. Read or parse failures are logged and
    reported as "no data".
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _section(self, name: str) -> list[dict[str, Any]]:
        data = yaml.safe_load(self.path.read_text())
        if data is None:
            return []
        if not isinstance(data, dict):
            raise ValueError("Content YAML must parse to a dict at the top level.")
        items = data.get(name) or []
        if not isinstance(items, list):
            raise TypeError(f"{name} must be a list")
        return items

    def _fail(self, what: str) -> None:
        _logger.error(
            f"Error fetching {what} from content repository",
            extra={"feature": "cms", "reason": "fetch_failed"},
            exc_info=True,
        )

    def get_categories(self) -> list[TreatmentCategory]:
        try:
            return [parse_category(raw) for raw in self._section("categories")]
        except Exception:  # noqa: BLE001
            self._fail("categories")
            return []

    def get_category_by_slug(self, slug: str) -> TreatmentCategory | None:
        for category in self.get_categories():
            if category.slug == slug:
                return category
        return None

    def get_treatments(self) -> list[Treatment]:
        try:
            return [parse_treatment(raw) for raw in self._section("treatments")]
        except Exception:  # noqa: BLE001
            self._fail("treatments")
            return []

    def get_treatment_by_slug(self, slug: str) -> Treatment | None:
        for treatment in self.get_treatments():
            if treatment.slug == slug:
                return treatment
        return None

    def get_treatments_by_category(self, category_slug: str) -> list[Treatment]:
        return [t for t in self.get_treatments() if t.category == category_slug]

    def get_active_promotional_offer(self, now: datetime) -> PromotionalOffer | None:
        try:
            section = self._section("promotional_offers")
        except Exception:  # noqa: BLE001
            self._fail("promotional offer")
            return None

        records: list[OfferRecord] = []
        for idx, raw in enumerate(section):
            where = f"promotional_offers[{idx}]"
            if not isinstance(raw, dict):
                _logger.warning(
                    f"skipping {where}: not a mapping",
                    extra={"feature": "cms", "reason": "malformed_offer"},
                )
                continue
            try:
                records.append(parse_offer(raw, where))
            except (ValueError, TypeError) as exc:
                _logger.warning(
                    f"skipping {where}: {exc}",
                    extra={
                        "feature": "cms",
                        "offer_id": raw.get("id"),
                        "reason": "malformed_offer",
                    },
                )
        return select_active_offer(records, now)
