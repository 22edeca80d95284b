from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import simpy

from bookflow.core.ids import IdsService
from bookflow.core.logging import get_logger
from bookflow.core.types import Clock
from bookflow.features.page.service import BrowserPage

from .duckdb_adapter import DuckDBAdapter


@dataclass(frozen=True)
class TrackedEventRow:
    """
    One analytics event as it lands in the warehouse.
    """

    run_id: str
    event_id: str
    ts_utc: datetime
    sim_time_s: float

    event_name: str

    journey_id: str | None = None
    visitor_id: str | None = None
    ab_test_variant: str | None = None
    page_path: str | None = None
    payload: dict[str, Any] | None = None


def json_dumps(payload: dict[str, Any] | None) -> str | None:
    if payload is None:
        return None
    # Stable JSON for deterministic outputs/diffs; None values stay as null keys
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


class PersistenceService:
    """
    Buffered event sink + flush policy.
    - Hot: buffer in memory
    - Cold: DuckDB
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        every_n_events: int,
        or_every_seconds: float,
    ) -> None:
        self.adapter = adapter
        self.every_n_events = int(every_n_events)
        self.or_every_seconds = float(or_every_seconds)

        self._buf: list[TrackedEventRow] = []
        self._logger = get_logger(__name__)

        self._is_open = False
        self._periodic_proc_started = False
        self.total_emitted = 0

    def open(self) -> None:
        if self._is_open:
            return
        self.adapter.open()
        self._is_open = True

    def emit(self, e: TrackedEventRow) -> None:
        if not self._is_open:
            raise RuntimeError("PersistenceService not open. Call open() during bootstrap.")

        self._buf.append(e)
        self.total_emitted += 1

        if self.every_n_events > 0 and len(self._buf) >= self.every_n_events:
            self.flush(reason="count")

    def flush(self, *, reason: str) -> None:
        if not self._buf:
            return

        rows = [self._event_to_row(e) for e in self._buf]
        self._buf.clear()

        result = self.adapter.write_events(rows)

        self._logger.info(
            "flush",
            extra={
                "feature": "persistence",
                "reason": reason,
                "duckdb_path": self.adapter.path,
                "num_events": result.num_events,
                "duration_ms": result.duration_ms,
            },
        )

    def close(self) -> None:
        if not self._is_open:
            return
        # final flush
        self.flush(reason="shutdown")
        self.adapter.close()
        self._is_open = False

    def start_periodic_flush(self, env: simpy.Environment) -> None:
        """
        Start a SimPy process that flushes every `or_every_seconds`.
        Call once during bootstrap after env is created.
        """
        if self._periodic_proc_started:
            return
        self._periodic_proc_started = True
        env.process(self._periodic_flush_proc(env))

    def _periodic_flush_proc(self, env: simpy.Environment):
        while True:
            yield env.timeout(self.or_every_seconds)
            self.flush(reason="timer")

    @staticmethod
    def _event_to_row(e: TrackedEventRow) -> tuple:
        return (
            e.run_id,
            e.event_id,
            e.ts_utc,
            float(e.sim_time_s),
            e.journey_id,
            e.visitor_id,
            e.ab_test_variant,
            e.page_path,
            e.event_name,
            json_dumps(e.payload),
        )


class WarehouseSink:
    """
    gtag-compatible analytics hook writing ("event", name, params) calls
    into the persistence buffer. Journey/visitor context is attached by the
    caller as it becomes known.
    """

    def __init__(
        self,
        *,
        persistence: PersistenceService,
        ids: IdsService,
        run_id: str,
        env: simpy.Environment,
        clock: Clock,
        journey_id: str | None = None,
    ) -> None:
        self.persistence = persistence
        self.ids = ids
        self.run_id = run_id
        self.env = env
        self.clock = clock
        self.journey_id = journey_id
        self.visitor_id: str | None = None
        self.variant: str | None = None
        self.page: BrowserPage | None = None

    def __call__(self, command: str, name: str, params: dict[str, Any] | None = None) -> None:
        if command != "event":
            return
        payload = params or {}
        # identity is known from the payload before the caller learns it
        visitor_id = self.visitor_id or payload.get("user_id")
        variant = self.variant or payload.get("ab_test_variant")
        self.persistence.emit(
            TrackedEventRow(
                run_id=self.run_id,
                event_id=self.ids.next_id("evt"),
                ts_utc=self.clock.now(),
                sim_time_s=float(self.env.now),
                event_name=name,
                journey_id=self.journey_id,
                visitor_id=visitor_id,
                ab_test_variant=variant,
                page_path=self.page.pathname if self.page is not None else None,
                payload=params,
            )
        )
