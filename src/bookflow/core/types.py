from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import simpy


class Clock(Protocol):
    def now(self) -> datetime: ...
    def now_ms(self) -> int: ...


class SimClock:
    """
    Wall clock driven by the simpy environment.
    env.now is seconds since start_dt.
    """

    def __init__(self, env: simpy.Environment, start_dt: datetime) -> None:
        self.env = env
        if start_dt.tzinfo is None:
            start_dt = start_dt.replace(tzinfo=UTC)
        else:
            start_dt = start_dt.astimezone(UTC)
        self.start_dt = start_dt

    def now(self) -> datetime:
        return self.start_dt + timedelta(seconds=float(self.env.now))

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class RunContext:
    run_id: str
    seed: int
    start_dt_utc: datetime
