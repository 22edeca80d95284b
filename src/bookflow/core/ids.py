from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from bookflow.core.rng import RNG

VISITOR_ID_PREFIX = "user_"
VISITOR_ID_SUFFIX_LEN = 9


def canonical_json(obj: dict[str, Any]) -> str:
    # key order and whitespace never change the digest; dates hash as their str()
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str)


def deterministic_run_id_from_config(cfg_raw: dict[str, Any], length: int = 12) -> str:
    """
    Replay id derived from the full config content: same YAML (journeys
    included), same run_id; any edit gives a new one.
    """
    s = canonical_json(cfg_raw).encode("utf-8")
    return hashlib.sha1(s).hexdigest()[:length]


def visitor_identity(now_ms: int, rng: RNG) -> str:
    """
    user_<epoch_ms>_<9 base36 chars>, the value of the visitor cookie.
    """
    return f"{VISITOR_ID_PREFIX}{int(now_ms)}_{rng.base36(VISITOR_ID_SUFFIX_LEN)}"


def is_visitor_identity(value: str | None) -> bool:
    return bool(value) and value.startswith(VISITOR_ID_PREFIX) and len(value) > len(
        VISITOR_ID_PREFIX
    )


@dataclass(slots=True)
class IdsService:
    """
    Warehouse row ids: <prefix>_<run_id>_<n>, counted per prefix, so a
    replay of the same config reproduces the same ids.
    """

    run_id: str
    _counters: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def next_id(self, prefix: str) -> str:
        n = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = n
        return f"{prefix}_{self.run_id}_{n:08d}"
