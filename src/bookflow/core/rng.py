from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass
class RNG:
    """
    Seedable randomness for visitor identities. seed=None draws from OS
    entropy; a fixed seed makes journey replays reproducible.
    """

    seed: int | None = None

    def __post_init__(self) -> None:
        self._r = random.Random(self.seed)

    def choice(self, seq: Sequence[T]) -> T:
        return self._r.choice(seq)

    def base36(self, length: int) -> str:
        return "".join(self.choice(BASE36_ALPHABET) for _ in range(length))
