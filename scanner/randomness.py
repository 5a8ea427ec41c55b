from __future__ import annotations
import random
import string
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

BASE36 = string.digits + string.ascii_lowercase


class ScanRandom:
    """
    Every random decision the simulator makes goes through here, so tests can
    subclass it and script the outcome of a scan.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def files_per_tick(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)

    def threat_count(self, maximum: int) -> int:
        return self._rng.randint(0, maximum)

    def choice(self, options: Sequence[T]) -> T:
        return self._rng.choice(options)

    def threat_name(self) -> str:
        return "Threat." + "".join(self._rng.choice(BASE36) for _ in range(6))

    def file_size(self, upper: int = 1024000) -> int:
        return self._rng.randrange(0, upper)
