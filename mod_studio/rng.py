from __future__ import annotations

import math
from typing import Any, List, Optional
import numpy as np


def _coerce_seed(seed: Any) -> Optional[int]:
    """Reduce a seed to an unsigned 32-bit int; None for missing/invalid seeds."""
    if seed is None or isinstance(seed, bool):
        return None
    try:
        v = float(seed)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v) or v < 0:
        return None
    return int(v) & 0xFFFFFFFF


class SimRng:
    """
    Random source for one simulation context.

    Seeded instances are reproducible (numpy PCG64); unseeded ones draw OS
    entropy. Gaussian draws use Box-Muller on two uniforms so that a seed
    fixes the exact noise sequence.
    """

    def __init__(self, seed: Any = None) -> None:
        self._seed: Optional[int] = None
        self._gen = np.random.default_rng()
        self.set_seed(seed)

    def set_seed(self, seed: Any) -> None:
        self._seed = _coerce_seed(seed)
        self._gen = np.random.default_rng(self._seed)

    def get_seed(self) -> Optional[int]:
        return self._seed

    def is_deterministic(self) -> bool:
        return self._seed is not None

    def random(self) -> float:
        return float(self._gen.random())

    def uniform(self, count: int) -> np.ndarray:
        count = max(0, int(count))
        return self._gen.random(count)

    def random_bits(self, count: int) -> List[int]:
        u = self.uniform(count)
        return [int(b) for b in (u > 0.5)]

    def gaussian(self, count: int) -> np.ndarray:
        count = max(0, int(count))
        if count == 0:
            return np.array([], dtype=float)
        # interleaved pairs: (u, v) per output sample
        draws = self._gen.random(2 * count).reshape(count, 2)
        u = 1.0 - draws[:, 0]          # (0, 1], keeps log finite
        v = draws[:, 1]
        return np.sqrt(-2.0 * np.log(u)) * np.cos(2 * np.pi * v)

    def gaussian_random(self) -> float:
        return float(self.gaussian(1)[0])


DEFAULT_RNG = SimRng()


def resolve(rng: Optional[SimRng]) -> SimRng:
    return rng if rng is not None else DEFAULT_RNG


def set_seed(seed: Any) -> None:
    DEFAULT_RNG.set_seed(seed)


def get_seed() -> Optional[int]:
    return DEFAULT_RNG.get_seed()


def is_deterministic() -> bool:
    return DEFAULT_RNG.is_deterministic()


def random() -> float:
    return DEFAULT_RNG.random()


def random_bits(count: int) -> List[int]:
    return DEFAULT_RNG.random_bits(count)


def gaussian_random() -> float:
    return DEFAULT_RNG.gaussian_random()
