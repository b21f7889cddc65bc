from __future__ import annotations

import random
from typing import Optional


def proportional_jitter(
    delay: float, ratio: float = 0.1, rng: Optional[random.Random] = None
) -> float:
    """Random extra wait in [0, ratio * delay]."""
    uniform = rng.uniform if rng is not None else random.uniform
    return uniform(0.0, ratio * max(0.0, delay))


def jittered_delay(
    uncapped: float,
    max_delay: float,
    ratio: float = 0.1,
    rng: Optional[random.Random] = None,
) -> float:
    """`min(uncapped + jitter, max_delay)` with proportional jitter."""
    return min(uncapped + proportional_jitter(uncapped, ratio, rng), max_delay)
