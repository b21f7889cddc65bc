from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ExponentialBackoffStrategy:
    """Exponential backoff with cap and multiplier.

    `compute(attempt)` is the deterministic delay after failed attempt
    `attempt` (1-indexed): `base * multiplier ** (attempt - 1)`, capped.
    """

    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    def uncapped(self, attempt: int) -> float:
        return self.base_delay_seconds * self.multiplier ** max(0, attempt - 1)

    def compute(self, attempt: int) -> float:
        return min(self.uncapped(attempt), self.max_delay_seconds)

