"""Delay policies for calls against rate-limited upstream services."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from random import Random, SystemRandom
from typing import Protocol


@dataclass(frozen=True)
class RetrySchedule:
    """Doubling retry delays, capped at ``ceiling`` and stretched by up to ``spread``."""

    attempts: int = 2
    initial: float = 1.0
    ceiling: float = 30.0
    spread: float = 0.25

    def __post_init__(self) -> None:
        if self.attempts < 1 or self.initial <= 0 or self.ceiling < self.initial or self.spread < 0:
            raise ValueError(f"invalid retry schedule: {self!r}")

    def delays(self, rng: Random | None = None) -> Iterator[tuple[int, float]]:
        """Yield ``(attempt, seconds)``, one per attempt, attempts numbered from 1."""
        rng = rng or SystemRandom()
        for attempt in range(1, self.attempts + 1):
            nominal = min(self.initial * 2 ** (attempt - 1), self.ceiling)
            yield attempt, min(nominal * (1 + rng.uniform(0, self.spread)), self.ceiling)


class Pacer(Protocol):
    """Decides how long to wait between consecutive items of a batch."""

    def wait(self, index: int, total: int) -> float:
        ...


class FixedIntervalPacer:
    """Sleep a fixed interval between items, never after the last one."""

    def __init__(self, delay_seconds: float, *, sleep: Callable[[float], None] = time.sleep) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._delay = delay_seconds
        self._sleep = sleep

    @property
    def delay_seconds(self) -> float:
        return self._delay

    def wait(self, index: int, total: int) -> float:
        """Pause after item ``index`` (zero based) of ``total``; return the seconds slept."""
        if index >= total - 1 or self._delay == 0:
            return 0.0
        self._sleep(self._delay)
        return self._delay
