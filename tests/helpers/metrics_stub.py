from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, NamedTuple


class RecordedMetric(NamedTuple):
    kind: str
    metric: str
    value: float
    tags: dict[str, Any]


class StubMetrics:
    """Stands in for the metrics singleton and records every emission."""

    def __init__(self) -> None:
        self.recorded: list[RecordedMetric] = []

    def _record(self, kind: str, metric: str, value: float, tags: dict[str, Any] | None) -> None:
        self.recorded.append(RecordedMetric(kind, metric, value, dict(tags or {})))

    def increment(self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None):
        self._record("increment", metric, value, tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None):
        self._record("gauge", metric, value, tags)

    def timing(self, metric: str, value: float, *, tags: dict[str, Any] | None = None):
        self._record("timing", metric, value, tags)

    @contextmanager
    def timed(self, metric: str, *, tags: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        extra = dict(tags or {})
        yield extra
        self.timing(metric, 0.0, tags=extra)

    def names(self, kind: str = "increment") -> list[str]:
        return [entry.metric for entry in self.recorded if entry.kind == kind]
