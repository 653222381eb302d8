"""Counters, gauges and timings emitted to the log stream and optionally StatsD."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from leadsniper.config import settings

try:  # pragma: no cover - optional dependency
    from statsd import StatsClient
except Exception:  # pragma: no cover - optional dependency guard
    StatsClient = None  # type: ignore[assignment]

logger = logging.getLogger("leadsniper.metrics")

# metric type -> StatsClient method
_STATSD_METHODS: dict[str, str] = {"timing": "timing", "gauge": "gauge", "counter": "incr"}


def _build_statsd_client() -> Any:
    if StatsClient is None:
        logger.warning("metrics.statsd_unavailable", extra={"backend": "statsd"})
        return None
    try:
        return StatsClient(
            host=settings.metrics_statsd_host,
            port=settings.metrics_statsd_port,
            prefix="",
        )
    except Exception as exc:  # pragma: no cover - socket setup failure
        logger.warning(
            "metrics.backend_error",
            extra={"metric": "statsd.init", "backend": "statsd", "error": type(exc).__name__},
        )
        return None


class MetricsReporter:
    """Emit metrics as structured debug logs, mirrored to StatsD when configured.

    Gauges are never sampled; counters and timings honour ``sample_rate``.
    """

    def __init__(
        self,
        *,
        backend: str | None = None,
        namespace: str | None = None,
        sample_rate: float | None = None,
        disabled: bool | None = None,
    ) -> None:
        self._disabled = settings.metrics_disable if disabled is None else disabled
        self._namespace = (namespace or settings.metrics_namespace or "leadsniper").strip(".")
        self._backend = (backend or settings.metrics_backend or "stdout").lower()
        rate = settings.metrics_sample_rate if sample_rate is None else sample_rate
        self._sample_rate = max(0.0, min(rate, 1.0))
        self._statsd = (
            _build_statsd_client() if self._backend == "statsd" and not self._disabled else None
        )

    @property
    def namespace(self) -> str:
        return self._namespace

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    @contextmanager
    def timed(self, metric: str, *, tags: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Time the wrapped block; the yielded tag dict may be extended before exit."""
        resolved = dict(tags or {})
        start = time.perf_counter()
        try:
            yield resolved
        finally:
            self.timing(metric, (time.perf_counter() - start) * 1000, tags=resolved)

    def qualify(self, metric: str) -> str:
        """Prefix ``metric`` with the namespace unless it already carries it."""
        trimmed = (metric or "").strip()
        if not trimmed:
            return self._namespace
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}"

    def _sampled_out(self, metric_type: str) -> bool:
        if metric_type == "gauge" or self._sample_rate >= 1.0:
            return False
        return secrets.randbelow(1_000_000) / 1_000_000 > self._sample_rate

    def _emit(
        self, metric_type: str, metric: str, value: float | None, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None or self._sampled_out(metric_type):
            return
        name = self.qualify(metric)
        rate = 1.0 if metric_type == "gauge" else self._sample_rate
        payload: dict[str, Any] = {
            "metric": name,
            "value": round(float(value), 4),
            "type": metric_type,
            "tags": tags or {},
        }
        if rate < 1.0:
            payload["sample_rate"] = round(rate, 4)
        logger.debug("leadsniper.metric", extra={"metrics": payload})
        if self._statsd is None:
            return
        method = getattr(self._statsd, _STATSD_METHODS[metric_type])
        try:
            if metric_type == "gauge":
                method(name, value)
            else:
                method(name, value, rate=rate)
        except Exception as exc:  # pragma: no cover - UDP send failure
            logger.warning(
                "metrics.backend_error",
                extra={"metric": name, "backend": self._backend, "error": type(exc).__name__},
            )


metrics = MetricsReporter()
