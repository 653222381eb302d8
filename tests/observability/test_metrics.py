from __future__ import annotations

import logging

from leadsniper.observability.metrics import MetricsReporter


def _payloads(caplog) -> list[dict]:
    return [record.metrics for record in caplog.records if hasattr(record, "metrics")]


def test_metric_names_are_namespaced_once():
    reporter = MetricsReporter(backend="stdout", namespace="leadsniper", disabled=False)
    assert reporter.qualify("research.run.completed") == "leadsniper.research.run.completed"
    assert reporter.qualify("leadsniper.outreach.delivered") == "leadsniper.outreach.delivered"
    assert reporter.qualify("  ") == "leadsniper"


def test_timed_emits_timing_with_extended_tags(caplog):
    reporter = MetricsReporter(backend="stdout", sample_rate=1.0, disabled=False)
    with caplog.at_level(logging.DEBUG, logger="leadsniper.metrics"):
        with reporter.timed("verification.latency_ms", tags={"step": "verify"}) as tags:
            tags["outcome"] = "ok"

    payload = _payloads(caplog)[-1]
    assert payload["type"] == "timing"
    assert payload["tags"] == {"step": "verify", "outcome": "ok"}
    assert payload["value"] >= 0


def test_gauges_ignore_sampling_and_disabled_reporter_is_silent(caplog):
    sampled = MetricsReporter(backend="stdout", sample_rate=0.0, disabled=False)
    silent = MetricsReporter(backend="stdout", disabled=True)
    with caplog.at_level(logging.DEBUG, logger="leadsniper.metrics"):
        sampled.increment("dropped")
        sampled.gauge("kept", 3)
        silent.gauge("never", 1)

    assert [payload["metric"] for payload in _payloads(caplog)] == ["leadsniper.kept"]
