from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from logship.collector import SnapshotCollector
from logship.errors import UnsupportedMetricKindError
from logship.metrics import Counter, MetricRegistry
from logship.models import RecordKind

T = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


class FixedClock:
    def tick(self) -> float:
        return 0.0

    def time(self) -> datetime:
        return T


class StubRegistry:
    """Registry collaborator that hands out whatever it was given."""

    def __init__(self, counters: dict) -> None:
        self._counters = counters

    def gauges(self, metric_filter=None) -> dict:
        return {}

    def counters(self, metric_filter=None) -> dict:
        return self._counters

    def histograms(self, metric_filter=None) -> dict:
        return {}

    def meters(self, metric_filter=None) -> dict:
        return {}

    def timers(self, metric_filter=None) -> dict:
        return {}


def test_counter_and_null_gauge_yield_one_record() -> None:
    registry = MetricRegistry()
    registry.counter("jobs.completed").inc(7)
    registry.gauge("shuffle.pending", lambda: None)

    records = SnapshotCollector(registry, clock=FixedClock()).collect()

    assert len(records) == 1
    record = records[0]
    assert record.name == "jobs.completed"
    assert record.kind is RecordKind.COUNTER
    assert dict(record.fields) == {"count": 7}
    assert record.timestamp == T


def test_empty_registry_short_circuits(caplog) -> None:
    caplog.set_level(logging.INFO, logger="logship.collector")

    records = SnapshotCollector(MetricRegistry()).collect()

    assert records == []
    assert [r.getMessage() for r in caplog.records] == ["snapshot_empty"]
    assert all(r.levelno == logging.INFO for r in caplog.records)


def test_only_null_gauges_is_an_empty_cycle(caplog) -> None:
    caplog.set_level(logging.INFO, logger="logship.collector")
    registry = MetricRegistry()
    registry.gauge("a", lambda: None)

    assert SnapshotCollector(registry).collect() == []
    assert "snapshot_empty" in caplog.text


def test_failing_metric_does_not_abort_siblings(caplog) -> None:
    def _boom():
        raise RuntimeError("sensor offline")

    registry = MetricRegistry()
    registry.gauge("broken", _boom)
    registry.gauge("nan", lambda: float("nan"))
    registry.gauge("heap", lambda: 1024)
    registry.counter("jobs.completed").inc()

    records = SnapshotCollector(registry).collect()

    assert [record.name for record in records] == ["heap", "jobs.completed"]
    failures = [r for r in caplog.records if r.getMessage() == "metric_serialization_failed"]
    assert sorted(r.metric for r in failures) == ["broken", "nan"]
    assert all(r.levelno == logging.WARNING for r in failures)


def test_every_kind_shares_one_timestamp_in_sorted_order() -> None:
    registry = MetricRegistry()
    registry.timer("t")
    registry.meter("m")
    registry.histogram("h")
    registry.counter("c2")
    registry.counter("c1")
    registry.gauge("g", lambda: 1.5)

    records = SnapshotCollector(registry, clock=FixedClock(), stream_tag="RuntimeMetric").collect()

    assert [record.name for record in records] == ["g", "c1", "c2", "h", "m", "t"]
    assert {record.timestamp for record in records} == {T}
    assert {record.stream_tag for record in records} == {"RuntimeMetric"}


def test_metric_filter_is_applied() -> None:
    registry = MetricRegistry()
    registry.counter("driver.jobs")
    registry.counter("executor.tasks")

    collector = SnapshotCollector(registry, metric_filter=lambda name, metric: name.startswith("driver."))

    assert [record.name for record in collector.collect()] == ["driver.jobs"]


def test_unsupported_metric_aborts_the_cycle() -> None:
    collector = SnapshotCollector(StubRegistry({"ok": Counter(), "bad": object()}))

    with pytest.raises(UnsupportedMetricKindError):
        collector.collect()
