from __future__ import annotations

import json
import logging
import time

import pytest

from logship.config import PipelineConfig
from logship.errors import DeliveryError, UnsupportedMetricKindError
from logship.metrics import MetricRegistry
from logship.models import Event, EventKind
from logship.pipeline import TelemetryPipeline, build_pipeline
from logship.transport import LogAnalyticsClient, RecordingDeliveryClient


class FailingOnceClient(RecordingDeliveryClient):
    def __init__(self, failing_call: int) -> None:
        super().__init__()
        self.failing_call = failing_call
        self.calls = 0

    def send(self, payload: str, stream_tag: str) -> None:
        self.calls += 1
        if self.calls == self.failing_call:
            raise DeliveryError("HTTP 500")
        super().send(payload, stream_tag)


class BrokenOnceRegistry(MetricRegistry):
    def __init__(self) -> None:
        super().__init__()
        self.polls = 0

    def gauges(self, metric_filter=None):
        self.polls += 1
        if self.polls == 1:
            raise RuntimeError("registry unavailable")
        return super().gauges(metric_filter)


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_report_ships_eligible_metrics_on_metric_stream() -> None:
    registry = MetricRegistry()
    registry.counter("jobs.completed").inc(7)
    registry.gauge("shuffle.pending", lambda: None)
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(), registry, client)

    report = pipeline.on_snapshot_due()

    assert report is not None and report.delivered == 1
    payload, tag = client.sent[0]
    assert tag == "RuntimeMetric"
    assert json.loads(payload)["count"] == 7
    assert json.loads(payload)["metric_type"] == "Counter"


def test_empty_registry_makes_no_delivery_calls(caplog) -> None:
    client = RecordingDeliveryClient()

    assert TelemetryPipeline(PipelineConfig(), MetricRegistry(), client).report() is None
    assert client.sent == []
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_events_use_event_stream_and_follow_eligibility() -> None:
    client = RecordingDeliveryClient()
    config = PipelineConfig(event_stream_tag="SparkListenerEvent")
    pipeline = TelemetryPipeline(config, MetricRegistry(), client)

    assert pipeline.on_event(Event(EventKind.OTHER, log_event=False)) is None
    report = pipeline.on_event(Event(EventKind.JOB_END, {"jobId": 1}))

    assert report is not None and report.delivered == 1
    assert client.sent[0][1] == "SparkListenerEvent"
    assert json.loads(client.sent[0][0])["Event"] == "JobEnd"


def test_delivery_failure_mid_batch(caplog) -> None:
    registry = MetricRegistry()
    for index in range(5):
        registry.counter(f"c{index}").inc(index)
    client = FailingOnceClient(failing_call=2)

    report = TelemetryPipeline(PipelineConfig(), registry, client).report()

    assert client.calls == 5
    assert [json.loads(payload)["name"] for payload in client.payloads()] == ["c0", "c2", "c3", "c4"]
    assert report is not None and len(report.failures) == 1
    assert len([r for r in caplog.records if r.levelno >= logging.ERROR]) == 1


def test_unsupported_metric_propagates_from_report() -> None:
    class LeakyRegistry(MetricRegistry):
        def counters(self, metric_filter=None):
            return {"bad": object()}

    with pytest.raises(UnsupportedMetricKindError):
        TelemetryPipeline(PipelineConfig(), LeakyRegistry(), RecordingDeliveryClient()).report()


def test_on_snapshot_due_contains_registry_failures(caplog) -> None:
    registry = BrokenOnceRegistry()
    registry.counter("ticks").inc()
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(), registry, client)

    assert pipeline.on_snapshot_due() is None
    assert "snapshot_report_failed" in caplog.text
    assert client.sent == []

    report = pipeline.on_snapshot_due()
    assert report is not None and report.delivered == 1


def test_malformed_environment_update_does_not_reach_the_host(caplog) -> None:
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(), MetricRegistry(), client)
    event = Event(EventKind.ENVIRONMENT_UPDATE, {"environment_details": ["not", "a", "mapping"]})

    assert pipeline.on_event(event) is None
    assert client.sent == []
    assert "event_serialization_failed" in caplog.text


def test_timer_thread_polls_until_stopped() -> None:
    registry = MetricRegistry()
    registry.counter("ticks").inc()
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(poll_interval_seconds=0.01), registry, client)

    pipeline.start()
    pipeline.start()
    try:
        assert _wait_for(lambda: len(client.sent) >= 2)
        assert pipeline.running
    finally:
        pipeline.stop(timeout=1)

    assert pipeline.running is False
    delivered = len(client.sent)
    time.sleep(0.05)
    assert len(client.sent) == delivered


def test_poller_survives_a_failing_cycle(caplog) -> None:
    registry = BrokenOnceRegistry()
    registry.counter("ticks")
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(poll_interval_seconds=0.01), registry, client)

    pipeline.start()
    try:
        assert _wait_for(lambda: len(client.sent) >= 1)
    finally:
        pipeline.stop(timeout=1)

    assert "snapshot_report_failed" in caplog.text


def test_queued_delivery_mode() -> None:
    client = RecordingDeliveryClient()
    pipeline = TelemetryPipeline(PipelineConfig(delivery_queue_size=8), MetricRegistry(), client)

    pipeline.start()
    try:
        report = pipeline.on_event(Event(EventKind.APPLICATION_START, {"appName": "etl"}))
        pipeline.buffer.join()
    finally:
        pipeline.stop(timeout=1)

    assert report is not None and report.dropped == 0
    assert len(client.sent) == 1


def test_build_pipeline_uses_log_analytics_client() -> None:
    config = PipelineConfig(workspace_id="ws", workspace_key="c2VjcmV0LWtleQ==")

    pipeline = build_pipeline(config, MetricRegistry())

    assert isinstance(pipeline.client, LogAnalyticsClient)
    assert pipeline.client.url == "https://ws.ods.opinsights.azure.com/api/logs"
