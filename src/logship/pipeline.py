"""Pipeline object wiring the collector and normalizer to delivery."""

from __future__ import annotations

import logging
import threading

from logship.collector import SnapshotCollector
from logship.config import PipelineConfig
from logship.delivery import DeliveryBuffer, DeliveryClient, DeliveryReport, QueuedDeliveryBuffer
from logship.errors import UnsupportedMetricKindError
from logship.metrics import Clock, MetricFilter, MetricRegistry, SystemClock
from logship.models import Event
from logship.normalizer import EventNormalizer
from logship.transport.loganalytics import LogAnalyticsClient


class TelemetryPipeline:
    """Ships periodic metric snapshots and pushed lifecycle events.

    ``report`` runs on the poll timer thread and ``on_event`` on whichever
    host thread delivers the event. The two paths only share the delivery
    client.
    """

    def __init__(
        self,
        config: PipelineConfig,
        registry: MetricRegistry,
        client: DeliveryClient,
        *,
        metric_filter: MetricFilter | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.client = client
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger("logship.pipeline")

        self.collector = SnapshotCollector(
            registry,
            units=config.units,
            stream_tag=config.metric_stream_tag,
            metric_filter=metric_filter,
            clock=self._clock,
        )
        self.normalizer = EventNormalizer(
            policy=config.event_policy,
            redaction_pattern=config.redaction_pattern,
            stream_tag=config.event_stream_tag,
            clock=self._clock,
        )
        self._buffer = DeliveryBuffer(client, timestamp_field=config.timestamp_field)
        self._queued: QueuedDeliveryBuffer | None = None
        if config.delivery_queue_size > 0:
            self._queued = QueuedDeliveryBuffer(self._buffer, max_queue_size=config.delivery_queue_size)

        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._poller: threading.Thread | None = None

    @property
    def buffer(self) -> DeliveryBuffer | QueuedDeliveryBuffer:
        return self._queued or self._buffer

    @property
    def running(self) -> bool:
        return self._poller is not None and self._poller.is_alive()

    def start(self) -> None:
        """Start the poll timer; the first cycle runs one interval from now."""
        with self._lock:
            if self.running:
                return
            if self._queued is not None:
                self._queued.start()
            self._stopping = threading.Event()
            self._poller = threading.Thread(
                target=self._poll_loop,
                args=(self._stopping,),
                name="logship-snapshot-poller",
                daemon=True,
            )
            self._poller.start()
        self._logger.info(
            "pipeline_started",
            extra={"workspace_id": self.config.workspace_id, "poll_interval_seconds": self.config.poll_interval_seconds},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Halt the poll timer. An in-flight delivery loop runs to completion."""
        with self._lock:
            poller = self._poller
            self._poller = None
            self._stopping.set()
        if poller is not None and poller is not threading.current_thread():
            poller.join(timeout)
        if self._queued is not None:
            self._queued.stop()
        self._logger.info("pipeline_stopped")

    def report(self) -> DeliveryReport | None:
        """Run one poll cycle; ``None`` when nothing was eligible or the cycle failed.

        Registry and delivery failures are logged and contained here so an
        external scheduler calling ``on_snapshot_due`` keeps running. An
        ``UnsupportedMetricKindError`` still propagates.
        """
        self._logger.debug("reporting_metrics")
        try:
            records = self.collector.collect()
            if not records:
                return None
            return self.buffer.deliver(records, self.config.metric_stream_tag)
        except UnsupportedMetricKindError:
            raise
        except Exception:  # noqa: BLE001 - a failed cycle must not stop the scheduler.
            self._logger.exception("snapshot_report_failed")
            return None

    on_snapshot_due = report

    def on_event(self, event: Event) -> DeliveryReport | None:
        record = self.normalizer.normalize(event)
        if record is None:
            return None
        return self.buffer.deliver([record], self.config.event_stream_tag)

    def _poll_loop(self, stopping: threading.Event) -> None:
        interval = self.config.poll_interval_seconds
        while not stopping.wait(interval):
            try:
                self.report()
            except Exception:  # noqa: BLE001 - the poller must stay scheduled.
                self._logger.exception("snapshot_report_failed")


def build_pipeline(config: PipelineConfig, registry: MetricRegistry, **kwargs) -> TelemetryPipeline:
    """Wire a pipeline that ships to the configured Log Analytics workspace."""
    client = LogAnalyticsClient(
        config.workspace_id,
        config.workspace_key,
        endpoint_domain=config.endpoint_domain,
        time_generated_field=config.timestamp_field,
        timeout=config.http_timeout_seconds,
    )
    return TelemetryPipeline(config, registry, client, **kwargs)
