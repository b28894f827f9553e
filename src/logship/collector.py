"""Poll-cycle collection of metric records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from logship.eligibility import is_metric_eligible
from logship.errors import SerializationError
from logship.metrics import Clock, MetricFilter, MetricRegistry, SystemClock
from logship.models import Record
from logship.records import Units, metric_to_record


class SnapshotCollector:
    """Turns the current state of a metric registry into one batch of records."""

    def __init__(
        self,
        registry: MetricRegistry,
        *,
        units: Units | None = None,
        stream_tag: str = "",
        metric_filter: MetricFilter | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._units = units or Units()
        self._stream_tag = stream_tag
        self._filter = metric_filter
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger("logship.collector")

    def collect(self) -> list[Record]:
        """Build the batch for one poll cycle.

        All records share one capture timestamp. A metric that cannot be
        converted is logged and skipped; its siblings are still collected.
        An unsupported metric type aborts the cycle.
        """
        collections = (
            self._registry.gauges(self._filter),
            self._registry.counters(self._filter),
            self._registry.histograms(self._filter),
            self._registry.meters(self._filter),
            self._registry.timers(self._filter),
        )
        if not any(collections):
            self._logger.info("snapshot_empty")
            return []

        now = self._clock.time()
        records: list[Record] = []
        for metrics in collections:
            records.extend(self._convert_all(metrics, now))

        if not records:
            self._logger.info("snapshot_empty", extra={"registered": sum(len(c) for c in collections)})
        return records

    def _convert_all(self, metrics: Mapping[str, object], now: datetime) -> list[Record]:
        records: list[Record] = []
        for name, metric in metrics.items():
            if not is_metric_eligible(metric):
                continue
            try:
                records.append(
                    metric_to_record(name, metric, now, units=self._units, stream_tag=self._stream_tag)
                )
            except SerializationError:
                self._logger.warning("metric_serialization_failed", extra={"metric": name}, exc_info=True)
        return records
