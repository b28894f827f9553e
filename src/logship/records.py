"""Mapping of metrics and events into canonical records, and record serialization."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from logship.errors import LogshipError, SerializationError, UnsupportedMetricKindError
from logship.metrics import Counter, Gauge, Histogram, Meter, Metric, Snapshot, Timer
from logship.models import EVENT_NAME_FIELD, FIELD_SCHEMAS, Event, Record, RecordKind, TimeUnit

_SCALAR_TYPES = (bool, int, float, str)


@dataclass(frozen=True, slots=True)
class Units:
    """Rate and duration units applied when extracting metric fields."""

    rate_unit: TimeUnit = TimeUnit.SECONDS
    duration_unit: TimeUnit = TimeUnit.MILLISECONDS

    def rate(self, per_second: float) -> float:
        return per_second * self.rate_unit.seconds

    def duration(self, seconds: float) -> float:
        return seconds / self.duration_unit.seconds

    @property
    def event_rate_label(self) -> str:
        return f"events/{self.rate_unit.singular}"

    @property
    def call_rate_label(self) -> str:
        return f"calls/{self.rate_unit.singular}"


def metric_kind(metric: object) -> RecordKind:
    """Return the record kind for ``metric`` or fail loudly for unknown types."""
    for metric_type, kind in _KIND_BY_TYPE:
        if isinstance(metric, metric_type):
            return kind
    raise UnsupportedMetricKindError(metric)


def metric_to_record(
    name: str,
    metric: Metric,
    timestamp: datetime,
    *,
    units: Units | None = None,
    stream_tag: str = "",
) -> Record:
    kind = metric_kind(metric)
    extract = _EXTRACTORS[kind]
    try:
        fields = extract(metric, units or Units())
    except LogshipError:
        raise
    except Exception as exc:  # noqa: BLE001 - metric callbacks are host code.
        raise SerializationError(f"Unable to read {kind.value.lower()} {name!r}: {type(exc).__name__}: {exc}") from exc

    for key, value in fields.items():
        fields[key] = _scalar(name, key, value)
    return Record(name=name, kind=kind, fields=fields, timestamp=timestamp, stream_tag=stream_tag)


def event_to_record(event: Event, timestamp: datetime, *, stream_tag: str = "") -> Record:
    """Convert a lifecycle event; attributes must be JSON-compatible."""
    fields: dict[str, Any] = {EVENT_NAME_FIELD: event.event_name}
    for key, value in event.attributes.items():
        if key != EVENT_NAME_FIELD:
            fields[str(key)] = value

    try:
        json.dumps(fields, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Event {event.event_name!r} has attributes that are not JSON-compatible: {exc}") from exc

    return Record(
        name=event.event_name,
        kind=RecordKind.EVENT,
        fields=fields,
        timestamp=timestamp,
        stream_tag=stream_tag,
    )


COLLIDING_FIELD_PREFIX = "attr_"


def format_timestamp(timestamp: datetime) -> str:
    return timestamp.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_record(record: Record, *, timestamp_field: str = "TimeGenerated") -> str:
    """Render ``record`` as compact JSON text.

    The header keys (``name``, ``metric_type`` and the timestamp field) come
    first. A field with the same name as a header key is kept under an
    ``attr_`` prefix so neither value is lost.
    """
    payload: dict[str, Any] = {
        "name": record.name,
        "metric_type": record.kind.value,
        timestamp_field: format_timestamp(record.timestamp),
    }
    for key, value in record.fields.items():
        target = key
        while target in payload:
            target = f"{COLLIDING_FIELD_PREFIX}{target}"
        payload[target] = value

    try:
        return json.dumps(payload, separators=(",", ":"), allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Unable to serialize record {record.name!r}: {exc}") from exc


def _scalar(name: str, key: str, value: Any) -> Any:
    if value is not None and not isinstance(value, _SCALAR_TYPES):
        raise SerializationError(f"Field {key!r} of {name!r} has unsupported type {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise SerializationError(f"Field {key!r} of {name!r} is not a finite number: {value}")
    return value


def _distribution_fields(count: int, snapshot: Snapshot, convert: Callable[[float], float]) -> dict[str, Any]:
    return {
        "count": count,
        "max": convert(snapshot.max),
        "mean": convert(snapshot.mean),
        "min": convert(snapshot.min),
        "p50": convert(snapshot.median),
        "p75": convert(snapshot.p75),
        "p95": convert(snapshot.p95),
        "p98": convert(snapshot.p98),
        "p99": convert(snapshot.p99),
        "p999": convert(snapshot.p999),
        "stddev": convert(snapshot.stddev),
    }


def _counter_fields(metric: Counter, units: Units) -> dict[str, Any]:
    return {"count": metric.count}


def _gauge_fields(metric: Gauge, units: Units) -> dict[str, Any]:
    value = metric.value
    if value is None:
        raise SerializationError("Gauge has no value")
    return {"value": value}


def _histogram_fields(metric: Histogram, units: Units) -> dict[str, Any]:
    count, snapshot = metric.read()
    return _distribution_fields(count, snapshot, float)


def _meter_fields(metric: Meter, units: Units) -> dict[str, Any]:
    reading = metric.read()
    return {
        "count": reading.count,
        "m15_rate": units.rate(reading.m15_rate),
        "m1_rate": units.rate(reading.m1_rate),
        "m5_rate": units.rate(reading.m5_rate),
        "mean_rate": units.rate(reading.mean_rate),
        "units": units.event_rate_label,
    }


def _timer_fields(metric: Timer, units: Units) -> dict[str, Any]:
    snapshot = metric.snapshot()
    fields = _distribution_fields(snapshot.count, snapshot.durations, units.duration)
    fields.update(
        m15_rate=units.rate(snapshot.rates.m15_rate),
        m1_rate=units.rate(snapshot.rates.m1_rate),
        m5_rate=units.rate(snapshot.rates.m5_rate),
        mean_rate=units.rate(snapshot.rates.mean_rate),
        duration_units=units.duration_unit.label,
        rate_units=units.call_rate_label,
    )
    return fields


_KIND_BY_TYPE: tuple[tuple[type, RecordKind], ...] = (
    (Counter, RecordKind.COUNTER),
    (Gauge, RecordKind.GAUGE),
    (Histogram, RecordKind.HISTOGRAM),
    (Meter, RecordKind.METER),
    (Timer, RecordKind.TIMER),
)

_EXTRACTORS: dict[RecordKind, Callable[[Any, Units], dict[str, Any]]] = {
    RecordKind.COUNTER: _counter_fields,
    RecordKind.GAUGE: _gauge_fields,
    RecordKind.HISTOGRAM: _histogram_fields,
    RecordKind.METER: _meter_fields,
    RecordKind.TIMER: _timer_fields,
}

if set(_EXTRACTORS) != set(FIELD_SCHEMAS) or {kind for _, kind in _KIND_BY_TYPE} != set(FIELD_SCHEMAS):
    raise RuntimeError("Metric kind tables are out of sync with FIELD_SCHEMAS")
