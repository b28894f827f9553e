"""Canonical records and lifecycle events shipped by the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence


class RecordKind(str, Enum):
    """Kind label carried by every record as ``metric_type``."""

    COUNTER = "Counter"
    GAUGE = "Gauge"
    HISTOGRAM = "Histogram"
    METER = "Meter"
    TIMER = "Timer"
    EVENT = "Event"


_DISTRIBUTION_FIELDS = ("count", "max", "mean", "min", "p50", "p75", "p95", "p98", "p99", "p999", "stddev")
_RATE_FIELDS = ("m15_rate", "m1_rate", "m5_rate", "mean_rate")

# Fixed field set per metric kind. Events are free-form apart from the "Event" key.
FIELD_SCHEMAS: Mapping[RecordKind, tuple[str, ...]] = MappingProxyType(
    {
        RecordKind.COUNTER: ("count",),
        RecordKind.GAUGE: ("value",),
        RecordKind.HISTOGRAM: _DISTRIBUTION_FIELDS,
        RecordKind.METER: ("count", *_RATE_FIELDS, "units"),
        RecordKind.TIMER: (*_DISTRIBUTION_FIELDS, *_RATE_FIELDS, "duration_units", "rate_units"),
    }
)

EVENT_NAME_FIELD = "Event"


class TimeUnit(str, Enum):
    """Units accepted for poll periods, rates and durations."""

    NANOSECONDS = "NANOSECONDS"
    MICROSECONDS = "MICROSECONDS"
    MILLISECONDS = "MILLISECONDS"
    SECONDS = "SECONDS"
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAYS = "DAYS"

    @property
    def seconds(self) -> float:
        return _UNIT_SECONDS[self]

    @property
    def label(self) -> str:
        return self.value.lower()

    @property
    def singular(self) -> str:
        return self.label[:-1]


_UNIT_SECONDS = {
    TimeUnit.NANOSECONDS: 1e-9,
    TimeUnit.MICROSECONDS: 1e-6,
    TimeUnit.MILLISECONDS: 1e-3,
    TimeUnit.SECONDS: 1.0,
    TimeUnit.MINUTES: 60.0,
    TimeUnit.HOURS: 3_600.0,
    TimeUnit.DAYS: 86_400.0,
}


@dataclass(frozen=True, slots=True)
class Record:
    """One metric reading or one lifecycle event, ready for delivery."""

    name: str
    kind: RecordKind
    fields: Mapping[str, Any]
    timestamp: datetime
    stream_tag: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Record name must be non-empty")
        if self.timestamp is None:
            raise ValueError("Record timestamp is required")

        schema = FIELD_SCHEMAS.get(self.kind)
        if schema is not None and tuple(self.fields) != schema:
            raise ValueError(f"{self.kind.value} record fields {tuple(self.fields)} do not match schema {schema}")
        if self.kind is RecordKind.EVENT and EVENT_NAME_FIELD not in self.fields:
            raise ValueError(f"Event record is missing the {EVENT_NAME_FIELD!r} field")

        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))


class EventKind(str, Enum):
    """Lifecycle events raised by the host execution engine."""

    APPLICATION_START = "ApplicationStart"
    APPLICATION_END = "ApplicationEnd"
    JOB_START = "JobStart"
    JOB_END = "JobEnd"
    STAGE_SUBMITTED = "StageSubmitted"
    STAGE_COMPLETED = "StageCompleted"
    TASK_START = "TaskStart"
    TASK_END = "TaskEnd"
    EXECUTOR_ADDED = "ExecutorAdded"
    EXECUTOR_REMOVED = "ExecutorRemoved"
    EXECUTOR_BLACKLISTED = "ExecutorBlacklisted"
    EXECUTOR_UNBLACKLISTED = "ExecutorUnblacklisted"
    NODE_BLACKLISTED = "NodeBlacklisted"
    NODE_UNBLACKLISTED = "NodeUnblacklisted"
    ENVIRONMENT_UPDATE = "EnvironmentUpdate"
    BLOCK_UPDATED = "BlockUpdated"
    BLOCK_MANAGER_ADDED = "BlockManagerAdded"
    BLOCK_MANAGER_REMOVED = "BlockManagerRemoved"
    UNPERSIST_RDD = "UnpersistRDD"
    EXECUTOR_METRICS_UPDATE = "ExecutorMetricsUpdate"
    OTHER = "Other"


@dataclass(frozen=True, slots=True)
class Event:
    """A lifecycle event as delivered by the host.

    ``log_event`` is only consulted for ``EventKind.OTHER``; ``name`` overrides
    the kind label for those generic events.
    """

    kind: EventKind
    attributes: Mapping[str, Any] = field(default_factory=dict)
    log_event: bool = False
    name: str | None = None

    @property
    def event_name(self) -> str:
        return self.name or self.kind.value


# Environment details: category name -> ordered (key, value) pairs.
EnvironmentDetails = Mapping[str, Sequence[tuple[str, str]]]
