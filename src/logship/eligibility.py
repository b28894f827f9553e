"""Decides which metrics and events are shipped at all."""

from __future__ import annotations

from dataclasses import dataclass

from logship.metrics import Gauge, Metric
from logship.models import Event, EventKind
from logship.records import metric_kind

ALWAYS_ELIGIBLE_EVENTS = frozenset(
    {
        EventKind.APPLICATION_START,
        EventKind.APPLICATION_END,
        EventKind.JOB_START,
        EventKind.JOB_END,
        EventKind.STAGE_SUBMITTED,
        EventKind.STAGE_COMPLETED,
        EventKind.TASK_START,
        EventKind.TASK_END,
        EventKind.EXECUTOR_ADDED,
        EventKind.EXECUTOR_REMOVED,
        EventKind.EXECUTOR_BLACKLISTED,
        EventKind.EXECUTOR_UNBLACKLISTED,
        EventKind.NODE_BLACKLISTED,
        EventKind.NODE_UNBLACKLISTED,
    }
)

# Too chatty or too internal to ship.
NEVER_ELIGIBLE_EVENTS = frozenset(
    {
        EventKind.EXECUTOR_METRICS_UPDATE,
        EventKind.BLOCK_MANAGER_ADDED,
        EventKind.BLOCK_MANAGER_REMOVED,
        EventKind.UNPERSIST_RDD,
    }
)


@dataclass(frozen=True, slots=True)
class EventPolicy:
    """Per-kind logging toggles for the configurable event kinds."""

    log_block_updates: bool = False
    log_environment_updates: bool = True


def is_metric_eligible(metric: Metric) -> bool:
    """Gauges need a current non-null value; the other kinds are always eligible.

    A gauge whose callback raises is left eligible so the failure surfaces
    as a serialization error for that metric.
    """
    metric_kind(metric)
    if isinstance(metric, Gauge):
        try:
            return metric.value is not None
        except Exception:  # noqa: BLE001 - reported when the record is built.
            return True
    return True


def is_event_eligible(event: Event, policy: EventPolicy | None = None) -> bool:
    policy = policy or EventPolicy()
    if event.kind in ALWAYS_ELIGIBLE_EVENTS:
        return True
    if event.kind in NEVER_ELIGIBLE_EVENTS:
        return False
    if event.kind is EventKind.ENVIRONMENT_UPDATE:
        return policy.log_environment_updates
    if event.kind is EventKind.BLOCK_UPDATED:
        return policy.log_block_updates
    if event.kind is EventKind.OTHER:
        return event.log_event
    return False
