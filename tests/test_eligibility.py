from __future__ import annotations

import pytest

from logship.eligibility import ALWAYS_ELIGIBLE_EVENTS, EventPolicy, is_event_eligible, is_metric_eligible
from logship.errors import UnsupportedMetricKindError
from logship.metrics import Counter, Gauge, Histogram, Meter, Timer
from logship.models import Event, EventKind


def test_gauge_requires_a_value() -> None:
    assert is_metric_eligible(Gauge(lambda: 0)) is True
    assert is_metric_eligible(Gauge(lambda: None)) is False


def test_failing_gauge_stays_eligible_so_the_error_is_reported() -> None:
    def _boom():
        raise RuntimeError("nope")

    assert is_metric_eligible(Gauge(_boom)) is True


@pytest.mark.parametrize("metric", [Counter(), Histogram(), Meter(), Timer()])
def test_collection_metrics_are_always_eligible(metric) -> None:
    assert is_metric_eligible(metric) is True


def test_unknown_metric_is_rejected() -> None:
    with pytest.raises(UnsupportedMetricKindError):
        is_metric_eligible(object())


@pytest.mark.parametrize("kind", sorted(ALWAYS_ELIGIBLE_EVENTS, key=lambda kind: kind.value))
def test_structural_events_are_always_eligible(kind: EventKind) -> None:
    assert is_event_eligible(Event(kind)) is True


def test_generic_event_follows_its_own_flag() -> None:
    assert is_event_eligible(Event(EventKind.OTHER, log_event=False)) is False
    assert is_event_eligible(Event(EventKind.OTHER, log_event=True)) is True


def test_log_flag_is_ignored_for_other_kinds() -> None:
    assert is_event_eligible(Event(EventKind.EXECUTOR_METRICS_UPDATE, log_event=True)) is False
    assert is_event_eligible(Event(EventKind.JOB_START, log_event=False)) is True


def test_policy_toggles() -> None:
    block = Event(EventKind.BLOCK_UPDATED)
    environment = Event(EventKind.ENVIRONMENT_UPDATE)

    assert is_event_eligible(block) is False
    assert is_event_eligible(block, EventPolicy(log_block_updates=True)) is True
    assert is_event_eligible(environment) is True
    assert is_event_eligible(environment, EventPolicy(log_environment_updates=False)) is False


@pytest.mark.parametrize(
    "kind",
    [EventKind.BLOCK_MANAGER_ADDED, EventKind.BLOCK_MANAGER_REMOVED, EventKind.UNPERSIST_RDD],
)
def test_internal_events_are_never_shipped(kind: EventKind) -> None:
    assert is_event_eligible(Event(kind), EventPolicy(log_block_updates=True)) is False
