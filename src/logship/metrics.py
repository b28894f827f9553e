"""In-process metric registry polled by the snapshot collector.

The five metric types follow the familiar counter/gauge/histogram/meter/timer
split. Every type is safe to update from any thread while the poller reads it.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Protocol, TypeVar

from logship.errors import UnsupportedMetricKindError

DEFAULT_RESERVOIR_SIZE = 1_028
TICK_INTERVAL_SECONDS = 5.0


class Clock(Protocol):
    """Time source shared by meters, timers and the pipeline."""

    def tick(self) -> float:
        """Return monotonic seconds."""

    def time(self) -> datetime:
        """Return the current wall-clock instant in UTC."""


class SystemClock:
    def tick(self) -> float:
        return time.monotonic()

    def time(self) -> datetime:
        return datetime.now(timezone.utc)


class Counter:
    """Incrementing and decrementing integer count."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n

    @property
    def count(self) -> int:
        return self._count


class Gauge:
    """Instantaneous value read through a callback; the value may be ``None``."""

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    @property
    def value(self) -> Any:
        return self._fn()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Sorted, immutable view of a reservoir at one instant."""

    values: tuple[float, ...]

    @classmethod
    def of(cls, values: Iterator[float] | list[float]) -> "Snapshot":
        return cls(values=tuple(sorted(values)))

    def __len__(self) -> int:
        return len(self.values)

    def quantile(self, q: float) -> float:
        if not 0.0 <= q <= 1.0:
            raise ValueError(f"{q} is not in [0..1]")
        if not self.values:
            return 0.0

        pos = q * (len(self.values) + 1)
        index = int(pos)
        if index < 1:
            return self.values[0]
        if index >= len(self.values):
            return self.values[-1]

        lower = self.values[index - 1]
        upper = self.values[index]
        return lower + (pos - math.floor(pos)) * (upper - lower)

    @property
    def min(self) -> float:
        return self.values[0] if self.values else 0.0

    @property
    def max(self) -> float:
        return self.values[-1] if self.values else 0.0

    @property
    def mean(self) -> float:
        if not self.values:
            return 0.0
        return sum(self.values) / len(self.values)

    @property
    def stddev(self) -> float:
        if len(self.values) <= 1:
            return 0.0
        mean = self.mean
        variance = sum((value - mean) ** 2 for value in self.values) / (len(self.values) - 1)
        return math.sqrt(variance)

    @property
    def median(self) -> float:
        return self.quantile(0.5)

    @property
    def p75(self) -> float:
        return self.quantile(0.75)

    @property
    def p95(self) -> float:
        return self.quantile(0.95)

    @property
    def p98(self) -> float:
        return self.quantile(0.98)

    @property
    def p99(self) -> float:
        return self.quantile(0.99)

    @property
    def p999(self) -> float:
        return self.quantile(0.999)


class Histogram:
    """Distribution of values over a sliding window of the most recent samples."""

    def __init__(self, reservoir_size: int = DEFAULT_RESERVOIR_SIZE) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._values: deque[float] = deque(maxlen=reservoir_size)

    def update(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._values.append(float(value))

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot.of(list(self._values))

    def read(self) -> tuple[int, Snapshot]:
        """Return count and distribution captured under the same lock."""
        with self._lock:
            return self._count, Snapshot.of(list(self._values))


class _EWMA:
    """Exponentially weighted moving average ticked at a fixed interval."""

    def __init__(self, minutes: int, interval: float = TICK_INTERVAL_SECONDS) -> None:
        self._alpha = 1.0 - math.exp(-interval / 60.0 / minutes)
        self._interval = interval
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False

    def update(self, n: int) -> None:
        self._uncounted += n

    def tick(self) -> None:
        instant_rate = self._uncounted / self._interval
        self._uncounted = 0
        if self._initialized:
            self._rate += self._alpha * (instant_rate - self._rate)
        else:
            self._rate = instant_rate
            self._initialized = True

    @property
    def rate(self) -> float:
        """Events per second."""
        return self._rate


@dataclass(frozen=True, slots=True)
class MeterReading:
    count: int
    mean_rate: float
    m1_rate: float
    m5_rate: float
    m15_rate: float


class Meter:
    """Throughput of marked events: mean rate plus 1, 5 and 15 minute moving averages."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._count = 0
        self._start = self._clock.tick()
        self._last_tick = self._start
        self._m1 = _EWMA(1)
        self._m5 = _EWMA(5)
        self._m15 = _EWMA(15)

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            self._m1.update(n)
            self._m5.update(n)
            self._m15.update(n)

    @property
    def count(self) -> int:
        return self._count

    @property
    def mean_rate(self) -> float:
        return self.read().mean_rate

    @property
    def m1_rate(self) -> float:
        return self.read().m1_rate

    @property
    def m5_rate(self) -> float:
        return self.read().m5_rate

    @property
    def m15_rate(self) -> float:
        return self.read().m15_rate

    def read(self) -> MeterReading:
        with self._lock:
            return self._read_locked()

    def _read_locked(self) -> MeterReading:
        self._tick_if_necessary()
        elapsed = self._clock.tick() - self._start
        mean_rate = self._count / elapsed if self._count and elapsed > 0 else 0.0
        return MeterReading(
            count=self._count,
            mean_rate=mean_rate,
            m1_rate=self._m1.rate,
            m5_rate=self._m5.rate,
            m15_rate=self._m15.rate,
        )

    def _tick_if_necessary(self) -> None:
        now = self._clock.tick()
        age = now - self._last_tick
        if age <= TICK_INTERVAL_SECONDS:
            return

        ticks = int(age // TICK_INTERVAL_SECONDS)
        self._last_tick += ticks * TICK_INTERVAL_SECONDS
        for _ in range(ticks):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()


@dataclass(frozen=True, slots=True)
class TimerSnapshot:
    """Count, rates and duration distribution (seconds) read at one instant."""

    rates: MeterReading
    durations: Snapshot

    @property
    def count(self) -> int:
        return self.rates.count


class Timer:
    """Histogram of durations combined with a meter of call throughput."""

    def __init__(self, clock: Clock | None = None, reservoir_size: int = DEFAULT_RESERVOIR_SIZE) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._histogram = Histogram(reservoir_size)
        self._meter = Meter(self._clock)

    def update(self, seconds: float) -> None:
        if seconds < 0:
            return
        with self._lock:
            self._histogram.update(seconds)
            self._meter.mark()

    @contextmanager
    def time(self) -> Iterator[None]:
        started = self._clock.tick()
        try:
            yield
        finally:
            self.update(self._clock.tick() - started)

    @property
    def count(self) -> int:
        return self._meter.count

    def snapshot(self) -> TimerSnapshot:
        with self._lock:
            return TimerSnapshot(rates=self._meter.read(), durations=self._histogram.snapshot())


Metric = Counter | Gauge | Histogram | Meter | Timer
_METRIC_TYPES = (Counter, Gauge, Histogram, Meter, Timer)
MetricFilter = Callable[[str, Any], bool]

_M = TypeVar("_M")


class MetricRegistry:
    """Named collection of metrics, safe for concurrent registration and polling."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._metrics: dict[str, Any] = {}

    def register(self, name: str, metric: _M) -> _M:
        """Add ``metric`` under ``name``; only the five polled metric types are accepted."""
        if not isinstance(metric, _METRIC_TYPES):
            raise UnsupportedMetricKindError(metric)
        with self._lock:
            if name in self._metrics:
                raise ValueError(f"A metric named {name} already exists")
            self._metrics[name] = metric
        return metric

    def remove(self, name: str) -> bool:
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def counter(self, name: str) -> Counter:
        return self._get_or_add(name, Counter, Counter)

    def gauge(self, name: str, fn: Callable[[], Any]) -> Gauge:
        return self._get_or_add(name, Gauge, lambda: Gauge(fn))

    def histogram(self, name: str) -> Histogram:
        return self._get_or_add(name, Histogram, Histogram)

    def meter(self, name: str) -> Meter:
        return self._get_or_add(name, Meter, lambda: Meter(self._clock))

    def timer(self, name: str) -> Timer:
        return self._get_or_add(name, Timer, lambda: Timer(self._clock))

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._metrics)

    def gauges(self, metric_filter: MetricFilter | None = None) -> dict[str, Gauge]:
        return self._of_type(Gauge, metric_filter)

    def counters(self, metric_filter: MetricFilter | None = None) -> dict[str, Counter]:
        return self._of_type(Counter, metric_filter)

    def histograms(self, metric_filter: MetricFilter | None = None) -> dict[str, Histogram]:
        return self._of_type(Histogram, metric_filter)

    def meters(self, metric_filter: MetricFilter | None = None) -> dict[str, Meter]:
        return self._of_type(Meter, metric_filter)

    def timers(self, metric_filter: MetricFilter | None = None) -> dict[str, Timer]:
        return self._of_type(Timer, metric_filter)

    def _get_or_add(self, name: str, kind: type[_M], factory: Callable[[], _M]) -> _M:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                created = factory()
                self._metrics[name] = created
                return created
        if not isinstance(existing, kind):
            raise ValueError(f"{name} is already used for a different type of metric")
        return existing

    def _of_type(self, kind: type[_M], metric_filter: MetricFilter | None) -> dict[str, _M]:
        with self._lock:
            items = list(self._metrics.items())
        return {
            name: metric
            for name, metric in sorted(items)
            if isinstance(metric, kind) and (metric_filter is None or metric_filter(name, metric))
        }
