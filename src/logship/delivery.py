"""Hand-off of records to the delivery client."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from logship.errors import DeliveryError, SerializationError
from logship.models import Record
from logship.records import serialize_record


class DeliveryClient(Protocol):
    """Transport toward the remote log-ingestion endpoint.

    Implementations must be safe to call from several threads at once.
    """

    def send(self, payload: str, stream_tag: str) -> None:
        """Deliver one serialized record; raise ``DeliveryError`` on failure."""


@dataclass(slots=True)
class DeliveryFailure:
    record_name: str
    error: str


@dataclass(slots=True)
class DeliveryReport:
    """Outcome of delivering one batch (a poll cycle or a single event)."""

    attempted: int = 0
    delivered: int = 0
    dropped: int = 0
    failures: list[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.dropped


class DeliveryBuffer:
    """Synchronous per-record delivery loop.

    Runs on the calling thread. Every record of a batch is attempted even if
    earlier ones failed, and failures are logged once per batch.
    """

    def __init__(
        self,
        client: DeliveryClient,
        *,
        timestamp_field: str = "TimeGenerated",
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._timestamp_field = timestamp_field
        self._logger = logger or logging.getLogger("logship.delivery")

    def deliver(self, records: Sequence[Record], stream_tag: str) -> DeliveryReport:
        report = DeliveryReport()
        for record in records:
            report.attempted += 1
            try:
                payload = serialize_record(record, timestamp_field=self._timestamp_field)
                self._client.send(payload, stream_tag)
            except (DeliveryError, SerializationError) as exc:
                report.failures.append(DeliveryFailure(record_name=record.name, error=str(exc)))
            except Exception as exc:  # noqa: BLE001 - client failures never reach the producer.
                report.failures.append(DeliveryFailure(record_name=record.name, error=f"{type(exc).__name__}: {exc}"))
            else:
                report.delivered += 1

        if report.failures:
            self._log_failures(report, stream_tag)
        return report

    def _log_failures(self, report: DeliveryReport, stream_tag: str) -> None:
        errors = sorted({failure.error for failure in report.failures})
        self._logger.error(
            "delivery_failed: %d of %d records not delivered (%s)",
            len(report.failures),
            report.attempted,
            "; ".join(errors),
            extra={
                "stream_tag": stream_tag,
                "failed": len(report.failures),
                "attempted": report.attempted,
                "records": [failure.record_name for failure in report.failures],
            },
        )


@dataclass(slots=True)
class _Batch:
    records: tuple[Record, ...]
    stream_tag: str


class QueuedDeliveryBuffer:
    """Bounded queue plus one worker thread in front of a ``DeliveryBuffer``.

    Producers only enqueue. A batch is queued as one unit: when the queue is
    full the whole incoming batch is dropped and counted, so memory stays
    bounded under bursts.
    """

    def __init__(
        self,
        delegate: DeliveryBuffer,
        *,
        max_queue_size: int = 1_000,
        logger: logging.Logger | None = None,
    ) -> None:
        self._delegate = delegate
        self._queue: queue.Queue[_Batch | None] = queue.Queue(maxsize=max_queue_size)
        self._logger = logger or logging.getLogger("logship.delivery")
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        """Start the worker thread once for this buffer."""
        with self._lock:
            if self.running:
                return
            self._worker = threading.Thread(target=self._worker_loop, name="logship-delivery-worker", daemon=True)
            self._worker.start()
        self._logger.info("delivery_worker_started", extra={"queue_maxsize": self._queue.maxsize})

    def stop(self, *, drain: bool = True, timeout: float | None = 5.0) -> None:
        """Stop the worker; with ``drain`` queued batches are delivered first."""
        with self._lock:
            worker = self._worker
            self._worker = None
        if not drain:
            self._discard_pending()
        if worker is None:
            return

        self._queue.put(None)
        worker.join(timeout)
        self._logger.info("delivery_worker_stopped", extra={"dropped": self.dropped})

    def join(self) -> None:
        """Block until every queued batch has been handed to the client."""
        self._queue.join()

    def deliver(self, records: Sequence[Record], stream_tag: str) -> DeliveryReport:
        report = DeliveryReport()
        pending = tuple(records)
        if not pending:
            return report

        try:
            self._queue.put_nowait(_Batch(records=pending, stream_tag=stream_tag))
        except queue.Full:
            report.dropped = len(pending)
            with self._lock:
                self.dropped += len(pending)
            self._logger.warning(
                "delivery_queue_full",
                extra={"stream_tag": stream_tag, "dropped": len(pending), "queue_size": self._queue.qsize()},
            )
        return report

    def _worker_loop(self) -> None:
        while True:
            batch = self._queue.get()
            try:
                if batch is None:
                    return
                self._delegate.deliver(batch.records, batch.stream_tag)
            except Exception:  # noqa: BLE001 - the worker outlives any single batch.
                self._logger.exception("delivery_worker_batch_failed")
            finally:
                self._queue.task_done()

    def _discard_pending(self) -> None:
        discarded = 0
        while True:
            try:
                batch = self._queue.get_nowait()
            except queue.Empty:
                break
            if batch is not None:
                discarded += len(batch.records)
            self._queue.task_done()
        if discarded:
            with self._lock:
                self.dropped += discarded
