"""In-memory delivery client."""

from __future__ import annotations

import threading


class RecordingDeliveryClient:
    """Keeps every ``(payload, stream_tag)`` it receives, in call order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sent: list[tuple[str, str]] = []

    def send(self, payload: str, stream_tag: str) -> None:
        with self._lock:
            self._sent.append((payload, stream_tag))

    @property
    def sent(self) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._sent)

    def payloads(self, stream_tag: str | None = None) -> list[str]:
        return [payload for payload, tag in self.sent if stream_tag is None or tag == stream_tag]
