"""Delivery client that prints payloads instead of shipping them."""

from __future__ import annotations

import threading

from rich.console import Console
from rich.markup import escape


class ConsoleDeliveryClient:
    """Dry-run client for the CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self._lock = threading.Lock()

    def send(self, payload: str, stream_tag: str) -> None:
        with self._lock:
            self._console.print(f"[bold cyan]{escape(stream_tag)}[/bold cyan] {escape(payload)}", highlight=False)
