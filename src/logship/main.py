"""CLI entrypoint for logship."""

from __future__ import annotations

import json
import random
import time
from pathlib import Path

import typer
from rich import print

from logship.config import resolve_pipeline_config, settings
from logship.errors import ConfigurationError, SerializationError
from logship.logging_config import configure_logging
from logship.metrics import MetricRegistry
from logship.models import Event, EventKind
from logship.pipeline import TelemetryPipeline, build_pipeline
from logship.redaction import redact
from logship.transport import ConsoleDeliveryClient

app = typer.Typer(help="Ship runtime metrics and lifecycle events to Log Analytics")


def _resolve(require_credentials: bool):
    try:
        return resolve_pipeline_config(settings, require_credentials=require_credentials)
    except ConfigurationError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)


def _demo_registry() -> MetricRegistry:
    registry = MetricRegistry()
    registry.counter("jobs.completed")
    registry.gauge("executor.heap.used", lambda: random.randint(64, 512) * 1024 * 1024)
    registry.gauge("executor.shuffle.pending", lambda: None)
    registry.histogram("task.records.read")
    registry.meter("tasks.started")
    registry.timer("stage.duration")
    return registry


def _simulate_work(registry: MetricRegistry) -> None:
    registry.counter("jobs.completed").inc()
    registry.meter("tasks.started").mark(random.randint(5, 20))
    for _ in range(10):
        registry.histogram("task.records.read").update(random.randint(100, 10_000))
    registry.timer("stage.duration").update(random.uniform(0.05, 2.0))


@app.command("show-config")
def show_config() -> None:
    """Show the resolved pipeline configuration with secrets masked."""
    config = _resolve(require_credentials=False)
    print({"app_name": settings.app_name, **config.masked()})


@app.command()
def demo(
    cycles: int = typer.Option(3, help="Number of poll cycles to run"),
    interval: float = typer.Option(1.0, help="Seconds between poll cycles"),
    dry_run: bool = typer.Option(True, "--dry-run/--live", help="Print payloads instead of shipping them"),
) -> None:
    """Feed a sample registry and event stream through the pipeline."""
    configure_logging(settings.log_level)
    config = _resolve(require_credentials=not dry_run)
    registry = _demo_registry()
    if dry_run:
        pipeline = TelemetryPipeline(config, registry, ConsoleDeliveryClient())
    else:
        pipeline = build_pipeline(config, registry)

    pipeline.on_event(Event(EventKind.APPLICATION_START, {"appName": settings.app_name}))
    for cycle in range(1, cycles + 1):
        pipeline.on_event(Event(EventKind.JOB_START, {"jobId": cycle}))
        _simulate_work(registry)
        pipeline.on_event(Event(EventKind.JOB_END, {"jobId": cycle, "result": "JobSucceeded"}))
        pipeline.on_event(Event(EventKind.OTHER, {"note": "not shipped"}, log_event=False, name="DebugNote"))
        report = pipeline.report()
        print({"cycle": cycle, "delivered": report.delivered if report else 0})
        if cycle < cycles:
            time.sleep(interval)
    pipeline.on_event(Event(EventKind.APPLICATION_END, {"appName": settings.app_name}))


@app.command("redact")
def redact_file(
    path: Path = typer.Argument(..., help="JSON file mapping category names to [key, value] pairs"),
    pattern: str = typer.Option(None, help="Override the configured redaction regex"),
) -> None:
    """Print an environment-details document with sensitive values redacted."""
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    details = json.loads(path.read_text(encoding="utf-8"))
    try:
        redacted = redact(details, pattern or settings.redaction_regex)
    except SerializationError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    print(redacted)


if __name__ == "__main__":
    app()
