"""Runtime configuration for logship."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from logship.eligibility import EventPolicy
from logship.errors import ConfigurationError
from logship.models import TimeUnit
from logship.records import Units
from logship.redaction import DEFAULT_REDACTION_PATTERN
from logship.transport.loganalytics import DEFAULT_ENDPOINT_DOMAIN

MINIMAL_POLL_PERIOD_SECONDS = 1.0


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="LOGSHIP_", env_file=".env", extra="ignore")

    app_name: str = "logship"
    log_level: str = "INFO"
    workspace_id: str | None = Field(default=None, description="Log Analytics workspace id.")
    workspace_key: SecretStr | None = Field(default=None, description="Base64 shared key of the workspace.")
    log_type: str = Field(default="RuntimeMetric", description="Stream tag used for metric records.")
    event_log_type: str = Field(default="RuntimeEvent", description="Stream tag used for event records.")
    timestamp_field: str = "TimeGenerated"
    poll_period: int = 10
    poll_unit: str = "SECONDS"
    rate_unit: str = "SECONDS"
    duration_unit: str = "MILLISECONDS"
    log_block_updates: bool = False
    log_environment_updates: bool = True
    redaction_regex: str = DEFAULT_REDACTION_PATTERN
    delivery_queue_size: int = Field(default=0, description="0 delivers on the producer thread.")
    endpoint_domain: str = DEFAULT_ENDPOINT_DOMAIN
    http_timeout_seconds: float = 10.0


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Resolved configuration consumed by ``TelemetryPipeline``."""

    workspace_id: str = ""
    workspace_key: str = field(default="", repr=False)
    metric_stream_tag: str = "RuntimeMetric"
    event_stream_tag: str = "RuntimeEvent"
    timestamp_field: str = "TimeGenerated"
    poll_interval_seconds: float = 10.0
    units: Units = field(default_factory=Units)
    event_policy: EventPolicy = field(default_factory=EventPolicy)
    redaction_pattern: re.Pattern[str] = field(default_factory=lambda: re.compile(DEFAULT_REDACTION_PATTERN))
    delivery_queue_size: int = 0
    endpoint_domain: str = DEFAULT_ENDPOINT_DOMAIN
    http_timeout_seconds: float = 10.0

    def masked(self) -> dict:
        """Log-friendly view with the workspace key hidden."""
        return {
            "workspace_id": self.workspace_id,
            "workspace_key": "********" if self.workspace_key else "",
            "metric_stream_tag": self.metric_stream_tag,
            "event_stream_tag": self.event_stream_tag,
            "timestamp_field": self.timestamp_field,
            "poll_interval_seconds": self.poll_interval_seconds,
            "rate_unit": self.units.rate_unit.value,
            "duration_unit": self.units.duration_unit.value,
            "log_block_updates": self.event_policy.log_block_updates,
            "log_environment_updates": self.event_policy.log_environment_updates,
            "redaction_regex": self.redaction_pattern.pattern,
            "delivery_queue_size": self.delivery_queue_size,
            "endpoint_domain": self.endpoint_domain,
        }


def parse_time_unit(value: str, setting: str) -> TimeUnit:
    try:
        return TimeUnit(value.strip().upper())
    except ValueError as exc:
        allowed = ", ".join(unit.value for unit in TimeUnit)
        raise ConfigurationError(f"Invalid {setting} {value!r}; expected one of {allowed}") from exc


def check_minimal_polling_period(unit: TimeUnit, period: float) -> float:
    """Return the poll interval in seconds, refusing anything under the floor."""
    seconds = period * unit.seconds
    if seconds < MINIMAL_POLL_PERIOD_SECONDS:
        raise ConfigurationError(
            f"Polling period {period} {unit.label} below the minimal polling period "
            f"{MINIMAL_POLL_PERIOD_SECONDS:g} seconds"
        )
    return seconds


def resolve_pipeline_config(settings: Settings, *, require_credentials: bool = True) -> PipelineConfig:
    workspace_id = (settings.workspace_id or "").strip()
    workspace_key = settings.workspace_key.get_secret_value().strip() if settings.workspace_key else ""
    if require_credentials:
        if not workspace_id:
            raise ConfigurationError("A workspace id is required (set LOGSHIP_WORKSPACE_ID)")
        if not workspace_key:
            raise ConfigurationError("A workspace key is required (set LOGSHIP_WORKSPACE_KEY)")

    if not settings.log_type or not settings.event_log_type:
        raise ConfigurationError("Log types must be non-empty")
    if settings.delivery_queue_size < 0:
        raise ConfigurationError("delivery_queue_size must be zero or positive")

    poll_unit = parse_time_unit(settings.poll_unit, "poll_unit")
    try:
        redaction_pattern = re.compile(settings.redaction_regex)
    except re.error as exc:
        raise ConfigurationError(f"Invalid redaction_regex: {exc}") from exc

    return PipelineConfig(
        workspace_id=workspace_id,
        workspace_key=workspace_key,
        metric_stream_tag=settings.log_type,
        event_stream_tag=settings.event_log_type,
        timestamp_field=settings.timestamp_field,
        poll_interval_seconds=check_minimal_polling_period(poll_unit, settings.poll_period),
        units=Units(
            rate_unit=parse_time_unit(settings.rate_unit, "rate_unit"),
            duration_unit=parse_time_unit(settings.duration_unit, "duration_unit"),
        ),
        event_policy=EventPolicy(
            log_block_updates=settings.log_block_updates,
            log_environment_updates=settings.log_environment_updates,
        ),
        redaction_pattern=redaction_pattern,
        delivery_queue_size=settings.delivery_queue_size,
        endpoint_domain=settings.endpoint_domain,
        http_timeout_seconds=settings.http_timeout_seconds,
    )


settings = Settings()
