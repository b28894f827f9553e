"""Error taxonomy for the telemetry pipeline."""

from __future__ import annotations


class LogshipError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(LogshipError):
    """Raised at startup when the resolved configuration is unusable."""


class SerializationError(LogshipError):
    """Raised when a metric or event cannot be converted to canonical form."""


class DeliveryError(LogshipError):
    """Raised by a delivery client when a payload could not be handed to the endpoint."""


class UnsupportedMetricKindError(LogshipError, TypeError):
    """Raised when a metric object of an unknown type reaches the record model."""

    def __init__(self, metric: object) -> None:
        super().__init__(f"Unsupported metric type: {type(metric).__name__}")
        self.metric = metric
