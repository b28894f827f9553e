"""Delivery client implementations."""

from .console import ConsoleDeliveryClient
from .loganalytics import LogAnalyticsClient
from .memory import RecordingDeliveryClient

__all__ = [
    "ConsoleDeliveryClient",
    "LogAnalyticsClient",
    "RecordingDeliveryClient",
]
