"""Telemetry utilities for governance events and metrics."""

from .event_sink import EventSink, FileEventSink, MemoryEventSink, NullEventSink, sink_from_settings
from .metrics import (
    collect_prometheus_metrics,
    configure_metrics,
    increment_reasoning_retries,
    record_decision,
    record_evaluation_duration,
    record_verification,
    shutdown_metrics,
)

__all__ = [
    "EventSink",
    "FileEventSink",
    "MemoryEventSink",
    "NullEventSink",
    "sink_from_settings",
    "configure_metrics",
    "record_evaluation_duration",
    "record_decision",
    "increment_reasoning_retries",
    "record_verification",
    "collect_prometheus_metrics",
    "shutdown_metrics",
]
