"""OpenTelemetry metrics instrumentation helpers."""

from __future__ import annotations

import logging

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from driftgate.core.config import settings

_logger = logging.getLogger(__name__)

_metrics_enabled = False
_provider: MeterProvider | None = None
_instruments: dict = {}


def _build_readers(exporter_name: str) -> list:
    if exporter_name == "console":
        return [PeriodicExportingMetricReader(ConsoleMetricExporter())]
    if exporter_name == "prometheus":
        try:
            from opentelemetry.exporter.prometheus import PrometheusMetricReader  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Prometheus exporter selected but opentelemetry-exporter-prometheus is not installed."
            ) from exc
        return [PrometheusMetricReader()]
    if exporter_name == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("OTLP exporter selected but opentelemetry-exporter-otlp is not installed.") from exc
        endpoint = settings.otel_otlp_endpoint
        exporter = OTLPMetricExporter(endpoint=endpoint) if endpoint else OTLPMetricExporter()
        return [PeriodicExportingMetricReader(exporter)]
    _logger.warning("Unsupported OTEL exporter '%s'; defaulting to console", exporter_name)
    return [PeriodicExportingMetricReader(ConsoleMetricExporter())]


def configure_metrics() -> None:
    """Set up the meter provider and governance instruments when OTel is enabled."""

    global _metrics_enabled, _provider

    if not settings.otel_enabled or _metrics_enabled:
        return

    readers = _build_readers(settings.otel_exporter.lower().strip())
    _provider = MeterProvider(metric_readers=readers, resource=Resource.create({"service.name": "driftgate"}))
    metrics.set_meter_provider(_provider)
    meter = _provider.get_meter("driftgate")
    _instruments["evaluation_duration"] = meter.create_histogram(
        name="driftgate.evaluation.duration",
        unit="s",
        description="Governor evaluation duration in seconds",
    )
    _instruments["decisions"] = meter.create_counter(
        name="driftgate.decisions",
        unit="1",
        description="Governance decisions by ruling",
    )
    _instruments["reasoning_retries"] = meter.create_counter(
        name="driftgate.reasoning.retries",
        unit="1",
        description="Reasoning-service attempts that were retried after a failure",
    )
    _instruments["verifications"] = meter.create_counter(
        name="driftgate.receipts.verifications",
        unit="1",
        description="Receipt verifications by reason",
    )
    _metrics_enabled = True


def record_evaluation_duration(seconds: float) -> None:
    if _metrics_enabled and "evaluation_duration" in _instruments:
        _instruments["evaluation_duration"].record(max(seconds, 0.0))


def record_decision(ruling: str, auto_authorized: bool = False) -> None:
    if _metrics_enabled and "decisions" in _instruments:
        _instruments["decisions"].add(1, {"ruling": ruling, "auto_authorized": auto_authorized})


def increment_reasoning_retries() -> None:
    if _metrics_enabled and "reasoning_retries" in _instruments:
        _instruments["reasoning_retries"].add(1)


def record_verification(reason: str) -> None:
    if _metrics_enabled and "verifications" in _instruments:
        _instruments["verifications"].add(1, {"reason": reason})


def collect_prometheus_metrics() -> tuple[bytes, str]:
    """Render the default Prometheus registry for the ``/metrics`` endpoint."""

    try:
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("Prometheus exporter selected but prometheus-client is not installed.") from exc
    return generate_latest(), CONTENT_TYPE_LATEST


def shutdown_metrics() -> None:
    global _metrics_enabled, _provider
    if _metrics_enabled and _provider is not None:
        try:
            _provider.shutdown()
        except Exception:  # pragma: no cover
            _logger.exception("Failed to shutdown metrics provider")
        finally:
            _metrics_enabled = False
            _provider = None
            _instruments.clear()
