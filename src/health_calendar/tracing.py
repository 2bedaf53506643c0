"""OpenTelemetry tracing utilities."""

from __future__ import annotations

import os
from datetime import date, datetime

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import TracingSettings

logger = structlog.get_logger(__name__)


def setup_tracing(settings: TracingSettings) -> bool:
    """Configure OpenTelemetry tracing.

    Spans are always created through the global tracer; without this call
    they go to the no-op provider.

    Returns:
        True if tracing was configured, False otherwise.
    """
    if not settings.enabled:
        logger.debug("tracing_disabled")
        return False

    exporter_name = os.getenv("OTEL_TRACES_EXPORTER", "otlp").lower()
    if exporter_name in {"none", ""}:
        logger.info("tracing_exporter_disabled")
        return False

    provider = TracerProvider(resource=build_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    logger.info(
        "tracing_configured",
        exporter=exporter_name,
        service_name=settings.service_name,
    )
    return True


def build_resource(settings: TracingSettings) -> Resource:
    """Resource identifying this service and its release."""
    from . import __version__

    return Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": __version__,
        }
    )


def set_range_attributes(
    span: trace.Span, start: date | datetime, end: date | datetime
) -> None:
    """Tag a span with the calendar days of the range it works on."""
    span.set_attribute("range.start", _day(start))
    span.set_attribute("range.end", _day(end))


def _day(value: date | datetime) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()
