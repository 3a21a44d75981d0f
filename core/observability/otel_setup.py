"""
OpenTelemetry setup for the rental engine.

- One span per engine operation (pickup, return, preview)
- OTLP export when an endpoint is configured, otherwise spans stay in-process
"""
from __future__ import annotations
from typing import Optional
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor


def setup_otel(
    service_name: str = "rental-engine",
    endpoint: Optional[str] = None,
) -> trace.Tracer:
    """Initialize OpenTelemetry with an optional OTLP exporter."""
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    otlp_endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(service_name)


def engine_span_attributes(operation: str, transaction_id: str, line_count: int) -> dict:
    """Standard attributes attached to every engine span."""
    return {
        "rental.operation": operation,
        "rental.transaction_id": transaction_id,
        "rental.line_count": line_count,
    }
