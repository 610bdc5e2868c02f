"""Tracing for approval commands and state transitions."""

import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.semconv.resource import ResourceAttributes

logger = logging.getLogger(__name__)

_provider: Optional[TracerProvider] = None


def _flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


def _attach_otlp(provider: TracerProvider, endpoint: str) -> None:
    # The gRPC exporter ships in the optional "otlp" extra
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError as e:
        logger.warning(f"⚠️ OTEL_ENABLED is set but the OTLP exporter is not installed: {e}")
        return
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    logger.info(f"📡 Exporting approval spans to {endpoint}")


def init_telemetry(service_name: str = "toolgate", enable_console: bool = False) -> None:
    """Install a tracer provider for the process.

    Exporters are opt-in through OTEL_ENABLED/OTEL_ENDPOINT and OTEL_CONSOLE.
    Subsequent calls are ignored.

    Args:
        service_name: Value for the service.name resource attribute
        enable_console: Print finished spans to stdout
    """
    global _provider
    if _provider is not None:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: service_name,
                ResourceAttributes.SERVICE_VERSION: "0.1.0",
            }
        )
    )
    if _flag("OTEL_ENABLED"):
        _attach_otlp(provider, os.getenv("OTEL_ENDPOINT", "http://localhost:4317"))
    if enable_console or _flag("OTEL_CONSOLE"):
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("📊 Printing approval spans to console")

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info(f"✅ Tracing ready for {service_name}")


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
