"""OpenTelemetry instrumentation for webhook-service.

Activated only when ``otel_exporter_endpoint`` is set in settings. Server
requests get a span each via the aiohttp instrumentor; outbound deliveries
open a manual span through :func:`get_tracer`.
"""
from __future__ import annotations

import structlog
from aiohttp import web
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_server import AioHttpServerInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from webhook_service.settings import Settings

logger = structlog.get_logger(__name__)

_provider: TracerProvider | None = None


def setup_otel(app_settings: Settings) -> None:
    """Install the tracer provider; must run before the web.Application is built."""
    global _provider

    endpoint = app_settings.otel_exporter_endpoint
    if not endpoint or _provider is not None:
        return

    resource = Resource.create({SERVICE_NAME: app_settings.app_name})
    _provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=f"{str(endpoint).rstrip('/')}/v1/traces")
    _provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(_provider)

    AioHttpServerInstrumentor().instrument()

    logger.info(
        "OpenTelemetry tracing enabled",
        endpoint=str(endpoint),
        service=app_settings.app_name,
    )


async def shutdown_otel(_app: web.Application) -> None:
    """Flush pending spans on application shutdown."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        logger.info("OpenTelemetry tracer provider shut down")
        _provider = None


def get_tracer(name: str = __name__) -> trace.Tracer:
    """Return a tracer; a no-op tracer while OTel is disabled."""
    return trace.get_tracer(name)
