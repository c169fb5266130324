"""Tracing: optional OTLP export and the per-attempt ``webhook.send`` span.

Export is switched on by ``otel_exporter_endpoint``. Without it spans still
open through the global no-op provider, so delivery code never checks.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog
from aiohttp import web

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_server import AioHttpServerInstrumentor

from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

DELIVERY_SPAN = "webhook.send"
_TRACER_NAME = "webhook_service.delivery"

_provider: TracerProvider | None = None


def _exporting_provider(endpoint: str) -> TracerProvider:
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.app_name}))
    exporter = OTLPSpanExporter(endpoint=f"{endpoint.rstrip('/')}/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def setup_otel(app: web.Application) -> None:
    """Install the exporter and request spans; registers its own cleanup hook."""
    global _provider

    endpoint = settings.otel_exporter_endpoint
    if endpoint is None:
        logger.info("otel_exporter_endpoint not set, spans are not exported")
        return
    if _provider is None:
        _provider = _exporting_provider(str(endpoint))
        trace.set_tracer_provider(_provider)
    AioHttpServerInstrumentor().instrument(server=app)
    app.on_cleanup.append(shutdown_otel)
    logger.info("span export enabled", endpoint=str(endpoint))


async def shutdown_otel(_app: web.Application) -> None:
    global _provider
    if _provider is None:
        return
    provider, _provider = _provider, None
    provider.shutdown()
    logger.info("span exporter flushed")


@contextmanager
def delivery_span(webhook_id: str, event: str) -> Iterator[trace.Span]:
    """Span around one delivery attempt; callers add ``http.status_code``."""
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(
        DELIVERY_SPAN,
        attributes={"webhook.id": webhook_id, "webhook.event": event},
    ) as span:
        yield span
