"""Middleware binding trace_id/request_id to the structlog context."""
from __future__ import annotations

import time
from uuid import UUID, uuid4

import structlog
from aiohttp import web

TRACE_ID_HEADER = "X-Trace-Id"
REQUEST_ID_HEADER = "X-Request-Id"

logger = structlog.get_logger(__name__)


def _incoming_or_new(value: str | None) -> str:
    if value:
        try:
            return str(UUID(value))
        except ValueError:
            pass
    return str(uuid4())


def create_trace_middleware(service_name: str):
    """Create trace middleware for ``service_name``."""

    @web.middleware
    async def trace_middleware(request: web.Request, handler):
        started = time.perf_counter()
        trace_id = _incoming_or_new(request.headers.get(TRACE_ID_HEADER))
        request_id = _incoming_or_new(request.headers.get(REQUEST_ID_HEADER))
        request["trace_id"] = trace_id
        request["request_id"] = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            trace_id=trace_id,
            request_id=request_id,
            service=service_name,
            method=request.method,
            path=request.path,
        )
        try:
            try:
                response = await handler(request)
            except web.HTTPException as exc:
                logger.warning(
                    "Request failed with HTTP exception",
                    status_code=exc.status,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                    error=exc.text,
                )
                exc.headers[TRACE_ID_HEADER] = trace_id
                exc.headers[REQUEST_ID_HEADER] = request_id
                raise
            except Exception:
                logger.exception(
                    "Request failed with exception",
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                raise

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            if response.status >= 400:
                logger.warning("Request completed with error status", status_code=response.status, duration_ms=duration_ms)
            else:
                logger.info("Request completed", status_code=response.status, duration_ms=duration_ms)
            response.headers[TRACE_ID_HEADER] = trace_id
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    return trace_middleware
