"""aiohttp application entrypoint."""
from __future__ import annotations

from pathlib import Path

from aiohttp import web
from aiohttp_cors import ResourceOptions, setup as cors_setup

from webhook_service.api.router import setup_routes
from webhook_service.db.migrations import create_migration_runner
from webhook_service.db.pool import close_pool, init_pool
from webhook_service.logging_config import configure_logging
from webhook_service.middleware.trace import create_trace_middleware
from webhook_service.otel import setup_otel
from webhook_service.repositories.webhooks import (
    WebhookLogRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.settings import settings
from webhook_service.webhooks_dispatcher import (
    LOG_REPOSITORY_KEY,
    SUBSCRIPTION_REPOSITORY_KEY,
    start_webhook_dispatcher,
    stop_webhook_dispatcher,
)

configure_logging(settings.log_level)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
MIGRATION_PATHS = [
    PROJECT_ROOT / "migrations",
    Path("/app/migrations"),
]

_ALLOWED_HEADERS = (
    "Accept",
    "Content-Type",
    "Authorization",
    "X-Trace-Id",
    "X-Request-Id",
    "X-User-Id",
)
_EXPOSED_HEADERS = ("X-Trace-Id", "X-Request-Id")


async def healthcheck(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "service": settings.app_name, "env": settings.env})


def create_app(
    *,
    subscriptions: WebhookSubscriptionRepository | None = None,
    logs: WebhookLogRepository | None = None,
) -> web.Application:
    """Build the application.

    When both repositories are supplied the database pool and migrations are
    skipped entirely and the given stores back the webhook service.
    """
    app = web.Application()
    app.middlewares.append(create_trace_middleware(settings.app_name))

    cors = cors_setup(
        app,
        defaults={
            origin: ResourceOptions(
                allow_credentials=True,
                expose_headers=_EXPOSED_HEADERS,
                allow_headers=_ALLOWED_HEADERS,
                allow_methods=("GET", "POST", "PATCH", "DELETE", "OPTIONS"),
            )
            for origin in settings.cors_allowed_origins
        },
    )

    app.router.add_get("/health", healthcheck)
    setup_routes(app)

    uses_database = subscriptions is None or logs is None
    if uses_database:
        app.on_startup.append(init_pool)
        app.on_startup.append(
            create_migration_runner(lambda: str(settings.database_url), MIGRATION_PATHS)
        )
    else:
        app[SUBSCRIPTION_REPOSITORY_KEY] = subscriptions
        app[LOG_REPOSITORY_KEY] = logs

    app.on_startup.append(start_webhook_dispatcher)
    # Drain before the pool closes: queued deliveries still write their logs.
    app.on_cleanup.append(stop_webhook_dispatcher)
    if uses_database:
        app.on_cleanup.append(close_pool)

    setup_otel(app)

    for route in list(app.router.routes()):
        cors.add(route)

    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
