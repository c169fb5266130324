"""Shared dependency providers for aiohttp handlers."""
# pyright: reportMissingImports=false
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from aiohttp import web

from webhook_service.domain.enums import WebhookEvent
from webhook_service.services.webhooks import WebhookService
from webhook_service.webhooks_dispatcher import WEBHOOK_SERVICE_KEY

USER_ID_HEADER = "X-User-Id"


@dataclass
class UserContext:
    user_id: UUID


async def require_current_user(request: web.Request) -> UserContext:
    """Auth hook: the API gateway forwards the authenticated account id."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        user_id = UUID(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc
    return UserContext(user_id=user_id)


def webhook_service_from_app(app: web.Application) -> WebhookService:
    service = app.get(WEBHOOK_SERVICE_KEY)
    if service is None:
        raise RuntimeError("Webhook service is not initialised; is the app started?")
    return service


async def get_webhook_service(request: web.Request) -> WebhookService:
    return webhook_service_from_app(request.app)


async def emit_webhook_event(
    app: web.Application,
    *,
    owner_id: UUID,
    event: WebhookEvent | str,
    data: dict[str, Any],
    project_id: UUID | str | None = None,
) -> int:
    """Entry point for host-application code that raises webhook events."""
    service = webhook_service_from_app(app)
    return await service.trigger(owner_id, event, data, project_id=project_id)
