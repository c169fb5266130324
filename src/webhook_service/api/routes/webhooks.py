"""Webhook subscription endpoints."""
from __future__ import annotations

from uuid import UUID

from aiohttp import web
from pydantic import ValidationError

from webhook_service.api.utils import bad_request, limit_param, parse_uuid_or_404, read_json
from webhook_service.core.exceptions import InvalidInputError, NotFoundError
from webhook_service.domain.dto import WebhookCreateDTO, WebhookUpdateDTO
from webhook_service.domain.enums import SUPPORTED_EVENTS
from webhook_service.services.dependencies import get_webhook_service, require_current_user
from webhook_service.settings import settings

routes = web.RouteTableDef()

PREFIX = "/integrations/webhooks"
_NOT_FOUND = "Webhook not found"


def _webhook_id(request: web.Request) -> UUID:
    return parse_uuid_or_404(request.match_info["webhook_id"], _NOT_FOUND)


def _validation_error(exc: ValidationError) -> web.HTTPBadRequest:
    fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
    return bad_request("Invalid request body", fields)


@routes.get(f"{PREFIX}/events")
async def list_events(request: web.Request):
    return web.json_response(list(SUPPORTED_EVENTS))


@routes.get(PREFIX)
async def list_webhooks(request: web.Request):
    user = await require_current_user(request)
    service = await get_webhook_service(request)
    items = await service.list_webhooks(user.user_id)
    return web.json_response([item.public_dump() for item in items])


@routes.post(PREFIX)
async def create_webhook(request: web.Request):
    user = await require_current_user(request)
    body = await read_json(request)
    try:
        dto = WebhookCreateDTO.model_validate(body)
    except ValidationError as exc:
        raise _validation_error(exc) from exc

    service = await get_webhook_service(request)
    try:
        sub = await service.create_webhook(
            owner_id=user.user_id,
            url=dto.url,
            events=dto.events,
            secret=dto.secret,
        )
    except InvalidInputError as exc:
        raise bad_request(str(exc), exc.invalid) from exc
    return web.json_response(sub.model_dump(mode="json"), status=201)


@routes.get(PREFIX + "/{webhook_id}")
async def get_webhook(request: web.Request):
    user = await require_current_user(request)
    webhook_id = _webhook_id(request)
    service = await get_webhook_service(request)
    try:
        sub = await service.get_webhook(user.user_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(sub.model_dump(mode="json"))


@routes.patch(PREFIX + "/{webhook_id}")
async def update_webhook(request: web.Request):
    user = await require_current_user(request)
    webhook_id = _webhook_id(request)
    body = await read_json(request)
    try:
        dto = WebhookUpdateDTO.model_validate(body)
    except ValidationError as exc:
        raise _validation_error(exc) from exc

    service = await get_webhook_service(request)
    try:
        sub = await service.update_webhook(
            user.user_id,
            webhook_id,
            url=dto.url,
            events=dto.events,
            active=dto.active,
        )
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidInputError as exc:
        raise bad_request(str(exc), exc.invalid) from exc
    return web.json_response(sub.model_dump(mode="json"))


@routes.delete(PREFIX + "/{webhook_id}")
async def delete_webhook(request: web.Request):
    user = await require_current_user(request)
    webhook_id = _webhook_id(request)
    service = await get_webhook_service(request)
    try:
        await service.delete_webhook(user.user_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.Response(status=204)


@routes.post(PREFIX + "/{webhook_id}/test")
async def test_webhook(request: web.Request):
    user = await require_current_user(request)
    webhook_id = _webhook_id(request)
    service = await get_webhook_service(request)
    try:
        result = await service.test_webhook(user.user_id, webhook_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(result.model_dump(mode="json"))


@routes.get(PREFIX + "/{webhook_id}/logs")
async def list_webhook_logs(request: web.Request):
    user = await require_current_user(request)
    webhook_id = _webhook_id(request)
    limit = limit_param(
        request,
        default_limit=settings.webhook_logs_default_limit,
        max_limit=settings.webhook_logs_max_limit,
    )
    service = await get_webhook_service(request)
    try:
        entries = await service.list_logs(user.user_id, webhook_id, limit=limit)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response([entry.model_dump(mode="json") for entry in entries])
