"""Helper utilities for API handlers."""
# pyright: reportMissingImports=false
from __future__ import annotations

import json
from typing import Any, Sequence
from uuid import UUID

from aiohttp import web


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse JSON body from request, raising HTTPBadRequest on invalid input."""
    try:
        data = await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid JSON payload") from exc
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return data


def bad_request(message: str, invalid: Sequence[str] = ()) -> web.HTTPBadRequest:
    body: dict[str, Any] = {"error": message}
    if invalid:
        body["invalid"] = list(invalid)
    return web.HTTPBadRequest(text=json.dumps(body), content_type="application/json")


def parse_uuid_or_404(value: str, message: str) -> UUID:
    """Malformed ids can never match a record, so they are reported as missing."""
    try:
        return UUID(value)
    except (ValueError, TypeError) as exc:
        raise web.HTTPNotFound(text=message) from exc


def limit_param(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> int:
    raw = request.rel_url.query.get("limit")
    if raw is None or raw == "":
        return default_limit
    try:
        limit = int(raw)
    except ValueError as exc:
        raise bad_request("limit must be an integer") from exc
    if limit <= 0:
        return default_limit
    return min(limit, max_limit)
