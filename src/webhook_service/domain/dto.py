"""Request DTOs for webhook endpoints."""
from __future__ import annotations

from pydantic import BaseModel


class WebhookCreateDTO(BaseModel):
    url: str
    events: list[str]
    # Empty or missing: the service generates one.
    secret: str | None = None


class WebhookUpdateDTO(BaseModel):
    url: str | None = None
    events: list[str] | None = None
    active: bool | None = None
