"""Webhook domain primitives."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WebhookSubscription(BaseModel):
    id: UUID
    owner_id: UUID
    url: str
    events: list[str] = Field(default_factory=list)
    secret: str
    active: bool = True
    failure_count: int = 0
    created_at: datetime
    updated_at: datetime
    last_triggered_at: datetime | None = None

    def public_dump(self) -> dict[str, Any]:
        """JSON representation used in list responses (secret omitted)."""
        return self.model_dump(mode="json", exclude={"secret"})


class WebhookLogEntry(BaseModel):
    id: UUID
    webhook_id: UUID
    event: str
    payload: dict[str, Any]
    success: bool
    status_code: int | None = None
    response: str | None = None
    error: str | None = None
    created_at: datetime


class WebhookPayload(BaseModel):
    """Envelope POSTed to subscriber endpoints.

    The wire keys are camelCase (``projectId``/``ownerId``); unset optional keys
    are left out of the body entirely.
    """

    model_config = ConfigDict(populate_by_name=True)

    event: str
    timestamp: str
    data: dict[str, Any] = Field(default_factory=dict)
    project_id: str | None = Field(default=None, alias="projectId")
    owner_id: str | None = Field(default=None, alias="ownerId")

    @classmethod
    def build(
        cls,
        event: str,
        data: dict[str, Any],
        *,
        project_id: str | None = None,
        owner_id: str | None = None,
    ) -> "WebhookPayload":
        timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        return cls(
            event=event,
            timestamp=timestamp,
            data=data,
            project_id=project_id,
            owner_id=owner_id,
        )

    def envelope(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeliveryResult(BaseModel):
    success: bool
    status_code: int
    response: str


class TestDeliveryResult(BaseModel):
    success: bool
    status_code: int | None = None
    response: str | None = None
    error: str | None = None
