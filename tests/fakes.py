"""In-memory stand-ins for the asyncpg repositories."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, List
from uuid import UUID, uuid4

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.webhooks import WebhookLogEntry, WebhookSubscription


class _Clock:
    """Strictly increasing timestamps so 'newest first' is deterministic."""

    def __init__(self) -> None:
        self._now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def tick(self) -> datetime:
        self._now += timedelta(milliseconds=1)
        return self._now


class InMemorySubscriptionRepository:
    def __init__(self) -> None:
        self.items: dict[UUID, WebhookSubscription] = {}
        self._clock = _Clock()

    def seed(self, *, owner_id: UUID, url: str, events: list[str], **fields: Any) -> WebhookSubscription:
        now = self._clock.tick()
        sub = WebhookSubscription(
            id=fields.pop("id", uuid4()),
            owner_id=owner_id,
            url=url,
            events=events,
            secret=fields.pop("secret", "seed-secret"),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.items[sub.id] = sub
        return sub.model_copy(deep=True)

    def snapshot(self, webhook_id: UUID) -> WebhookSubscription:
        return self.items[webhook_id].model_copy(deep=True)

    async def create(self, *, owner_id: UUID, url: str, events: list[str], secret: str) -> WebhookSubscription:
        return self.seed(owner_id=owner_id, url=url, events=events, secret=secret)

    async def list_by_owner(self, owner_id: UUID) -> List[WebhookSubscription]:
        subs = [s for s in self.items.values() if s.owner_id == owner_id]
        subs.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in subs]

    async def get(self, owner_id: UUID, webhook_id: UUID) -> WebhookSubscription:
        sub = self.items.get(webhook_id)
        if sub is None or sub.owner_id != owner_id:
            raise NotFoundError("Webhook not found")
        return sub.model_copy(deep=True)

    async def update(
        self,
        owner_id: UUID,
        webhook_id: UUID,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> WebhookSubscription:
        sub = self.items.get(webhook_id)
        if sub is None or sub.owner_id != owner_id:
            raise NotFoundError("Webhook not found")
        changes: dict[str, Any] = {"updated_at": self._clock.tick()}
        if url is not None:
            changes["url"] = url
        if events is not None:
            changes["events"] = list(events)
        if active is not None:
            changes["active"] = active
        self.items[webhook_id] = sub.model_copy(update=changes)
        return self.snapshot(webhook_id)

    async def delete(self, owner_id: UUID, webhook_id: UUID) -> None:
        sub = self.items.get(webhook_id)
        if sub is None or sub.owner_id != owner_id:
            raise NotFoundError("Webhook not found")
        del self.items[webhook_id]

    async def list_active_matching(self, owner_id: UUID, event: str) -> List[WebhookSubscription]:
        subs = [
            s
            for s in self.items.values()
            if s.owner_id == owner_id and s.active and event in s.events
        ]
        subs.sort(key=lambda s: s.created_at)
        return [s.model_copy(deep=True) for s in subs]

    async def record_success(self, webhook_id: UUID) -> None:
        sub = self.items.get(webhook_id)
        if sub is None:
            return
        now = self._clock.tick()
        self.items[webhook_id] = sub.model_copy(
            update={"failure_count": 0, "last_triggered_at": now, "updated_at": now}
        )

    async def record_failure(self, webhook_id: UUID, *, disable_threshold: int) -> WebhookSubscription | None:
        sub = self.items.get(webhook_id)
        if sub is None:
            return None
        now = self._clock.tick()
        count = sub.failure_count + 1
        self.items[webhook_id] = sub.model_copy(
            update={
                "failure_count": count,
                "active": False if count >= disable_threshold else sub.active,
                "last_triggered_at": now,
                "updated_at": now,
            }
        )
        return self.snapshot(webhook_id)


class InMemoryLogRepository:
    def __init__(self) -> None:
        self.entries: list[WebhookLogEntry] = []
        self._clock = _Clock()

    def for_webhook(self, webhook_id: UUID) -> list[WebhookLogEntry]:
        return [e for e in self.entries if e.webhook_id == webhook_id]

    async def create(
        self,
        *,
        webhook_id: UUID,
        event: str,
        payload: dict[str, Any],
        success: bool,
        status_code: int | None = None,
        response: str | None = None,
        error: str | None = None,
    ) -> WebhookLogEntry:
        entry = WebhookLogEntry(
            id=uuid4(),
            webhook_id=webhook_id,
            event=event,
            payload=payload,
            success=success,
            status_code=status_code,
            response=response,
            error=error,
            created_at=self._clock.tick(),
        )
        self.entries.append(entry)
        return entry

    async def list_by_webhook(self, webhook_id: UUID, *, limit: int = 50) -> List[WebhookLogEntry]:
        return list(reversed(self.for_webhook(webhook_id)))[:limit]
