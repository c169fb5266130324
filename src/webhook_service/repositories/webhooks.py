"""Webhook repositories (subscriptions + delivery log)."""
from __future__ import annotations

import json
from typing import Any, List
from uuid import UUID

from asyncpg import Record  # type: ignore[import-untyped]

from webhook_service.domain.webhooks import WebhookLogEntry, WebhookSubscription
from webhook_service.repositories.base import BaseRepository


class WebhookSubscriptionRepository(BaseRepository[WebhookSubscription]):
    model = WebhookSubscription
    not_found_message = "Webhook not found"

    async def create(
        self,
        *,
        owner_id: UUID,
        url: str,
        events: list[str],
        secret: str,
    ) -> WebhookSubscription:
        record = await self._require_row(
            """
            INSERT INTO webhook_subscriptions (owner_id, url, events, secret, active, failure_count)
            VALUES ($1, $2, $3::text[], $4, true, 0)
            RETURNING *
            """,
            owner_id,
            url,
            events,
            secret,
        )
        return self._to_model(record)

    async def list_by_owner(self, owner_id: UUID) -> List[WebhookSubscription]:
        return await self._fetch_models(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE owner_id = $1
            ORDER BY created_at DESC
            """,
            owner_id,
        )

    async def get(self, owner_id: UUID, webhook_id: UUID) -> WebhookSubscription:
        record = await self._require_row(
            "SELECT * FROM webhook_subscriptions WHERE owner_id = $1 AND id = $2",
            owner_id,
            webhook_id,
        )
        return self._to_model(record)

    async def update(
        self,
        owner_id: UUID,
        webhook_id: UUID,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> WebhookSubscription:
        assignments: list[str] = []
        values: list[Any] = [owner_id, webhook_id]
        for column, value, cast in (
            ("url", url, ""),
            ("events", events, "::text[]"),
            ("active", active, ""),
        ):
            if value is None:
                continue
            values.append(value)
            assignments.append(f"{column} = ${len(values)}{cast}")
        assignments.append("updated_at = now()")
        record = await self._require_row(
            f"""
            UPDATE webhook_subscriptions
            SET {", ".join(assignments)}
            WHERE owner_id = $1 AND id = $2
            RETURNING *
            """,
            *values,
        )
        return self._to_model(record)

    async def delete(self, owner_id: UUID, webhook_id: UUID) -> None:
        # Delivery log rows go with it (ON DELETE CASCADE).
        await self._require_row(
            """
            DELETE FROM webhook_subscriptions
            WHERE owner_id = $1 AND id = $2
            RETURNING id
            """,
            owner_id,
            webhook_id,
        )

    async def list_active_matching(self, owner_id: UUID, event: str) -> List[WebhookSubscription]:
        return await self._fetch_models(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE owner_id = $1
              AND active = true
              AND $2 = ANY(events)
            ORDER BY created_at ASC
            """,
            owner_id,
            event,
        )

    async def record_success(self, webhook_id: UUID) -> None:
        await self._execute(
            """
            UPDATE webhook_subscriptions
            SET failure_count = 0,
                last_triggered_at = now(),
                updated_at = now()
            WHERE id = $1
            """,
            webhook_id,
        )

    async def record_failure(
        self, webhook_id: UUID, *, disable_threshold: int
    ) -> WebhookSubscription | None:
        """Count one exhausted delivery cycle and deactivate at the threshold.

        Increment and deactivation happen in one statement, so overlapping
        cycles never lose an increment. Returns ``None`` when the subscription
        was deleted in the meantime.
        """
        return await self._fetch_model(
            """
            UPDATE webhook_subscriptions
            SET failure_count = failure_count + 1,
                active = CASE WHEN failure_count + 1 >= $2 THEN false ELSE active END,
                last_triggered_at = now(),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            webhook_id,
            disable_threshold,
        )


class WebhookLogRepository(BaseRepository[WebhookLogEntry]):
    model = WebhookLogEntry

    def _to_model(self, record: Record) -> WebhookLogEntry:
        payload = dict(record)
        value = payload.get("payload")
        if isinstance(value, str):
            payload["payload"] = json.loads(value)
        return WebhookLogEntry.model_validate(payload)

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
        record = await self._require_row(
            """
            INSERT INTO webhook_logs (
                webhook_id,
                event,
                payload,
                success,
                status_code,
                response,
                error
            )
            VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7)
            RETURNING *
            """,
            webhook_id,
            event,
            json.dumps(payload),
            success,
            status_code,
            response,
            error,
        )
        return self._to_model(record)

    async def list_by_webhook(self, webhook_id: UUID, *, limit: int = 50) -> List[WebhookLogEntry]:
        return await self._fetch_models(
            """
            SELECT *
            FROM webhook_logs
            WHERE webhook_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
            """,
            webhook_id,
            limit,
        )
