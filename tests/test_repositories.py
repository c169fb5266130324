"""SQL issued by the asyncpg repositories, checked against a recording pool."""
from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import pytest

from webhook_service.core.exceptions import NotFoundError
from webhook_service.repositories import WebhookLogRepository, WebhookSubscriptionRepository


class RecordingConnection:
    def __init__(self, rows: list[Any]):
        self.rows = rows
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []

    def _next(self):
        return self.rows.pop(0) if self.rows else None

    async def fetchrow(self, query: str, *args: Any):
        self.calls.append(("fetchrow", query, args))
        return self._next()

    async def fetch(self, query: str, *args: Any):
        self.calls.append(("fetch", query, args))
        return self._next() or []

    async def execute(self, query: str, *args: Any):
        self.calls.append(("execute", query, args))
        return "UPDATE 1"


class RecordingPool:
    def __init__(self, *rows: Any):
        self.conn = RecordingConnection(list(rows))

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    @property
    def last_query(self) -> str:
        return " ".join(self.conn.calls[-1][1].split())

    @property
    def last_args(self) -> tuple[Any, ...]:
        return self.conn.calls[-1][2]


def _subscription_row(**overrides: Any) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid.uuid4(),
        "owner_id": uuid.uuid4(),
        "url": "https://example.com/hook",
        "events": ["project.created"],
        "secret": "s",
        "active": True,
        "failure_count": 0,
        "last_triggered_at": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_get_missing_raises_not_found():
    repo = WebhookSubscriptionRepository(RecordingPool())
    owner_id, webhook_id = uuid.uuid4(), uuid.uuid4()

    with pytest.raises(NotFoundError, match="Webhook not found"):
        await repo.get(owner_id, webhook_id)
    assert repo._pool.last_args == (owner_id, webhook_id)


@pytest.mark.asyncio
async def test_create_maps_returned_row():
    row = _subscription_row()
    pool = RecordingPool(row)
    repo = WebhookSubscriptionRepository(pool)

    sub = await repo.create(
        owner_id=row["owner_id"], url=row["url"], events=row["events"], secret="s"
    )

    assert sub.id == row["id"]
    assert pool.last_query.startswith("INSERT INTO webhook_subscriptions")
    assert pool.last_args == (row["owner_id"], row["url"], row["events"], "s")


@pytest.mark.asyncio
async def test_update_sets_only_supplied_columns():
    pool = RecordingPool(_subscription_row(active=False))
    repo = WebhookSubscriptionRepository(pool)
    owner_id, webhook_id = uuid.uuid4(), uuid.uuid4()

    await repo.update(owner_id, webhook_id, active=False)

    assert "SET active = $3, updated_at = now()" in pool.last_query
    assert "url =" not in pool.last_query
    assert pool.last_args == (owner_id, webhook_id, False)


@pytest.mark.asyncio
async def test_update_numbers_parameters_in_order():
    pool = RecordingPool(_subscription_row())
    repo = WebhookSubscriptionRepository(pool)
    owner_id, webhook_id = uuid.uuid4(), uuid.uuid4()

    await repo.update(owner_id, webhook_id, url="https://x.test/h", events=["slide.created"], active=True)

    assert "SET url = $3, events = $4::text[], active = $5, updated_at = now()" in pool.last_query
    assert pool.last_args == (owner_id, webhook_id, "https://x.test/h", ["slide.created"], True)


@pytest.mark.asyncio
async def test_update_and_delete_missing_raise_not_found():
    repo = WebhookSubscriptionRepository(RecordingPool())
    with pytest.raises(NotFoundError):
        await repo.update(uuid.uuid4(), uuid.uuid4(), active=True)
    with pytest.raises(NotFoundError):
        await repo.delete(uuid.uuid4(), uuid.uuid4())


@pytest.mark.asyncio
async def test_list_active_matching_filters_in_sql():
    rows = [_subscription_row(), _subscription_row()]
    pool = RecordingPool(rows)
    repo = WebhookSubscriptionRepository(pool)
    owner_id = uuid.uuid4()

    subs = await repo.list_active_matching(owner_id, "project.created")

    assert [s.id for s in subs] == [r["id"] for r in rows]
    assert "active = true" in pool.last_query
    assert "$2 = ANY(events)" in pool.last_query
    assert pool.last_args == (owner_id, "project.created")


@pytest.mark.asyncio
async def test_record_failure_is_single_atomic_update():
    pool = RecordingPool(_subscription_row(failure_count=10, active=False))
    repo = WebhookSubscriptionRepository(pool)
    webhook_id = uuid.uuid4()

    updated = await repo.record_failure(webhook_id, disable_threshold=10)

    assert updated is not None and updated.active is False
    assert len(pool.conn.calls) == 1
    assert "failure_count = failure_count + 1" in pool.last_query
    assert "CASE WHEN failure_count + 1 >= $2 THEN false ELSE active END" in pool.last_query
    assert pool.last_args == (webhook_id, 10)


@pytest.mark.asyncio
async def test_record_failure_for_deleted_subscription_returns_none():
    repo = WebhookSubscriptionRepository(RecordingPool())
    assert await repo.record_failure(uuid.uuid4(), disable_threshold=10) is None


@pytest.mark.asyncio
async def test_record_success_resets_counter():
    pool = RecordingPool()
    repo = WebhookSubscriptionRepository(pool)

    await repo.record_success(uuid.uuid4())

    assert pool.conn.calls[-1][0] == "execute"
    assert "failure_count = 0" in pool.last_query
    assert "last_triggered_at = now()" in pool.last_query


def _log_row(payload: Any) -> dict[str, Any]:
    return {
        "id": uuid.uuid4(),
        "webhook_id": uuid.uuid4(),
        "event": "project.created",
        "payload": payload,
        "success": False,
        "status_code": None,
        "response": None,
        "error": "Request failed: boom",
        "created_at": datetime.now(timezone.utc),
    }


@pytest.mark.asyncio
async def test_log_create_serialises_payload_as_json():
    envelope = {"event": "project.created", "data": {"title": "Демо"}}
    pool = RecordingPool(_log_row(json.dumps(envelope)))
    repo = WebhookLogRepository(pool)

    entry = await repo.create(
        webhook_id=uuid.uuid4(),
        event="project.created",
        payload=envelope,
        success=False,
        error="Request failed: boom",
    )

    assert entry.payload == envelope
    assert "$3::jsonb" in pool.last_query
    assert json.loads(pool.last_args[2]) == envelope


@pytest.mark.asyncio
async def test_log_listing_passes_limit_and_decodes_payloads():
    rows = [_log_row('{"event": "a"}'), _log_row({"event": "b"})]
    pool = RecordingPool(rows)
    repo = WebhookLogRepository(pool)
    webhook_id = uuid.uuid4()

    entries = await repo.list_by_webhook(webhook_id, limit=7)

    assert [e.payload for e in entries] == [{"event": "a"}, {"event": "b"}]
    assert "ORDER BY created_at DESC" in pool.last_query
    assert pool.last_args == (webhook_id, 7)
