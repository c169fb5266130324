"""Webhook domain service (registry + event trigger)."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, List
from uuid import UUID

import structlog
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from webhook_service.core.exceptions import DeliveryError, InvalidInputError
from webhook_service.domain.enums import SUPPORTED_EVENTS, TEST_EVENT, WebhookEvent
from webhook_service.domain.webhooks import (
    TestDeliveryResult,
    WebhookLogEntry,
    WebhookPayload,
    WebhookSubscription,
)
from webhook_service.repositories.webhooks import (
    WebhookLogRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.delivery import WebhookSender
from webhook_service.services.signing import generate_secret

if TYPE_CHECKING:
    from webhook_service.webhooks_dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


def validate_url(url: str) -> str:
    """Require an absolute http(s) URL; the given string is stored unchanged."""
    try:
        _URL_ADAPTER.validate_python(url)
    except ValidationError as exc:
        raise InvalidInputError("Invalid webhook URL", [url]) from exc
    return url


def validate_events(events: list[str]) -> list[str]:
    """Reject unsupported event names; returns the list without duplicates."""
    invalid = [e for e in dict.fromkeys(events) if e not in SUPPORTED_EVENTS]
    if invalid:
        raise InvalidInputError(f"Invalid events: {', '.join(invalid)}", invalid)
    return list(dict.fromkeys(events))


class WebhookService:
    def __init__(
        self,
        subscription_repository: WebhookSubscriptionRepository,
        log_repository: WebhookLogRepository,
        sender: WebhookSender,
        dispatcher: "WebhookDispatcher",
    ):
        self._subscriptions = subscription_repository
        self._logs = log_repository
        self._sender = sender
        self._dispatcher = dispatcher

    async def list_webhooks(self, owner_id: UUID) -> List[WebhookSubscription]:
        return await self._subscriptions.list_by_owner(owner_id)

    async def get_webhook(self, owner_id: UUID, webhook_id: UUID) -> WebhookSubscription:
        return await self._subscriptions.get(owner_id, webhook_id)

    async def create_webhook(
        self,
        *,
        owner_id: UUID,
        url: str,
        events: list[str],
        secret: str | None = None,
    ) -> WebhookSubscription:
        url = validate_url(url)
        events = validate_events(events)
        sub = await self._subscriptions.create(
            owner_id=owner_id,
            url=url,
            events=events,
            secret=secret or generate_secret(),
        )
        logger.info("webhook created", webhook_id=str(sub.id), owner_id=str(owner_id))
        return sub

    async def update_webhook(
        self,
        owner_id: UUID,
        webhook_id: UUID,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
    ) -> WebhookSubscription:
        await self._subscriptions.get(owner_id, webhook_id)
        if url is not None:
            url = validate_url(url)
        if events is not None:
            events = validate_events(events)
        return await self._subscriptions.update(
            owner_id, webhook_id, url=url, events=events, active=active
        )

    async def delete_webhook(self, owner_id: UUID, webhook_id: UUID) -> None:
        await self._subscriptions.delete(owner_id, webhook_id)
        logger.info("webhook deleted", webhook_id=str(webhook_id), owner_id=str(owner_id))

    async def test_webhook(self, owner_id: UUID, webhook_id: UUID) -> TestDeliveryResult:
        """Send one synthetic ``webhook.test`` delivery.

        No retries, no log entry, and no change to ``failure_count``/``active``.
        """
        sub = await self._subscriptions.get(owner_id, webhook_id)
        payload = WebhookPayload.build(
            TEST_EVENT,
            {"message": "This is a test webhook payload", "webhookId": str(webhook_id)},
        )
        try:
            result = await self._sender.send_once(sub, payload, log=False)
        except DeliveryError as exc:
            return TestDeliveryResult(success=False, error=str(exc))
        return TestDeliveryResult(
            success=result.success,
            status_code=result.status_code,
            response=result.response,
        )

    async def list_logs(
        self, owner_id: UUID, webhook_id: UUID, *, limit: int = 50
    ) -> List[WebhookLogEntry]:
        await self._subscriptions.get(owner_id, webhook_id)
        return await self._logs.list_by_webhook(webhook_id, limit=limit)

    async def trigger(
        self,
        owner_id: UUID,
        event: WebhookEvent | str,
        data: dict[str, Any],
        *,
        project_id: UUID | str | None = None,
    ) -> int:
        """Queue deliveries of ``event`` to the owner's matching subscriptions.

        Returns the number of deliveries queued without waiting for any of
        them; delivery outcomes only show up in the log and subscription state.
        """
        try:
            event_name = WebhookEvent(event).value
        except ValueError as exc:
            raise InvalidInputError(f"Invalid events: {event}", [str(event)]) from exc

        subs = await self._subscriptions.list_active_matching(owner_id, event_name)
        if not subs:
            return 0

        payload = WebhookPayload.build(
            event_name,
            data,
            project_id=str(project_id) if project_id is not None else None,
            owner_id=str(owner_id),
        )
        queued = sum(1 for sub in subs if self._dispatcher.submit(sub, payload))
        logger.info(
            "webhook event triggered",
            webhook_event=event_name,
            owner_id=str(owner_id),
            matched=len(subs),
            queued=queued,
        )
        return queued
