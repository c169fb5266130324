"""Webhook delivery: one signed attempt, and the bounded retry cycle around it."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog
from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout

from webhook_service.core.exceptions import DeliveryError
from webhook_service.domain.webhooks import DeliveryResult, WebhookPayload, WebhookSubscription
from webhook_service.otel import delivery_span
from webhook_service.repositories.webhooks import (
    WebhookLogRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.signing import canonical_body, compute_signature

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"

SleepFn = Callable[[float], Awaitable[None]]


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "request timed out"
    return str(exc) or type(exc).__name__


async def _read_prefix(resp: ClientResponse, max_chars: int) -> str:
    """Decode at most ``max_chars`` characters; the rest of the body is never read."""
    budget = max_chars * 4  # widest UTF-8 sequence
    chunks: list[bytes] = []
    size = 0
    while size < budget:
        chunk = await resp.content.read(budget - size)
        if not chunk:
            break
        chunks.append(chunk)
        size += len(chunk)
    raw = b"".join(chunks)
    try:
        text = raw.decode(resp.charset or "utf-8", errors="replace")
    except LookupError:
        text = raw.decode("utf-8", errors="replace")
    return text[:max_chars]


class WebhookSender:
    """Performs a single signed POST to a subscriber endpoint."""

    def __init__(
        self,
        session: ClientSession,
        log_repository: WebhookLogRepository,
        *,
        timeout_seconds: float = 10.0,
        response_max_chars: int = 1000,
        user_agent: str = "PresentationDesigner-Webhook/1.0",
    ):
        self._session = session
        self._logs = log_repository
        self._timeout = ClientTimeout(total=timeout_seconds)
        self._response_max_chars = response_max_chars
        self._user_agent = user_agent

    def build_headers(self, subscription: WebhookSubscription, payload: WebhookPayload, body: bytes) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: compute_signature(subscription.secret, body),
            TIMESTAMP_HEADER: payload.timestamp,
            EVENT_HEADER: payload.event,
            "User-Agent": self._user_agent,
        }

    async def send_once(
        self,
        subscription: WebhookSubscription,
        payload: WebhookPayload,
        *,
        log: bool = True,
    ) -> DeliveryResult:
        """POST ``payload`` once.

        Any 2xx status is a success. Non-2xx responses come back as an
        unsuccessful result; transport failures and timeouts raise
        :class:`DeliveryError`. With ``log=True`` exactly one delivery log
        entry is written for the attempt either way.
        """
        envelope = payload.envelope()
        body = canonical_body(envelope)
        headers = self.build_headers(subscription, payload, body)

        with delivery_span(str(subscription.id), payload.event) as span:
            try:
                async with self._session.post(
                    subscription.url,
                    data=body,
                    headers=headers,
                    timeout=self._timeout,
                ) as resp:
                    status = resp.status
                    truncated = await _read_prefix(resp, self._response_max_chars)
            except (ClientError, asyncio.TimeoutError) as exc:
                message = f"Request failed: {_describe(exc)}"
                span.set_attribute("webhook.error", message)
                if log:
                    await self._logs.create(
                        webhook_id=subscription.id,
                        event=payload.event,
                        payload=envelope,
                        success=False,
                        error=message,
                    )
                raise DeliveryError(message) from exc

            span.set_attribute("http.status_code", status)

        success = 200 <= status < 300
        if log:
            await self._logs.create(
                webhook_id=subscription.id,
                event=payload.event,
                payload=envelope,
                success=success,
                status_code=status,
                response=truncated,
                error=None if success else f"HTTP {status}",
            )
        return DeliveryResult(success=success, status_code=status, response=truncated)


class DeliveryWorker:
    """Runs one delivery cycle (bounded retries) and records subscription health."""

    def __init__(
        self,
        sender: WebhookSender,
        subscription_repository: WebhookSubscriptionRepository,
        *,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        failure_threshold: int = 10,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._sender = sender
        self._subscriptions = subscription_repository
        self._max_attempts = max_attempts
        self._base_delay_seconds = base_delay_seconds
        self._failure_threshold = failure_threshold
        self._sleep = sleep

    async def deliver(self, subscription: WebhookSubscription, payload: WebhookPayload) -> bool:
        """Deliver ``payload`` with linear backoff; returns whether it got through.

        Delivery failures are absorbed into the log and ``failure_count``;
        repository errors propagate.
        """
        log = logger.bind(webhook_id=str(subscription.id), webhook_event=payload.event)
        for attempt in range(1, self._max_attempts + 1):
            try:
                result = await self._sender.send_once(subscription, payload)
            except DeliveryError as exc:
                error = str(exc)
            else:
                if result.success:
                    await self._subscriptions.record_success(subscription.id)
                    log.info("webhook delivered", attempt=attempt, status_code=result.status_code)
                    return True
                error = f"HTTP {result.status_code}"

            log.warning("webhook delivery attempt failed", attempt=attempt, error=error)
            if attempt < self._max_attempts:
                await self._sleep(attempt * self._base_delay_seconds)

        log.error("webhook delivery failed", attempts=self._max_attempts)
        updated = await self._subscriptions.record_failure(
            subscription.id, disable_threshold=self._failure_threshold
        )
        if updated is not None and not updated.active and subscription.active:
            log.warning(
                "webhook disabled due to repeated failures",
                failure_count=updated.failure_count,
            )
        return False
