"""Background webhook dispatcher (bounded queue drained by delivery workers)."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog
from aiohttp import ClientSession, ClientTimeout, web

from webhook_service.db.pool import get_pool
from webhook_service.domain.webhooks import WebhookPayload, WebhookSubscription
from webhook_service.repositories.webhooks import (
    WebhookLogRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.delivery import DeliveryWorker, WebhookSender
from webhook_service.services.webhooks import WebhookService
from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

DeliverFn = Callable[[WebhookSubscription, WebhookPayload], Awaitable[Any]]

WEBHOOK_SERVICE_KEY = "webhook_service"
SUBSCRIPTION_REPOSITORY_KEY = "webhook_subscription_repository"
LOG_REPOSITORY_KEY = "webhook_log_repository"
_WEBHOOK_SESSION_KEY = "webhook_http_session"
_WEBHOOK_DISPATCHER_KEY = "webhook_dispatcher"


@dataclass
class DeliveryJob:
    subscription: WebhookSubscription
    payload: WebhookPayload


class WebhookDispatcher:
    """Runs delivery jobs on a fixed pool of asyncio worker tasks.

    ``submit`` never blocks: when the queue is full the job is dropped and
    logged. A job that raises is logged and does not take its worker down.
    """

    def __init__(self, deliver: DeliverFn, *, queue_size: int = 1000, concurrency: int = 10):
        self._deliver = deliver
        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue(maxsize=queue_size)
        self._concurrency = concurrency
        self._workers: list[asyncio.Task[None]] = []
        self._accepting = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._workers:
            return
        self._accepting = True
        self._workers = [
            asyncio.create_task(self._worker_loop(), name=f"webhook-dispatcher-{i}")
            for i in range(self._concurrency)
        ]
        logger.info(
            "webhook_dispatcher started",
            concurrency=self._concurrency,
            queue_size=self._queue.maxsize,
        )

    def submit(self, subscription: WebhookSubscription, payload: WebhookPayload) -> bool:
        if not self._accepting:
            logger.error(
                "webhook_dispatcher is not running, delivery dropped",
                webhook_id=str(subscription.id),
                webhook_event=payload.event,
            )
            return False
        try:
            self._queue.put_nowait(DeliveryJob(subscription, payload))
        except asyncio.QueueFull:
            logger.error(
                "webhook_dispatcher queue full, delivery dropped",
                webhook_id=str(subscription.id),
                webhook_event=payload.event,
                queue_size=self._queue.maxsize,
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def stop(self, *, drain_timeout: float = 40.0) -> None:
        """Stop accepting jobs, let queued ones finish, then cancel workers.

        ``drain_timeout`` should cover at least one full delivery cycle;
        cycles still running when it expires are cancelled and logged.
        """
        self._accepting = False
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("webhook_dispatcher drain timed out", pending=self._queue.qsize())
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        while not self._queue.empty():
            job = self._queue.get_nowait()
            self._queue.task_done()
            logger.error(
                "webhook delivery dropped at shutdown",
                webhook_id=str(job.subscription.id),
                webhook_event=job.payload.event,
            )
        logger.info("webhook_dispatcher stopped")

    async def _worker_loop(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._deliver(job.subscription, job.payload)
            except asyncio.CancelledError:
                logger.error(
                    "webhook delivery cancelled at shutdown",
                    webhook_id=str(job.subscription.id),
                    webhook_event=job.payload.event,
                )
                raise
            except Exception:
                logger.exception(
                    "webhook delivery crashed",
                    webhook_id=str(job.subscription.id),
                    webhook_event=job.payload.event,
                )
            finally:
                self._queue.task_done()


async def _repositories(
    app: web.Application,
) -> tuple[WebhookSubscriptionRepository, WebhookLogRepository]:
    subscriptions = app.get(SUBSCRIPTION_REPOSITORY_KEY)
    logs = app.get(LOG_REPOSITORY_KEY)
    if subscriptions is None or logs is None:
        pool = await get_pool()
        subscriptions = subscriptions or WebhookSubscriptionRepository(pool)
        logs = logs or WebhookLogRepository(pool)
    return subscriptions, logs


async def start_webhook_dispatcher(app: web.Application) -> None:
    subscriptions, logs = await _repositories(app)
    session = ClientSession(timeout=ClientTimeout(total=settings.webhook_request_timeout_seconds))
    sender = WebhookSender(
        session,
        logs,
        timeout_seconds=settings.webhook_request_timeout_seconds,
        response_max_chars=settings.webhook_response_max_chars,
        user_agent=settings.webhook_user_agent,
    )
    worker = DeliveryWorker(
        sender,
        subscriptions,
        max_attempts=settings.webhook_max_attempts,
        base_delay_seconds=settings.webhook_retry_base_delay_seconds,
        failure_threshold=settings.webhook_failure_threshold,
    )
    dispatcher = WebhookDispatcher(
        worker.deliver,
        queue_size=settings.webhook_queue_size,
        concurrency=settings.webhook_dispatch_concurrency,
    )
    dispatcher.start()

    app[_WEBHOOK_SESSION_KEY] = session
    app[_WEBHOOK_DISPATCHER_KEY] = dispatcher
    app[WEBHOOK_SERVICE_KEY] = WebhookService(subscriptions, logs, sender, dispatcher)


async def stop_webhook_dispatcher(app: web.Application) -> None:
    dispatcher = app.get(_WEBHOOK_DISPATCHER_KEY)
    if dispatcher is not None:
        await dispatcher.stop(drain_timeout=settings.webhook_drain_timeout_seconds)
    session = app.get(_WEBHOOK_SESSION_KEY)
    if session is not None:
        await session.close()


def get_dispatcher(app: web.Application) -> WebhookDispatcher:
    return app[_WEBHOOK_DISPATCHER_KEY]
