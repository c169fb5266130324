"""Pytest configuration and fixtures."""
from __future__ import annotations

import asyncio
import socket
import uuid
from dataclasses import dataclass, field

import pytest
from aiohttp import ClientSession, web

from tests.fakes import InMemoryLogRepository, InMemorySubscriptionRepository
from webhook_service.main import create_app
from webhook_service.services.delivery import DeliveryWorker, WebhookSender
from webhook_service.services.webhooks import WebhookService
from webhook_service.webhooks_dispatcher import WebhookDispatcher


@dataclass
class ReceivedRequest:
    path: str
    headers: dict[str, str]
    body: bytes


@dataclass
class Subscriber:
    """Local HTTP endpoint standing in for a subscriber's webhook receiver."""

    base_url: str = ""
    received: list[ReceivedRequest] = field(default_factory=list)
    flaky_failures: int = 1

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def bodies(self, path: str) -> list[bytes]:
        return [r.body for r in self.received if r.path == path]


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def subscriptions() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def logs() -> InMemoryLogRepository:
    return InMemoryLogRepository()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
def sender(http_session, logs) -> WebhookSender:
    return WebhookSender(http_session, logs, timeout_seconds=2.0)


@pytest.fixture
def delivery_worker(sender, subscriptions, fake_sleep) -> DeliveryWorker:
    return DeliveryWorker(sender, subscriptions, sleep=fake_sleep)


@pytest.fixture
async def dispatcher(delivery_worker):
    dispatcher = WebhookDispatcher(delivery_worker.deliver, queue_size=100, concurrency=4)
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop(drain_timeout=5.0)


@pytest.fixture
def service(subscriptions, logs, sender, dispatcher) -> WebhookService:
    return WebhookService(subscriptions, logs, sender, dispatcher)


@pytest.fixture
async def subscriber(aiohttp_server) -> Subscriber:
    """Endpoints: /ok (200), /fail (500), /flaky (503 then 200), /big, /endless, /slow."""
    state = Subscriber()

    async def record(request: web.Request) -> None:
        state.received.append(
            ReceivedRequest(
                path=request.path,
                headers=dict(request.headers),
                body=await request.read(),
            )
        )

    async def ok(request: web.Request) -> web.Response:
        await record(request)
        return web.Response(text="ok")

    async def fail(request: web.Request) -> web.Response:
        await record(request)
        return web.Response(status=500, text="boom")

    async def flaky(request: web.Request) -> web.Response:
        await record(request)
        if len(state.bodies("/flaky")) <= state.flaky_failures:
            return web.Response(status=503, text="try later")
        return web.Response(text="ok")

    async def big(request: web.Request) -> web.Response:
        await record(request)
        return web.Response(text="x" * 5000)

    async def endless(request: web.Request) -> web.StreamResponse:
        await record(request)
        resp = web.StreamResponse()
        resp.content_type = "text/plain"
        resp.charset = "utf-8"
        await resp.prepare(request)
        chunk = ("\u00e9" * 32768).encode("utf-8")
        try:
            # Bounded only so a client that reads everything still finishes.
            for _ in range(16384):
                await resp.write(chunk)
        except ConnectionResetError:
            pass
        return resp

    async def slow(request: web.Request) -> web.Response:
        await record(request)
        await asyncio.sleep(0.5)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_post("/ok", ok)
    app.router.add_post("/fail", fail)
    app.router.add_post("/flaky", flaky)
    app.router.add_post("/big", big)
    app.router.add_post("/endless", endless)
    app.router.add_post("/slow", slow)
    server = await aiohttp_server(app)
    state.base_url = f"http://{server.host}:{server.port}"
    return state


@pytest.fixture
def dead_url() -> str:
    """URL of a local port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/hook"


@pytest.fixture
async def service_client(aiohttp_client, subscriptions, logs):
    """Client for calling the service API backed by the in-memory stores."""
    app = create_app(subscriptions=subscriptions, logs=logs)
    return await aiohttp_client(app)
