from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

import pytest
from aiohttp import ClientSession, web

from webhook_service.main import create_app
from webhook_service.repositories.memory import InMemoryDeliveryLedger, InMemorySubscriptionRegistry
from webhook_service.services.dispatcher import WebhookDispatcher
from webhook_service.settings import Settings


@dataclass
class ReceivedRequest:
    name: str
    headers: Mapping[str, str]
    body: bytes


class Receiver:
    """Fake subscriber endpoint; every ``/hook/{name}`` answers with its configured status."""

    def __init__(self):
        self.requests: list[ReceivedRequest] = []
        self.delay = 0.0
        self._responses: dict[str, tuple[int, str]] = {}
        self.server = None

    def respond(self, name: str, status: int, body: str = "ok") -> None:
        self._responses[name] = (status, body)

    def url(self, name: str = "default") -> str:
        return str(self.server.make_url(f"/hook/{name}"))

    def received(self, name: str) -> list[ReceivedRequest]:
        return [r for r in self.requests if r.name == name]

    async def handle(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        body = await request.read()
        self.requests.append(ReceivedRequest(name, request.headers.copy(), body))
        if self.delay:
            await asyncio.sleep(self.delay)
        status, text = self._responses.get(name, (200, "ok"))
        return web.Response(status=status, text=text)


@pytest.fixture
def registry():
    return InMemorySubscriptionRegistry()


@pytest.fixture
def ledger(registry):
    return InMemoryDeliveryLedger(registry=registry)


@pytest.fixture
async def receiver(aiohttp_server):
    recv = Receiver()
    app = web.Application()
    app.router.add_post("/hook/{name}", recv.handle)
    recv.server = await aiohttp_server(app)
    return recv


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
def dispatcher(ledger, http_session):
    return WebhookDispatcher(ledger, http_session, timeout_seconds=5.0)


@pytest.fixture
def memory_settings():
    return Settings(storage_backend="memory")


@pytest.fixture
async def service_client(aiohttp_client, memory_settings, registry, ledger):
    """Client for the service API backed by the in-memory registry and ledger."""
    app = create_app(memory_settings, registry=registry, ledger=ledger, start_worker=False)
    return await aiohttp_client(app)
