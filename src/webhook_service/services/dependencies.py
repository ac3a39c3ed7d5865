"""Shared dependency providers for aiohttp handlers and background tasks."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

from aiohttp import ClientSession, ClientTimeout, web

from webhook_service.db.pool import get_pool
from webhook_service.repositories.memory import InMemoryDeliveryLedger, InMemorySubscriptionRegistry
from webhook_service.repositories.protocols import DeliveryLedger, SubscriptionRegistry
from webhook_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from webhook_service.services.dispatcher import WebhookDispatcher
from webhook_service.services.publisher import WebhookPublisher
from webhook_service.services.retry import RetryCoordinator
from webhook_service.services.subscriptions import SubscriptionService
from webhook_service.settings import Settings

TService = TypeVar("TService")

_SUBSCRIPTION_SERVICE_KEY = "subscription_service"
_PUBLISHER_KEY = "webhook_publisher"
_RETRY_COORDINATOR_KEY = "retry_coordinator"


@dataclass
class WebhookContext:
    """Process-wide collaborators, filled in by the startup hooks."""

    settings: Settings
    registry: SubscriptionRegistry | None = None
    ledger: DeliveryLedger | None = None
    http_session: ClientSession | None = None

    def require(self) -> tuple[SubscriptionRegistry, DeliveryLedger, ClientSession]:
        if self.registry is None or self.ledger is None or self.http_session is None:
            raise RuntimeError("Webhook context not initialized. Is the app started?")
        return self.registry, self.ledger, self.http_session

    def dispatcher(self) -> WebhookDispatcher:
        _, ledger, session = self.require()
        return WebhookDispatcher(
            ledger,
            session,
            timeout_seconds=self.settings.webhook_request_timeout_seconds,
            max_attempts=self.settings.webhook_max_attempts,
            response_max_chars=self.settings.webhook_response_max_chars,
            user_agent=self.settings.webhook_user_agent,
        )

    def publisher(self) -> WebhookPublisher:
        registry, _, _ = self.require()
        return WebhookPublisher(
            registry,
            self.dispatcher(),
            max_concurrency=self.settings.webhook_dispatch_max_concurrency,
        )

    def retry_coordinator(self) -> RetryCoordinator:
        registry, ledger, _ = self.require()
        return RetryCoordinator(registry, ledger, self.dispatcher())

    def subscription_service(self) -> SubscriptionService:
        registry, ledger, _ = self.require()
        return SubscriptionService(registry, ledger)


CONTEXT_KEY = web.AppKey("webhook_context", WebhookContext)


def get_context(app: web.Application) -> WebhookContext:
    return app[CONTEXT_KEY]


async def init_storage(app: web.Application) -> None:
    """Attach the configured registry and ledger unless they were injected."""
    ctx = get_context(app)
    if ctx.registry is not None and ctx.ledger is not None:
        return
    if ctx.settings.storage_backend == "memory":
        ctx.registry = ctx.registry or InMemorySubscriptionRegistry()
        if ctx.ledger is None:
            ctx.ledger = InMemoryDeliveryLedger(
                registry=ctx.registry
                if isinstance(ctx.registry, InMemorySubscriptionRegistry)
                else None
            )
        return
    pool = await get_pool()
    ctx.registry = ctx.registry or WebhookSubscriptionRepository(pool)
    ctx.ledger = ctx.ledger or WebhookDeliveryRepository(pool)


async def start_http_session(app: web.Application) -> None:
    ctx = get_context(app)
    ctx.http_session = ClientSession(
        timeout=ClientTimeout(total=ctx.settings.webhook_request_timeout_seconds)
    )


async def close_http_session(app: web.Application) -> None:
    ctx = get_context(app)
    session, ctx.http_session = ctx.http_session, None
    if session is not None:
        await session.close()


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[WebhookContext], TService],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = builder(get_context(request.app))
        request[cache_key] = service
    return service


async def get_subscription_service(request: web.Request) -> SubscriptionService:
    return await _get_or_create_service(
        request, _SUBSCRIPTION_SERVICE_KEY, WebhookContext.subscription_service
    )


async def get_publisher(request: web.Request) -> WebhookPublisher:
    return await _get_or_create_service(request, _PUBLISHER_KEY, WebhookContext.publisher)


async def get_retry_coordinator(request: web.Request) -> RetryCoordinator:
    return await _get_or_create_service(
        request, _RETRY_COORDINATOR_KEY, WebhookContext.retry_coordinator
    )
