"""Event fan-out to all matching webhook subscriptions."""
from __future__ import annotations

import asyncio
from typing import Any

import structlog

from webhook_service.core.exceptions import DeliveryError
from webhook_service.domain.dto import parse_event
from webhook_service.domain.enums import WebhookEvent
from webhook_service.domain.models import PublishResult, WebhookSubscription
from webhook_service.repositories.protocols import SubscriptionRegistry
from webhook_service.services.dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)


class WebhookPublisher:
    """Single entry point through which domain modules raise webhook events."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        dispatcher: WebhookDispatcher,
        *,
        max_concurrency: int = 10,
    ):
        self._registry = registry
        self._dispatcher = dispatcher
        self._max_concurrency = max_concurrency

    async def publish(
        self,
        event: WebhookEvent | str,
        payload: Any,
        scope: str | None = None,
    ) -> PublishResult:
        """Deliver ``event`` to every active subscription in ``scope``.

        ``scope=None`` targets platform-wide subscriptions only; a seller scope
        targets that seller's subscriptions only. Individual delivery failures
        are counted, registry failures propagate.
        """
        webhook_event = parse_event(event)
        subscriptions = await self._registry.list_active_matching(webhook_event, scope)
        if not subscriptions:
            logger.debug("no webhook subscriptions", webhook_event=webhook_event.value, scope=scope)
            return PublishResult()

        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._deliver_one(semaphore, sub, webhook_event, payload)
                for sub in subscriptions
            )
        )
        delivered = sum(1 for ok in outcomes if ok)
        result = PublishResult(
            delivered=delivered,
            failed=len(outcomes) - delivered,
            total=len(outcomes),
        )
        logger.info(
            "webhook event published",
            webhook_event=webhook_event.value,
            scope=scope,
            delivered=result.delivered,
            failed=result.failed,
            total=result.total,
        )
        return result

    async def _deliver_one(
        self,
        semaphore: asyncio.Semaphore,
        subscription: WebhookSubscription,
        event: WebhookEvent,
        payload: Any,
    ) -> bool:
        async with semaphore:
            try:
                await self._dispatcher.deliver(subscription, event, payload)
            except DeliveryError:
                # already logged by the dispatcher
                return False
            except Exception:
                logger.exception(
                    "webhook delivery crashed",
                    subscription_id=str(subscription.id),
                    webhook_event=event.value,
                )
                return False
        return True
