"""Webhook subscription management for the admin and seller dashboards."""
from __future__ import annotations

from typing import Any, Callable, List, Tuple
from uuid import UUID

import structlog

from webhook_service.domain.dto import (
    SubscriptionCreateDTO,
    SubscriptionUpdateDTO,
    normalize_events,
    validate_secret,
    validate_target_url,
)
from webhook_service.domain.models import WebhookDelivery, WebhookSubscription
from webhook_service.repositories.protocols import DeliveryLedger, SubscriptionRegistry
from webhook_service.services.signing import generate_secret

logger = structlog.get_logger(__name__)


class SubscriptionService:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        ledger: DeliveryLedger,
        *,
        secret_factory: Callable[[], str] = generate_secret,
    ):
        self._subscriptions = registry
        self._deliveries = ledger
        self._secret_factory = secret_factory

    async def create_subscription(self, dto: SubscriptionCreateDTO) -> WebhookSubscription:
        url = validate_target_url(dto.url)
        events = normalize_events(dto.events)
        secret = validate_secret(dto.secret) if dto.secret is not None else self._secret_factory()
        sub = await self._subscriptions.create(
            url=url,
            events=events,
            secret=secret,
            is_active=dto.is_active,
            scope=dto.scope,
        )
        logger.info(
            "webhook subscription created",
            subscription_id=str(sub.id),
            scope=sub.scope,
            events=[e.value for e in sub.events],
        )
        return sub

    async def list_subscriptions(
        self,
        scope: str | None,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookSubscription], int]:
        return await self._subscriptions.list_by_scope(
            scope, active_only=active_only, limit=limit, offset=offset
        )

    async def get_subscription(self, subscription_id: UUID) -> WebhookSubscription:
        return await self._subscriptions.get(subscription_id)

    async def update_subscription(
        self, subscription_id: UUID, dto: SubscriptionUpdateDTO
    ) -> WebhookSubscription:
        changes: dict[str, Any] = {}
        if dto.url is not None:
            changes["url"] = validate_target_url(dto.url)
        if dto.events is not None:
            changes["events"] = normalize_events(dto.events)
        if dto.secret is not None:
            changes["secret"] = validate_secret(dto.secret)
        if dto.is_active is not None:
            changes["is_active"] = dto.is_active
        sub = await self._subscriptions.update(subscription_id, **changes)
        logger.info(
            "webhook subscription updated",
            subscription_id=str(subscription_id),
            fields=sorted(changes),
        )
        return sub

    async def delete_subscription(self, subscription_id: UUID) -> None:
        await self._subscriptions.delete(subscription_id)
        logger.info("webhook subscription deleted", subscription_id=str(subscription_id))

    async def get_delivery_history(
        self, subscription_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        return await self._deliveries.list_by_subscription(
            subscription_id, limit=limit, offset=offset
        )
