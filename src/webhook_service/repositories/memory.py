"""In-process registry and ledger for local development and tests.

Both keep insertion order, so "newest first" is simply reverse insertion order.
None of the methods awaits while mutating, which keeps each call atomic on a
single event loop.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, List, Tuple
from uuid import UUID, uuid4

from webhook_service.core.exceptions import (
    ConcurrentAttemptError,
    InvalidStateError,
    NotFoundError,
)
from webhook_service.domain.enums import DeliveryStatus, WebhookEvent
from webhook_service.domain.models import WebhookDelivery, WebhookSubscription, retry_due_at

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _page(items: list, limit: int, offset: int) -> list:
    return items[offset : offset + limit]


class InMemorySubscriptionRegistry:
    def __init__(self, clock: Clock = _utcnow):
        self._clock = clock
        self._items: dict[UUID, WebhookSubscription] = {}

    async def create(
        self,
        *,
        url: str,
        events: tuple[WebhookEvent, ...],
        secret: str,
        is_active: bool,
        scope: str | None,
    ) -> WebhookSubscription:
        now = self._clock()
        sub = WebhookSubscription(
            id=uuid4(),
            url=url,
            events=events,
            secret=secret,
            is_active=is_active,
            scope=scope,
            created_at=now,
            updated_at=now,
        )
        self._items[sub.id] = sub
        return sub

    async def get(self, subscription_id: UUID) -> WebhookSubscription:
        try:
            return self._items[subscription_id]
        except KeyError:
            raise NotFoundError("Webhook not found") from None

    async def update(self, subscription_id: UUID, **changes: Any) -> WebhookSubscription:
        current = await self.get(subscription_id)
        updated = current.model_copy(update={**changes, "updated_at": self._clock()})
        self._items[subscription_id] = updated
        return updated

    async def delete(self, subscription_id: UUID) -> None:
        if self._items.pop(subscription_id, None) is None:
            raise NotFoundError("Webhook not found")

    async def list_by_scope(
        self,
        scope: str | None,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookSubscription], int]:
        matching = [
            s
            for s in reversed(self._items.values())
            if s.scope == scope and (s.is_active or not active_only)
        ]
        return _page(matching, limit, offset), len(matching)

    async def list_active_matching(
        self, event: WebhookEvent, scope: str | None
    ) -> List[WebhookSubscription]:
        return [s for s in self._items.values() if s.matches(event, scope)]

    def is_active(self, subscription_id: UUID) -> bool:
        sub = self._items.get(subscription_id)
        return sub is not None and sub.is_active


class InMemoryDeliveryLedger:
    """Delivery records; linked to a registry, the retry query sees live subscriptions only."""

    def __init__(
        self,
        clock: Clock = _utcnow,
        *,
        registry: InMemorySubscriptionRegistry | None = None,
    ):
        self._clock = clock
        self._registry = registry
        self._items: dict[UUID, WebhookDelivery] = {}
        self.writes = 0

    async def create(
        self,
        *,
        subscription_id: UUID,
        event: WebhookEvent,
        payload: Any,
    ) -> WebhookDelivery:
        now = self._clock()
        delivery = WebhookDelivery(
            id=uuid4(),
            subscription_id=subscription_id,
            event=event,
            # stored as the jsonb column would return it
            payload=json.loads(json.dumps(payload, default=str)),
            created_at=now,
            updated_at=now,
        )
        self._items[delivery.id] = delivery
        self.writes += 1
        return delivery

    async def get(self, delivery_id: UUID) -> WebhookDelivery:
        try:
            return self._items[delivery_id]
        except KeyError:
            raise NotFoundError("Webhook delivery not found") from None

    async def record_attempt(
        self,
        delivery_id: UUID,
        *,
        expected_attempts: int,
        status: DeliveryStatus,
        status_code: int | None,
        response: str | None,
        delivered_at: datetime | None,
    ) -> WebhookDelivery:
        current = await self.get(delivery_id)
        if current.attempts != expected_attempts or current.status == DeliveryStatus.SUCCESS:
            raise ConcurrentAttemptError(
                f"Delivery {delivery_id} was updated by another attempt"
            )
        updated = current.model_copy(
            update={
                "status": status,
                "status_code": status_code,
                "response": response,
                "delivered_at": delivered_at or current.delivered_at,
                "attempts": current.attempts + 1,
                "updated_at": self._clock(),
            }
        )
        self._items[delivery_id] = updated
        self.writes += 1
        return updated

    async def reset_dead_lettered(self, delivery_id: UUID) -> WebhookDelivery:
        current = await self.get(delivery_id)
        if current.status != DeliveryStatus.DEAD_LETTER:
            raise InvalidStateError(f"Delivery {delivery_id} is not dead-lettered")
        updated = current.model_copy(
            update={
                "status": DeliveryStatus.PENDING,
                "attempts": 0,
                "updated_at": self._clock(),
            }
        )
        self._items[delivery_id] = updated
        self.writes += 1
        return updated

    async def list_by_subscription(
        self, subscription_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        matching = [
            d for d in reversed(self._items.values()) if d.subscription_id == subscription_id
        ]
        return _page(matching, limit, offset), len(matching)

    async def list_by_status(
        self, status: DeliveryStatus, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        matching = [d for d in reversed(self._items.values()) if d.status == status]
        return _page(matching, limit, offset), len(matching)

    async def list_retryable(
        self, *, max_attempts: int, now: datetime, limit: int = 100
    ) -> List[WebhookDelivery]:
        matching = [
            d
            for d in self._items.values()
            if d.status == DeliveryStatus.FAILED
            and d.attempts < max_attempts
            and retry_due_at(d) <= now
            and (self._registry is None or self._registry.is_active(d.subscription_id))
        ]
        matching.sort(key=lambda d: d.updated_at)
        return matching[:limit]

    async def delete_old_succeeded(self, created_before: datetime) -> int:
        stale = [
            d.id
            for d in self._items.values()
            if d.status == DeliveryStatus.SUCCESS and d.created_at < created_before
        ]
        for delivery_id in stale:
            del self._items[delivery_id]
        return len(stale)
