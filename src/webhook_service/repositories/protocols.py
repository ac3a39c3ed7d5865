"""Storage contracts consumed by the delivery services."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Protocol, Tuple
from uuid import UUID

from webhook_service.domain.enums import DeliveryStatus, WebhookEvent
from webhook_service.domain.models import WebhookDelivery, WebhookSubscription


class SubscriptionRegistry(Protocol):
    async def create(
        self,
        *,
        url: str,
        events: tuple[WebhookEvent, ...],
        secret: str,
        is_active: bool,
        scope: str | None,
    ) -> WebhookSubscription: ...

    async def get(self, subscription_id: UUID) -> WebhookSubscription: ...

    async def update(self, subscription_id: UUID, **changes: Any) -> WebhookSubscription: ...

    async def delete(self, subscription_id: UUID) -> None: ...

    async def list_by_scope(
        self,
        scope: str | None,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookSubscription], int]: ...

    async def list_active_matching(
        self, event: WebhookEvent, scope: str | None
    ) -> List[WebhookSubscription]: ...


class DeliveryLedger(Protocol):
    async def create(
        self,
        *,
        subscription_id: UUID,
        event: WebhookEvent,
        payload: Any,
    ) -> WebhookDelivery: ...

    async def get(self, delivery_id: UUID) -> WebhookDelivery: ...

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
        """Store the outcome of one attempt and increment ``attempts``.

        The write only applies while the stored attempt count still equals
        ``expected_attempts``; otherwise ``ConcurrentAttemptError`` is raised.
        """
        ...

    async def reset_dead_lettered(self, delivery_id: UUID) -> WebhookDelivery:
        """Move a DEAD_LETTER delivery back to PENDING with ``attempts = 0``."""
        ...

    async def list_by_subscription(
        self, subscription_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]: ...

    async def list_by_status(
        self, status: DeliveryStatus, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]: ...

    async def list_retryable(
        self, *, max_attempts: int, now: datetime, limit: int = 100
    ) -> List[WebhookDelivery]:
        """FAILED deliveries below ``max_attempts`` that are due at ``now``.

        Only deliveries whose backoff has elapsed and whose subscription still
        exists and is active are returned, least recently attempted first.
        """
        ...

    async def delete_old_succeeded(self, created_before: datetime) -> int: ...
