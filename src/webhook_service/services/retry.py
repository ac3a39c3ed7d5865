"""Manual, scheduled and dead-letter retries of recorded deliveries."""
from __future__ import annotations

from datetime import datetime
from typing import List, Tuple
from uuid import UUID

import structlog

from webhook_service.core.exceptions import (
    AttemptsExhaustedError,
    DeliveryError,
    InvalidStateError,
    NotFoundError,
)
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.models import (
    RetryResult,
    RetrySweep,
    WebhookDelivery,
    WebhookSubscription,
)
from webhook_service.repositories.protocols import DeliveryLedger, SubscriptionRegistry
from webhook_service.services.dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)


class RetryCoordinator:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        ledger: DeliveryLedger,
        dispatcher: WebhookDispatcher,
    ):
        self._registry = registry
        self._ledger = ledger
        self._dispatcher = dispatcher

    @property
    def max_attempts(self) -> int:
        return self._dispatcher.max_attempts

    async def retry(self, delivery_id: UUID) -> RetryResult:
        """Make one more attempt on a PENDING or FAILED delivery below the ceiling.

        Raises NotFoundError, InvalidStateError (already delivered) or
        AttemptsExhaustedError (use :meth:`retry_dead_lettered`).
        """
        delivery = await self._ledger.get(delivery_id)
        if delivery.status == DeliveryStatus.SUCCESS:
            raise InvalidStateError("Delivery already succeeded")
        if (
            delivery.status == DeliveryStatus.DEAD_LETTER
            or delivery.attempts >= self.max_attempts
        ):
            raise AttemptsExhaustedError("Maximum retry attempts reached")
        subscription = await self._registry.get(delivery.subscription_id)
        return await self._redeliver(subscription, delivery)

    async def list_dead_lettered(
        self, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        return await self._ledger.list_by_status(
            DeliveryStatus.DEAD_LETTER, limit=limit, offset=offset
        )

    async def retry_dead_lettered(self, delivery_id: UUID) -> RetryResult:
        """Operator retry: reset the attempt count to 0 and dispatch again."""
        delivery = await self._ledger.get(delivery_id)
        if delivery.status != DeliveryStatus.DEAD_LETTER:
            raise InvalidStateError("Delivery is not dead-lettered")
        # resolve the subscription first so a deleted one leaves the record untouched
        subscription = await self._registry.get(delivery.subscription_id)
        reset = await self._ledger.reset_dead_lettered(delivery_id)
        logger.info("dead-lettered delivery reset", delivery_id=str(delivery_id))
        return await self._redeliver(subscription, reset)

    async def retry_due(self, now: datetime, *, limit: int = 100) -> RetrySweep:
        """Retry FAILED deliveries whose backoff has elapsed, oldest first."""
        sweep = RetrySweep()
        candidates = await self._ledger.list_retryable(
            max_attempts=self.max_attempts, now=now, limit=limit
        )
        for delivery in candidates:
            # the subscription may have gone away since the ledger was queried
            try:
                subscription = await self._registry.get(delivery.subscription_id)
            except NotFoundError:
                sweep.skipped += 1
                continue
            if not subscription.is_active:
                sweep.skipped += 1
                continue
            try:
                await self._dispatcher.deliver(
                    subscription, delivery.event, delivery.payload, delivery=delivery
                )
            except DeliveryError:
                sweep.failed += 1
            except InvalidStateError:
                # picked up concurrently by a manual retry
                sweep.skipped += 1
            else:
                sweep.succeeded += 1
        return sweep

    async def _redeliver(
        self, subscription: WebhookSubscription, delivery: WebhookDelivery
    ) -> RetryResult:
        try:
            updated = await self._dispatcher.deliver(
                subscription, delivery.event, delivery.payload, delivery=delivery
            )
        except DeliveryError as exc:
            return RetryResult(success=False, error=str(exc), delivery=exc.delivery)
        return RetryResult(success=True, delivery=updated)
