"""PostgreSQL-backed subscription registry and delivery ledger."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from webhook_service.core.exceptions import (
    ConcurrentAttemptError,
    InvalidStateError,
    NotFoundError,
)
from webhook_service.domain.enums import DeliveryStatus, WebhookEvent
from webhook_service.domain.models import (
    RETRY_BACKOFF_MAX_EXPONENT,
    RETRY_BACKOFF_MAX_SECONDS,
    WebhookDelivery,
    WebhookSubscription,
)
from webhook_service.repositories.base import BaseRepository

_UPDATABLE_SUBSCRIPTION_FIELDS = ("url", "events", "secret", "is_active")


class WebhookSubscriptionRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookSubscription:
        return WebhookSubscription.model_validate(dict(record))

    async def create(
        self,
        *,
        url: str,
        events: tuple[WebhookEvent, ...],
        secret: str,
        is_active: bool,
        scope: str | None,
    ) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_subscriptions (url, events, secret, is_active, scope)
            VALUES ($1, $2::text[], $3, $4, $5)
            RETURNING *
            """,
            url,
            [e.value for e in events],
            secret,
            is_active,
            scope,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, subscription_id: UUID) -> WebhookSubscription:
        record = await self._fetchrow(
            "SELECT * FROM webhook_subscriptions WHERE id = $1",
            subscription_id,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def update(self, subscription_id: UUID, **changes: Any) -> WebhookSubscription:
        assignments: list[str] = []
        values: list[Any] = [subscription_id]
        for field_name in _UPDATABLE_SUBSCRIPTION_FIELDS:
            if field_name not in changes:
                continue
            value = changes[field_name]
            if field_name == "events":
                values.append([e.value for e in value])
                assignments.append(f"events = ${len(values)}::text[]")
            else:
                values.append(value)
                assignments.append(f"{field_name} = ${len(values)}")
        if not assignments:
            return await self.get(subscription_id)
        record = await self._fetchrow(
            f"""
            UPDATE webhook_subscriptions
            SET {", ".join(assignments)},
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def delete(self, subscription_id: UUID) -> None:
        record = await self._fetchrow(
            "DELETE FROM webhook_subscriptions WHERE id = $1 RETURNING id",
            subscription_id,
        )
        if record is None:
            raise NotFoundError("Webhook not found")

    async def list_by_scope(
        self,
        scope: str | None,
        *,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookSubscription], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_subscriptions
            WHERE scope IS NOT DISTINCT FROM $1
              AND (NOT $2 OR is_active)
            ORDER BY created_at DESC
            LIMIT $3 OFFSET $4
            """,
            scope,
            active_only,
            limit,
            offset,
        )
        items: List[WebhookSubscription] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(WebhookSubscription.model_validate(rec_dict))
        if total is None:
            total = await self._fetchval(
                """
                SELECT COUNT(*) FROM webhook_subscriptions
                WHERE scope IS NOT DISTINCT FROM $1 AND (NOT $2 OR is_active)
                """,
                scope,
                active_only,
            )
        return items, int(total)

    async def list_active_matching(
        self, event: WebhookEvent, scope: str | None
    ) -> List[WebhookSubscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhook_subscriptions
            WHERE is_active = true
              AND $1 = ANY(events)
              AND scope IS NOT DISTINCT FROM $2
            ORDER BY created_at ASC
            """,
            event.value,
            scope,
        )
        return [self._to_model(r) for r in records]


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record) -> WebhookDelivery:
        return WebhookDelivery.model_validate(WebhookDeliveryRepository._normalize(dict(record)))

    @staticmethod
    def _normalize(payload: dict[str, Any]) -> dict[str, Any]:
        value = payload.get("payload")
        if isinstance(value, str):
            payload["payload"] = json.loads(value)
        return payload

    def _to_page(self, records: Any) -> Tuple[List[WebhookDelivery], int | None]:
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            rec_dict = dict(rec)
            total_value = rec_dict.pop("total_count", None)
            if total_value is not None:
                total = int(total_value)
            items.append(WebhookDelivery.model_validate(self._normalize(rec_dict)))
        return items, total

    async def create(
        self,
        *,
        subscription_id: UUID,
        event: WebhookEvent,
        payload: Any,
    ) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (subscription_id, event, payload, status, attempts)
            VALUES ($1, $2, $3::jsonb, 'PENDING', 0)
            RETURNING *
            """,
            subscription_id,
            event.value,
            json.dumps(payload, default=str),
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow(
            "SELECT * FROM webhook_deliveries WHERE id = $1",
            delivery_id,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def _exists(self, delivery_id: UUID) -> bool:
        value = await self._fetchval(
            "SELECT EXISTS (SELECT 1 FROM webhook_deliveries WHERE id = $1)",
            delivery_id,
        )
        return bool(value)

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
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = $2,
                status_code = $3,
                response = $4,
                delivered_at = COALESCE($5, delivered_at),
                attempts = attempts + 1,
                updated_at = now()
            WHERE id = $1
              AND attempts = $6
              AND status <> 'SUCCESS'
            RETURNING *
            """,
            delivery_id,
            status.value,
            status_code,
            response,
            delivered_at,
            expected_attempts,
        )
        if record is None:
            if not await self._exists(delivery_id):
                raise NotFoundError("Webhook delivery not found")
            raise ConcurrentAttemptError(
                f"Delivery {delivery_id} was updated by another attempt"
            )
        return self._to_model(record)

    async def reset_dead_lettered(self, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'PENDING',
                attempts = 0,
                updated_at = now()
            WHERE id = $1
              AND status = 'DEAD_LETTER'
            RETURNING *
            """,
            delivery_id,
        )
        if record is None:
            if not await self._exists(delivery_id):
                raise NotFoundError("Webhook delivery not found")
            raise InvalidStateError(f"Delivery {delivery_id} is not dead-lettered")
        return self._to_model(record)

    async def list_by_subscription(
        self, subscription_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE subscription_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            subscription_id,
            limit,
            offset,
        )
        items, total = self._to_page(records)
        if total is None:
            total = await self._fetchval(
                "SELECT COUNT(*) FROM webhook_deliveries WHERE subscription_id = $1",
                subscription_id,
            )
        return items, int(total)

    async def list_by_status(
        self, status: DeliveryStatus, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookDelivery], int]:
        records = await self._fetch(
            """
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE status = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            status.value,
            limit,
            offset,
        )
        items, total = self._to_page(records)
        if total is None:
            total = await self._fetchval(
                "SELECT COUNT(*) FROM webhook_deliveries WHERE status = $1",
                status.value,
            )
        return items, int(total)

    async def list_retryable(
        self, *, max_attempts: int, now: datetime, limit: int = 100
    ) -> List[WebhookDelivery]:
        # backoff mirrors domain.models.backoff_seconds
        records = await self._fetch(
            """
            SELECT d.*
            FROM webhook_deliveries d
            JOIN webhook_subscriptions s
              ON s.id = d.subscription_id AND s.is_active
            WHERE d.status = 'FAILED'
              AND d.attempts < $1
              AND d.updated_at + make_interval(
                    secs => LEAST($3::double precision, power(2, LEAST(d.attempts, $4::int)))
                  ) <= $2
            ORDER BY d.updated_at ASC
            LIMIT $5
            """,
            max_attempts,
            now,
            float(RETRY_BACKOFF_MAX_SECONDS),
            RETRY_BACKOFF_MAX_EXPONENT,
            limit,
        )
        return [self._to_model(r) for r in records]

    async def delete_old_succeeded(self, created_before: datetime) -> int:
        """Purge succeeded deliveries older than *created_before*. Returns count."""
        result = await self._execute(
            "DELETE FROM webhook_deliveries WHERE status = 'SUCCESS' AND created_at < $1",
            created_before,
        )
        return self._affected_rows(result)
