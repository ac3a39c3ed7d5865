"""Webhook domain primitives."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from webhook_service.domain.enums import DeliveryStatus, WebhookEvent


class WebhookSubscription(BaseModel):
    """Read-only snapshot of a subscription as stored in the registry."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    url: str
    events: tuple[WebhookEvent, ...] = ()
    secret: str
    is_active: bool = True
    scope: str | None = None
    created_at: datetime
    updated_at: datetime

    def matches(self, event: WebhookEvent, scope: str | None) -> bool:
        return self.is_active and event in self.events and self.scope == scope


class WebhookDelivery(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    subscription_id: UUID
    event: WebhookEvent
    payload: Any = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    status_code: int | None = None
    response: str | None = None
    attempts: int = 0
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PublishResult(BaseModel):
    delivered: int = 0
    failed: int = 0
    total: int = 0


class RetryResult(BaseModel):
    success: bool
    error: str | None = None
    delivery: WebhookDelivery | None = None


class RetrySweep(BaseModel):
    """Outcome of one scheduled retry pass."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


RETRY_BACKOFF_MAX_SECONDS = 60
RETRY_BACKOFF_MAX_EXPONENT = 6


def backoff_seconds(attempts: int) -> int:
    """Delay before the scheduled sweep picks a FAILED delivery up again."""
    return min(RETRY_BACKOFF_MAX_SECONDS, 2 ** min(attempts, RETRY_BACKOFF_MAX_EXPONENT))


def retry_due_at(delivery: WebhookDelivery) -> datetime:
    return delivery.updated_at + timedelta(seconds=backoff_seconds(delivery.attempts))
