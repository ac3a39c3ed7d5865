"""Request payloads accepted by the webhook administrative API."""
from __future__ import annotations

from typing import Any

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from webhook_service.core.exceptions import ValidationError
from webhook_service.domain.enums import WebhookEvent

_URL_ADAPTER: TypeAdapter[AnyHttpUrl] = TypeAdapter(AnyHttpUrl)


class SubscriptionCreateDTO(BaseModel):
    url: str
    events: list[WebhookEvent] = Field(min_length=1)
    secret: str | None = None
    is_active: bool = True
    scope: str | None = None


class SubscriptionUpdateDTO(BaseModel):
    url: str | None = None
    events: list[WebhookEvent] | None = Field(default=None, min_length=1)
    secret: str | None = None
    is_active: bool | None = None


class PublishEventDTO(BaseModel):
    event: WebhookEvent
    payload: Any = None
    scope: str | None = None


def validate_target_url(url: str) -> str:
    """Return ``url`` unchanged if it is an absolute http(s) URL with a host."""
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid webhook URL: {url!r}") from exc
    return url


def normalize_events(events: list[WebhookEvent]) -> tuple[WebhookEvent, ...]:
    """Drop duplicates while keeping the first occurrence order."""
    normalized = tuple(dict.fromkeys(WebhookEvent(e) for e in events))
    if not normalized:
        raise ValidationError("events must be a non-empty list")
    return normalized


def validate_secret(secret: str) -> str:
    if not secret.strip():
        raise ValidationError("Webhook secret must not be empty")
    return secret


def parse_event(value: WebhookEvent | str) -> WebhookEvent:
    try:
        return WebhookEvent(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown webhook event: {value}") from exc
