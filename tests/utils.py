from __future__ import annotations

import json
from typing import Any

from webhook_service.domain.enums import WebhookEvent
from webhook_service.domain.models import WebhookSubscription
from webhook_service.repositories.protocols import SubscriptionRegistry
from webhook_service.services.dispatcher import SIGNATURE_HEADER
from webhook_service.services.signing import verify_signature

TEST_SECRET = "test-secret"


async def make_subscription(
    registry: SubscriptionRegistry,
    url: str,
    *,
    events: tuple[WebhookEvent, ...] = (WebhookEvent.ORDER_CREATED,),
    secret: str = TEST_SECRET,
    is_active: bool = True,
    scope: str | None = None,
) -> WebhookSubscription:
    """Insert a subscription directly, bypassing service-level validation."""
    return await registry.create(
        url=url, events=events, secret=secret, is_active=is_active, scope=scope
    )


def assert_signed(received: Any, secret: str = TEST_SECRET) -> dict[str, Any]:
    """Check the signature header against the raw body and return the envelope."""
    assert verify_signature(received.body, secret, received.headers[SIGNATURE_HEADER])
    return json.loads(received.body.decode("utf-8"))
