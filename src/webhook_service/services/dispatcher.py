"""Single-attempt webhook delivery: sign, POST, classify, record."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from webhook_service.core.exceptions import (
    DeliveryError,
    HttpError,
    InvalidStateError,
    TransportError,
)
from webhook_service.domain.enums import DeliveryStatus, WebhookEvent
from webhook_service.domain.models import WebhookDelivery, WebhookSubscription
from webhook_service.otel import get_tracer
from webhook_service.repositories.protocols import DeliveryLedger
from webhook_service.services.signing import serialize_envelope, sign
from webhook_service.services.state_machine import validate_delivery_transition

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

EVENT_HEADER = "X-Webhook-Event"
SIGNATURE_HEADER = "X-Webhook-Signature"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso_timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_envelope(event: WebhookEvent, payload: Any, timestamp: datetime) -> dict[str, Any]:
    return {"event": event.value, "data": payload, "timestamp": _iso_timestamp(timestamp)}


class WebhookDispatcher:
    """Performs exactly one HTTP attempt per :meth:`deliver` call.

    Every call ends with exactly one ``record_attempt`` on the ledger, which
    increments the attempt count whatever the outcome. A failed attempt that
    brings the count to ``max_attempts`` is recorded as DEAD_LETTER instead of
    FAILED.
    """

    def __init__(
        self,
        ledger: DeliveryLedger,
        session: ClientSession,
        *,
        timeout_seconds: float = 30.0,
        max_attempts: int = 5,
        response_max_chars: int = 1000,
        user_agent: str = "Marketplace-Webhooks/1.0",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ledger = ledger
        self._session = session
        self._timeout = ClientTimeout(total=timeout_seconds)
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max_attempts
        self._response_max_chars = response_max_chars
        self._user_agent = user_agent
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def deliver(
        self,
        subscription: WebhookSubscription,
        event: WebhookEvent,
        payload: Any,
        *,
        delivery: WebhookDelivery | None = None,
    ) -> WebhookDelivery:
        """Deliver ``payload`` to ``subscription`` and return the updated record.

        Pass ``delivery`` to attempt an existing record again (retries); the
        record is updated in place. Raises :class:`HttpError` or
        :class:`TransportError` after the failure has been recorded.
        """
        if delivery is None:
            delivery = await self._ledger.create(
                subscription_id=subscription.id, event=event, payload=payload
            )
        elif delivery.status not in (DeliveryStatus.PENDING, DeliveryStatus.FAILED):
            raise InvalidStateError(
                f"Delivery {delivery.id} cannot be attempted in status {delivery.status.value}"
            )
        log = logger.bind(
            delivery_id=str(delivery.id),
            subscription_id=str(subscription.id),
            webhook_event=event.value,
            attempt=delivery.attempts + 1,
        )

        body = serialize_envelope(build_envelope(event, payload, self._clock()))
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            EVENT_HEADER: event.value,
            SIGNATURE_HEADER: sign(body, subscription.secret),
            DELIVERY_ID_HEADER: str(delivery.id),
        }

        status_code: int | None = None
        with tracer.start_as_current_span("webhook.deliver") as span:
            span.set_attribute("webhook.event", event.value)
            span.set_attribute("webhook.delivery_id", str(delivery.id))
            try:
                async with self._session.post(
                    subscription.url,
                    data=body,
                    headers=headers,
                    timeout=self._timeout,
                ) as resp:
                    text = await resp.text(errors="replace")
                    status_code = resp.status
            except asyncio.TimeoutError:
                text = f"Request timed out after {self._timeout_seconds:g}s"
            except ClientError as exc:
                text = str(exc) or type(exc).__name__
            except Exception as exc:
                # e.g. a closed session; the attempt still counts as a transport failure
                text = f"{type(exc).__name__}: {exc}"
            if status_code is not None:
                span.set_attribute("http.status_code", status_code)

        response_text = text[: self._response_max_chars]
        succeeded = status_code is not None and 200 <= status_code < 300
        if succeeded:
            new_status = DeliveryStatus.SUCCESS
        elif delivery.attempts + 1 >= self._max_attempts:
            new_status = DeliveryStatus.DEAD_LETTER
        else:
            new_status = DeliveryStatus.FAILED
        validate_delivery_transition(delivery.status, new_status)

        updated = await self._ledger.record_attempt(
            delivery.id,
            expected_attempts=delivery.attempts,
            status=new_status,
            status_code=status_code,
            response=response_text,
            delivered_at=self._clock() if succeeded else None,
        )

        if succeeded:
            log.info("webhook delivered", status_code=status_code)
            return updated

        error: DeliveryError
        if status_code is None:
            error = TransportError(text, delivery=updated)
        else:
            error = HttpError(
                f"HTTP {status_code}: {response_text}",
                delivery=updated,
                status_code=status_code,
            )
        log.warning(
            "webhook delivery failed",
            status_code=status_code,
            status=new_status.value,
            error=str(error),
        )
        if new_status == DeliveryStatus.DEAD_LETTER:
            log.error("webhook delivery dead-lettered", attempts=updated.attempts)
        raise error
