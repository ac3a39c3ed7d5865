from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from webhook_service.core.exceptions import (
    AttemptsExhaustedError,
    HttpError,
    InvalidStateError,
    NotFoundError,
)
from webhook_service.domain.enums import DeliveryStatus, WebhookEvent
from webhook_service.domain.models import backoff_seconds
from webhook_service.services.retry import RetryCoordinator
from tests.utils import make_subscription


@pytest.fixture
def coordinator(registry, ledger, dispatcher):
    return RetryCoordinator(registry, ledger, dispatcher)


async def _failed_delivery(dispatcher, sub):
    with pytest.raises(HttpError) as exc_info:
        await dispatcher.deliver(sub, WebhookEvent.ORDER_CREATED, {"order_id": "o-1"})
    return exc_info.value.delivery


@pytest.mark.parametrize(
    ("attempts", "expected"),
    [(0, 1), (1, 2), (3, 8), (5, 32), (6, 60), (12, 60)],
)
def test_backoff_grows_exponentially_and_is_capped(attempts, expected):
    assert backoff_seconds(attempts) == expected


@pytest.mark.asyncio
async def test_retry_of_succeeded_delivery_makes_no_request(
    coordinator, dispatcher, registry, receiver
):
    sub = await make_subscription(registry, receiver.url("shop"))
    delivered = await dispatcher.deliver(sub, WebhookEvent.ORDER_CREATED, {})

    with pytest.raises(InvalidStateError):
        await coordinator.retry(delivered.id)

    assert len(receiver.requests) == 1


@pytest.mark.asyncio
async def test_retry_until_dead_lettered(coordinator, dispatcher, registry, receiver):
    receiver.respond("shop", 503, "unavailable")
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)
    assert (delivery.status, delivery.attempts) == (DeliveryStatus.FAILED, 1)

    for expected_attempts in (2, 3, 4):
        result = await coordinator.retry(delivery.id)
        assert not result.success
        assert result.error == "HTTP 503: unavailable"
        assert result.delivery.status == DeliveryStatus.FAILED
        assert result.delivery.attempts == expected_attempts

    result = await coordinator.retry(delivery.id)
    assert not result.success
    assert result.delivery.status == DeliveryStatus.DEAD_LETTER
    assert result.delivery.attempts == 5

    with pytest.raises(AttemptsExhaustedError):
        await coordinator.retry(delivery.id)
    assert len(receiver.requests) == 5

    dead, total = await coordinator.list_dead_lettered()
    assert total == 1
    assert dead[0].id == delivery.id


@pytest.mark.asyncio
async def test_retry_succeeds_after_receiver_recovers(coordinator, dispatcher, registry, receiver):
    receiver.respond("shop", 500)
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)

    receiver.respond("shop", 200)
    result = await coordinator.retry(delivery.id)

    assert result.success
    assert result.error is None
    assert result.delivery.status == DeliveryStatus.SUCCESS
    assert result.delivery.attempts == 2
    assert result.delivery.delivered_at is not None


@pytest.mark.asyncio
async def test_dead_letter_retry_resets_attempts(
    coordinator, dispatcher, registry, ledger, receiver
):
    receiver.respond("shop", 500)
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)
    for _ in range(4):
        await coordinator.retry(delivery.id)
    assert (await ledger.get(delivery.id)).status == DeliveryStatus.DEAD_LETTER

    # five fresh attempts after the operator reset
    result = await coordinator.retry_dead_lettered(delivery.id)
    assert not result.success
    assert (result.delivery.status, result.delivery.attempts) == (DeliveryStatus.FAILED, 1)
    for _ in range(3):
        result = await coordinator.retry(delivery.id)
    assert (result.delivery.status, result.delivery.attempts) == (DeliveryStatus.FAILED, 4)
    result = await coordinator.retry(delivery.id)
    assert (result.delivery.status, result.delivery.attempts) == (DeliveryStatus.DEAD_LETTER, 5)

    receiver.respond("shop", 200)
    result = await coordinator.retry_dead_lettered(delivery.id)
    assert result.success
    assert (result.delivery.status, result.delivery.attempts) == (DeliveryStatus.SUCCESS, 1)
    assert len(receiver.requests) == 11


@pytest.mark.asyncio
async def test_dead_letter_retry_requires_dead_lettered_delivery(
    coordinator, dispatcher, registry, receiver
):
    receiver.respond("shop", 500)
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)

    with pytest.raises(InvalidStateError):
        await coordinator.retry_dead_lettered(delivery.id)


@pytest.mark.asyncio
async def test_retry_unknown_delivery(coordinator):
    with pytest.raises(NotFoundError):
        await coordinator.retry(uuid4())
    with pytest.raises(NotFoundError):
        await coordinator.retry_dead_lettered(uuid4())


@pytest.mark.asyncio
async def test_retry_after_subscription_deleted(coordinator, dispatcher, registry, ledger, receiver):
    receiver.respond("shop", 500)
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)
    await registry.delete(sub.id)

    with pytest.raises(NotFoundError):
        await coordinator.retry(delivery.id)
    assert (await ledger.get(delivery.id)).attempts == 1


@pytest.mark.asyncio
async def test_retry_due_waits_for_backoff(coordinator, dispatcher, registry, receiver):
    receiver.respond("shop", 500)
    sub = await make_subscription(registry, receiver.url("shop"))
    delivery = await _failed_delivery(dispatcher, sub)
    receiver.respond("shop", 200)

    sweep = await coordinator.retry_due(delivery.updated_at + timedelta(seconds=1))
    assert (sweep.succeeded, sweep.failed, sweep.skipped) == (0, 0, 0)
    assert len(receiver.requests) == 1

    sweep = await coordinator.retry_due(delivery.updated_at + timedelta(seconds=3))
    assert (sweep.succeeded, sweep.failed, sweep.skipped) == (1, 0, 0)
    assert len(receiver.requests) == 2


@pytest.mark.asyncio
async def test_retry_due_skips_inactive_and_deleted_subscriptions(
    coordinator, dispatcher, registry, ledger, receiver
):
    receiver.respond("inactive", 500)
    receiver.respond("deleted", 500)
    receiver.respond("live", 500)
    inactive = await make_subscription(registry, receiver.url("inactive"))
    deleted = await make_subscription(registry, receiver.url("deleted"))
    live = await make_subscription(registry, receiver.url("live"))
    latest = None
    for sub in (inactive, deleted, live):
        latest = await _failed_delivery(dispatcher, sub)
    await registry.update(inactive.id, is_active=False)
    await registry.delete(deleted.id)

    sweep = await coordinator.retry_due(latest.updated_at + timedelta(minutes=5))

    # neither comes back from the ledger, so nothing is skipped
    assert (sweep.succeeded, sweep.failed, sweep.skipped) == (0, 1, 0)
    assert len(receiver.received("live")) == 2
    assert len(receiver.received("inactive")) == 1
    assert len(receiver.received("deleted")) == 1


@pytest.mark.asyncio
async def test_retry_due_is_not_starved_by_orphaned_deliveries(
    coordinator, dispatcher, registry, ledger, receiver
):
    receiver.respond("gone", 500)
    receiver.respond("live", 500)
    gone = await make_subscription(registry, receiver.url("gone"))
    live = await make_subscription(registry, receiver.url("live"))
    orphans = [await _failed_delivery(dispatcher, gone) for _ in range(3)]
    delivery = await _failed_delivery(dispatcher, live)
    await registry.delete(gone.id)
    receiver.respond("live", 200)

    # the orphans are the oldest records and outnumber the batch
    sweep = await coordinator.retry_due(delivery.updated_at + timedelta(minutes=5), limit=2)

    assert (sweep.succeeded, sweep.failed, sweep.skipped) == (1, 0, 0)
    assert (await ledger.get(delivery.id)).status == DeliveryStatus.SUCCESS
    for orphan in orphans:
        assert (await ledger.get(orphan.id)).status == DeliveryStatus.FAILED
