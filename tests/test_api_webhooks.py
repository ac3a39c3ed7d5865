from __future__ import annotations

import uuid

import pytest

from webhook_service.services.dispatcher import EVENT_HEADER
from tests.utils import assert_signed


async def _create(service_client, **overrides):
    body = {"url": "https://seller.example.com/hooks", "events": ["order.created"]}
    body.update(overrides)
    resp = await service_client.post("/api/v1/webhooks", json=body)
    assert resp.status == 201, await resp.text()
    return await resp.json()


@pytest.mark.asyncio
async def test_create_returns_secret_once(service_client):
    created = await _create(service_client, events=["order.created", "order.cancelled"])

    assert len(created["secret"]) == 64
    assert created["events"] == ["order.created", "order.cancelled"]
    assert created["is_active"] is True
    assert created["scope"] is None

    resp = await service_client.get(f"/api/v1/webhooks/{created['id']}")
    assert resp.status == 200
    fetched = await resp.json()
    assert "secret" not in fetched
    assert fetched["id"] == created["id"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"url": "not-a-url", "events": ["order.created"]},
        {"url": "https://seller.example.com/hooks", "events": []},
        {"url": "https://seller.example.com/hooks", "events": ["order.teleported"]},
        {"url": "https://seller.example.com/hooks", "events": ["order.created"], "secret": " "},
        {"events": ["order.created"]},
    ],
)
async def test_create_rejects_invalid_payload(service_client, body):
    resp = await service_client.post("/api/v1/webhooks", json=body)
    assert resp.status == 400
    payload = await resp.json()
    assert payload["error"] == "validation_error"
    assert payload["message"]


@pytest.mark.asyncio
async def test_create_rejects_malformed_json(service_client):
    resp = await service_client.post(
        "/api/v1/webhooks", data="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status == 400


@pytest.mark.asyncio
async def test_list_is_scoped_and_paginated(service_client):
    for _ in range(3):
        await _create(service_client, scope="seller-1")
    await _create(service_client)

    resp = await service_client.get("/api/v1/webhooks", params={"scope": "seller-1", "limit": 2})
    assert resp.status == 200
    payload = await resp.json()
    assert payload["total"] == 3
    assert payload["page"] == 1
    assert payload["page_size"] == 2
    assert len(payload["webhooks"]) == 2
    assert all(w["scope"] == "seller-1" for w in payload["webhooks"])
    assert all("secret" not in w for w in payload["webhooks"])

    resp = await service_client.get("/api/v1/webhooks")
    assert (await resp.json())["total"] == 1


@pytest.mark.asyncio
async def test_list_active_only(service_client):
    created = await _create(service_client)
    await _create(service_client, is_active=False)

    resp = await service_client.get("/api/v1/webhooks", params={"active_only": "true"})
    payload = await resp.json()
    assert [w["id"] for w in payload["webhooks"]] == [created["id"]]

    resp = await service_client.get("/api/v1/webhooks", params={"active_only": "maybe"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_update_and_delete(service_client):
    created = await _create(service_client)

    resp = await service_client.put(
        f"/api/v1/webhooks/{created['id']}",
        json={"is_active": False, "events": ["payment.completed"]},
    )
    assert resp.status == 200
    updated = await resp.json()
    assert updated["is_active"] is False
    assert updated["events"] == ["payment.completed"]
    assert updated["url"] == created["url"]

    resp = await service_client.delete(f"/api/v1/webhooks/{created['id']}")
    assert resp.status == 204

    resp = await service_client.get(f"/api/v1/webhooks/{created['id']}")
    assert resp.status == 404
    assert (await resp.json())["error"] == "not_found"


@pytest.mark.asyncio
async def test_unknown_and_malformed_ids(service_client):
    resp = await service_client.get(f"/api/v1/webhooks/{uuid.uuid4()}")
    assert resp.status == 404

    resp = await service_client.put(f"/api/v1/webhooks/{uuid.uuid4()}", json={"is_active": True})
    assert resp.status == 404

    resp = await service_client.delete("/api/v1/webhooks/not-a-uuid")
    assert resp.status == 400


@pytest.mark.asyncio
async def test_published_event_reaches_subscriber(service_client, receiver):
    secret = "test-secret"
    created = await _create(
        service_client, url=receiver.url("seller"), secret=secret, scope="seller-1"
    )

    resp = await service_client.post(
        "/api/v1/events",
        json={"event": "order.created", "payload": {"order_id": "o-1"}, "scope": "seller-1"},
    )
    assert resp.status == 200
    assert await resp.json() == {"delivered": 1, "failed": 0, "total": 1}

    [received] = receiver.received("seller")
    assert received.headers[EVENT_HEADER] == "order.created"
    envelope = assert_signed(received, secret)
    assert envelope["data"] == {"order_id": "o-1"}

    resp = await service_client.get(f"/api/v1/webhooks/{created['id']}/deliveries")
    assert resp.status == 200
    history = await resp.json()
    assert history["total"] == 1
    [delivery] = history["deliveries"]
    assert delivery["status"] == "SUCCESS"
    assert delivery["attempts"] == 1
    assert delivery["status_code"] == 200


@pytest.mark.asyncio
async def test_publish_without_subscribers(service_client, ledger):
    resp = await service_client.post(
        "/api/v1/events", json={"event": "inventory.low", "payload": {"sku": "A-1"}}
    )
    assert resp.status == 200
    assert await resp.json() == {"delivered": 0, "failed": 0, "total": 0}
    assert ledger.writes == 0


@pytest.mark.asyncio
async def test_publish_unknown_event(service_client):
    resp = await service_client.post("/api/v1/events", json={"event": "nope", "payload": {}})
    assert resp.status == 400
