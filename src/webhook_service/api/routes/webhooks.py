"""Webhook subscription endpoints."""
from __future__ import annotations

from typing import Any

from aiohttp import web

from webhook_service.api.utils import (
    paginated_response,
    pagination_params,
    parse_bool,
    parse_uuid,
    read_model,
)
from webhook_service.domain.dto import SubscriptionCreateDTO, SubscriptionUpdateDTO
from webhook_service.domain.models import WebhookSubscription
from webhook_service.services.dependencies import get_subscription_service

routes = web.RouteTableDef()


def subscription_payload(
    sub: WebhookSubscription, *, include_secret: bool = False
) -> dict[str, Any]:
    """Secrets are only echoed back when the subscription is created."""
    exclude = None if include_secret else {"secret"}
    return sub.model_dump(mode="json", exclude=exclude)


@routes.get("/api/v1/webhooks")
async def list_webhooks(request: web.Request):
    query = request.rel_url.query
    scope = query.get("scope") or None
    active_only = parse_bool(query.get("active_only"), "active_only")
    limit, offset = pagination_params(request)
    service = await get_subscription_service(request)
    items, total = await service.list_subscriptions(
        scope, active_only=active_only, limit=limit, offset=offset
    )
    payload = paginated_response(
        [subscription_payload(item) for item in items],
        limit=limit,
        offset=offset,
        key="webhooks",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/webhooks")
async def create_webhook(request: web.Request):
    dto = await read_model(request, SubscriptionCreateDTO)
    service = await get_subscription_service(request)
    sub = await service.create_subscription(dto)
    return web.json_response(subscription_payload(sub, include_secret=True), status=201)


@routes.get("/api/v1/webhooks/{webhook_id}")
async def get_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_subscription_service(request)
    sub = await service.get_subscription(webhook_id)
    return web.json_response(subscription_payload(sub))


@routes.put("/api/v1/webhooks/{webhook_id}")
async def update_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    dto = await read_model(request, SubscriptionUpdateDTO)
    service = await get_subscription_service(request)
    sub = await service.update_subscription(webhook_id, dto)
    return web.json_response(subscription_payload(sub))


@routes.delete("/api/v1/webhooks/{webhook_id}")
async def delete_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_subscription_service(request)
    await service.delete_subscription(webhook_id)
    return web.Response(status=204)


@routes.get("/api/v1/webhooks/{webhook_id}/deliveries")
async def list_webhook_deliveries(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    limit, offset = pagination_params(request)
    service = await get_subscription_service(request)
    items, total = await service.get_delivery_history(webhook_id, limit=limit, offset=offset)
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)
