"""Webhook delivery inspection and retry endpoints."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import paginated_response, pagination_params, parse_uuid
from webhook_service.domain.models import RetryResult
from webhook_service.services.dependencies import get_context, get_retry_coordinator

routes = web.RouteTableDef()


def _retry_payload(result: RetryResult) -> dict:
    return result.model_dump(mode="json")


# registered before /{delivery_id} so "dead-letter" is not parsed as an id
@routes.get("/api/v1/webhook-deliveries/dead-letter")
async def list_dead_lettered(request: web.Request):
    limit, offset = pagination_params(request)
    coordinator = await get_retry_coordinator(request)
    items, total = await coordinator.list_dead_lettered(limit=limit, offset=offset)
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/webhook-deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    _, ledger, _ = get_context(request.app).require()
    delivery = await ledger.get(delivery_id)
    return web.json_response(delivery.model_dump(mode="json"))


@routes.post("/api/v1/webhook-deliveries/{delivery_id}/retry")
async def retry_delivery(request: web.Request):
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    coordinator = await get_retry_coordinator(request)
    result = await coordinator.retry(delivery_id)
    return web.json_response(_retry_payload(result))


@routes.post("/api/v1/webhook-deliveries/{delivery_id}/dead-letter/retry")
async def retry_dead_lettered(request: web.Request):
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    coordinator = await get_retry_coordinator(request)
    result = await coordinator.retry_dead_lettered(delivery_id)
    return web.json_response(_retry_payload(result))
