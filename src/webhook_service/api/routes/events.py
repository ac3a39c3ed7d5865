"""Internal endpoint through which other marketplace services raise events."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import read_model
from webhook_service.domain.dto import PublishEventDTO
from webhook_service.services.dependencies import get_publisher

routes = web.RouteTableDef()


@routes.post("/api/v1/events")
async def publish_event(request: web.Request):
    dto = await read_model(request, PublishEventDTO)
    publisher = await get_publisher(request)
    result = await publisher.publish(dto.event, dto.payload, dto.scope)
    return web.json_response(result.model_dump(mode="json"))
