"""Translate service-layer exceptions into JSON error responses."""
from __future__ import annotations

import structlog
from aiohttp import web

from webhook_service.core.exceptions import (
    AttemptsExhaustedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    WebhookServiceError,
)

logger = structlog.get_logger(__name__)

# checked in order, subclasses first
_STATUS_BY_ERROR: tuple[tuple[type[WebhookServiceError], int, str], ...] = (
    (ValidationError, 400, "validation_error"),
    (NotFoundError, 404, "not_found"),
    (AttemptsExhaustedError, 409, "attempts_exhausted"),
    (InvalidStateError, 409, "invalid_state"),
)


def error_payload(code: str, message: str) -> dict[str, str]:
    return {"error": code, "message": message}


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except WebhookServiceError as exc:
        for error_type, status, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return web.json_response(error_payload(code, str(exc)), status=status)
        logger.exception("Unhandled service error")
        return web.json_response(
            error_payload("internal_error", "Internal server error"), status=500
        )
    except Exception:
        logger.exception("Unhandled error")
        return web.json_response(
            error_payload("internal_error", "Internal server error"), status=500
        )
