"""Helper utilities for API handlers."""
from __future__ import annotations

from typing import Any, Type, TypeVar
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from webhook_service.core.exceptions import ValidationError

TModel = TypeVar("TModel", bound=BaseModel)


def parse_uuid(value: str, label: str) -> UUID:
    try:
        uuid_str = value if isinstance(value, str) else str(value)
        return UUID(uuid_str)
    except (ValueError, TypeError) as exc:
        raise ValidationError(f"Invalid {label}") from exc


def parse_bool(value: str | None, label: str, *, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    lowered = value.lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError(f"Invalid {label}")


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    query = request.rel_url.query
    try:
        limit = int(query.get("limit", str(default_limit)))
        offset = int(query.get("offset", "0"))
    except ValueError as exc:
        raise ValidationError("limit and offset must be integers") from exc
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    if offset < 0:
        offset = 0
    return limit, offset


def paginated_response(
    items: list[Any],
    *,
    limit: int,
    offset: int,
    key: str,
    total: int,
) -> dict[str, Any]:
    page = offset // limit + 1 if limit else 1
    return {
        key: items,
        "total": total,
        "page": page,
        "page_size": limit,
    }


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse the JSON body, raising ValidationError on anything but an object."""
    try:
        data = await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON payload") from exc
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


async def read_model(request: web.Request, model: Type[TModel]) -> TModel:
    body = await read_json(request)
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValidationError(errors) from exc
