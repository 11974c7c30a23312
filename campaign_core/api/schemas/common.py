from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies use camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def success(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Response envelope for successful calls."""
    payload: dict[str, Any] = {"success": True, "data": data}
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


def failure(error: str, message: str, details: Any | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "error": error, "message": message}
    if details is not None:
        payload["details"] = details
    return payload
