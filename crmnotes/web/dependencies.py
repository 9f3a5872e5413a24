"""Request helpers shared by the JSON routers."""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


async def json_body(request: Request) -> dict[str, Any] | None:
    """Parse the request body as a JSON object; None if it is not one."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def not_found(what: str) -> JSONResponse:
    return error(f"{what} not found", 404)


INVALID_JSON = "Invalid JSON"


def pick(body: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    """The subset of *body* whose keys are in *keys*."""
    return {k: v for k, v in body.items() if k in keys}
