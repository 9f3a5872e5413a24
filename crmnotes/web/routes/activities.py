"""Account activity feed routes."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...activities import DEFAULT_LIMIT, create_activity, list_activities
from ..dependencies import INVALID_JSON, error, json_body, not_found

router = APIRouter()


@router.get("/accounts/{account_id}/activities")
def activities_list(account_id: str, limit: int = DEFAULT_LIMIT):
    try:
        activities = list_activities(account_id, limit)
    except ValueError as exc:
        return error(str(exc))
    if activities is None:
        return not_found("Account")
    return activities


@router.post("/activities")
async def activities_create(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        activity = create_activity(
            body.get("account_id"),
            body.get("type"),
            body.get("title"),
            description=body.get("description"),
            entity_type=body.get("entity_type"),
            entity_id=body.get("entity_id"),
        )
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(activity, status_code=201)
