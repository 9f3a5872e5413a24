"""Todo routes."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...todos import (
    UPDATABLE_FIELDS,
    create_todo,
    get_todo,
    link_note,
    list_todos,
    list_trashed_todos,
    purge_todo,
    restore_todo,
    toggle_pin,
    trash_todo,
    unlink_note,
    update_todo,
)
from ..dependencies import INVALID_JSON, error, json_body, not_found, pick

router = APIRouter()


@router.get("/todos")
def todos_list(status: str | None = None):
    try:
        return list_todos(status)
    except ValueError as exc:
        return error(str(exc))


@router.get("/todos/deleted")
def todos_trash():
    return list_trashed_todos()


@router.post("/todos")
async def todos_create(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        todo = create_todo(
            body.get("title"),
            description=body.get("description") or "",
            status=body.get("status"),
            priority=body.get("priority"),
            due_date=body.get("due_date"),
            account_id=body.get("account_id"),
            note_id=body.get("note_id"),
        )
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(todo, status_code=201)


@router.get("/todos/{todo_id}")
def todos_detail(todo_id: str):
    todo = get_todo(todo_id)
    if not todo:
        return not_found("Todo")
    return todo


@router.put("/todos/{todo_id}")
async def todos_update(request: Request, todo_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        todo = update_todo(todo_id, **pick(body, UPDATABLE_FIELDS))
    except ValueError as exc:
        return error(str(exc))
    if not todo:
        return not_found("Todo")
    return todo


@router.delete("/todos/{todo_id}")
def todos_delete(todo_id: str):
    if not trash_todo(todo_id):
        return not_found("Todo")
    return {"message": "Todo moved to trash"}


@router.post("/todos/{todo_id}/restore")
def todos_restore(todo_id: str):
    if not restore_todo(todo_id):
        return not_found("Todo")
    return {"message": "Todo restored"}


@router.delete("/todos/{todo_id}/permanent")
def todos_purge(todo_id: str):
    if not purge_todo(todo_id):
        return not_found("Todo")
    return {"message": "Todo permanently deleted"}


@router.post("/todos/{todo_id}/pin")
def todos_pin(todo_id: str):
    pinned = toggle_pin(todo_id)
    if pinned is None:
        return not_found("Todo")
    return {"pinned": pinned}


@router.post("/todos/{todo_id}/notes/{note_id}")
def todos_link_note(todo_id: str, note_id: str):
    if not link_note(todo_id, note_id):
        return not_found("Todo or note")
    return {"message": "Note linked"}


@router.delete("/todos/{todo_id}/notes/{note_id}")
def todos_unlink_note(todo_id: str, note_id: str):
    if not unlink_note(todo_id, note_id):
        return not_found("Link")
    return {"message": "Note unlinked"}
