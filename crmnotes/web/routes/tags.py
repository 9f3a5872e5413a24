"""Tag routes, including tags on a note."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...tags import (
    DuplicateTagError,
    add_tag_to_note,
    create_tag,
    delete_tag,
    list_note_tags,
    list_tags,
    remove_tag_from_note,
    update_tag,
)
from ..dependencies import INVALID_JSON, error, json_body, not_found

router = APIRouter()


@router.get("/tags")
def tags_list():
    return list_tags()


@router.post("/tags")
async def tags_create(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        tag = create_tag(body.get("name"), body.get("color"))
    except DuplicateTagError as exc:
        return error(str(exc), 409)
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(tag, status_code=201)


@router.put("/tags/{tag_id}")
async def tags_update(request: Request, tag_id: str):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        tag = update_tag(tag_id, name=body.get("name"), color=body.get("color"))
    except DuplicateTagError as exc:
        return error(str(exc), 409)
    except ValueError as exc:
        return error(str(exc))
    if not tag:
        return not_found("Tag")
    return tag


@router.delete("/tags/{tag_id}")
def tags_delete(tag_id: str):
    if not delete_tag(tag_id):
        return not_found("Tag")
    return {"message": "Tag deleted"}


@router.get("/notes/{note_id}/tags")
def note_tags_list(note_id: str):
    tags = list_note_tags(note_id)
    if tags is None:
        return not_found("Note")
    return tags


@router.post("/notes/{note_id}/tags/{tag_id}")
def note_tags_add(note_id: str, tag_id: str):
    if not add_tag_to_note(note_id, tag_id):
        return not_found("Note or tag")
    return {"message": "Tag added"}


@router.delete("/notes/{note_id}/tags/{tag_id}")
def note_tags_remove(note_id: str, tag_id: str):
    if not remove_tag_from_note(note_id, tag_id):
        return not_found("Tag link")
    return {"message": "Tag removed"}
