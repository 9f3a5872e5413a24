"""Note routes: CRUD, trash, pin/archive, attachments and quick capture.

Saving a note with participant lists schedules contact extraction as a
background task; the response never waits on it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from ...attachments import (
    delete_attachment,
    get_attachment,
    list_attachments,
    max_upload_bytes,
    save_attachment,
    stored_path,
)
from ...contacts import extract_from_note
from ...notes import (
    UPDATABLE_FIELDS,
    create_note,
    empty_trash,
    get_note,
    list_archived_notes,
    list_notes,
    list_trashed_notes,
    purge_note,
    restore_note,
    toggle_archive,
    toggle_pin,
    trash_note,
    update_note,
)
from ...quick_capture import capture
from ..dependencies import INVALID_JSON, error, json_body, not_found, pick

log = logging.getLogger(__name__)

router = APIRouter()

_PARTICIPANT_FIELDS = ("internal_participants", "external_participants")


def _schedule_extraction(background: BackgroundTasks, note: dict) -> None:
    internal = note.get("internal_participants") or []
    external = note.get("external_participants") or []
    if internal or external:
        background.add_task(extract_from_note, internal, external)


# ---------------------------------------------------------------------------
# Collections (registered before /notes/{note_id})
# ---------------------------------------------------------------------------

@router.get("/notes")
def notes_list(include_archived: bool = False):
    return list_notes(include_archived=include_archived)


@router.get("/notes/archived")
def notes_archived():
    return list_archived_notes()


@router.get("/notes/deleted")
def notes_trash():
    return list_trashed_notes()


@router.delete("/notes/trash")
def notes_empty_trash():
    count = empty_trash()
    return {"message": "Trash emptied", "deleted": count}


@router.post("/notes")
async def notes_create(request: Request, background: BackgroundTasks):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        note = create_note(
            body.get("title"),
            body.get("account_id"),
            template_type=body.get("template_type") or "initial",
            internal_participants=body.get("internal_participants"),
            external_participants=body.get("external_participants"),
            content=body.get("content") or "",
            meeting_id=body.get("meeting_id"),
            meeting_date=body.get("meeting_date"),
        )
    except ValueError as exc:
        return error(str(exc))
    _schedule_extraction(background, note)
    return JSONResponse(note, status_code=201, background=background)


# ---------------------------------------------------------------------------
# Single note
# ---------------------------------------------------------------------------

@router.get("/notes/{note_id}")
def notes_detail(note_id: str):
    note = get_note(note_id)
    if not note:
        return not_found("Note")
    return note


@router.put("/notes/{note_id}")
async def notes_update(request: Request, note_id: str, background: BackgroundTasks):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        note = update_note(note_id, **pick(body, UPDATABLE_FIELDS))
    except ValueError as exc:
        return error(str(exc))
    if not note:
        return not_found("Note")
    if any(key in body for key in _PARTICIPANT_FIELDS):
        _schedule_extraction(background, note)
    return note


@router.delete("/notes/{note_id}")
def notes_delete(note_id: str):
    if not trash_note(note_id):
        return not_found("Note")
    return {"message": "Note moved to trash"}


@router.post("/notes/{note_id}/restore")
def notes_restore(note_id: str):
    if not restore_note(note_id):
        return not_found("Note")
    return {"message": "Note restored"}


@router.delete("/notes/{note_id}/permanent")
def notes_purge(note_id: str):
    if not purge_note(note_id):
        return not_found("Note")
    return {"message": "Note permanently deleted"}


@router.post("/notes/{note_id}/pin")
def notes_pin(note_id: str):
    pinned = toggle_pin(note_id)
    if pinned is None:
        return not_found("Note")
    return {"pinned": pinned}


@router.post("/notes/{note_id}/archive")
def notes_archive(note_id: str):
    archived = toggle_archive(note_id)
    if archived is None:
        return not_found("Note")
    return {"archived": archived}


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

@router.get("/notes/{note_id}/attachments")
def attachments_list(note_id: str):
    if not get_note(note_id):
        return not_found("Note")
    return list_attachments(note_id)


@router.post("/notes/{note_id}/attachments")
async def attachments_upload(note_id: str, file: UploadFile = File(...)):
    # One byte past the limit is enough to reject an oversized upload.
    data = await file.read(max_upload_bytes() + 1)
    try:
        att = save_attachment(
            note_id,
            original_name=file.filename,
            mime_type=file.content_type,
            data=data,
        )
    except ValueError as exc:
        return error(str(exc))
    if att is None:
        return not_found("Note")
    return JSONResponse(att, status_code=201)


def _note_attachment(note_id: str, attachment_id: str) -> dict | None:
    att = get_attachment(attachment_id)
    if not att or att["note_id"] != note_id:
        return None
    return att


@router.get("/notes/{note_id}/attachments/{attachment_id}")
def attachments_download(note_id: str, attachment_id: str):
    att = _note_attachment(note_id, attachment_id)
    if not att:
        return not_found("Attachment")
    path = stored_path(att["filename"])
    if not path.is_file():
        log.warning("Attachment %s has no file at %s", attachment_id, path)
        return not_found("Attachment file")
    return FileResponse(path, media_type=att["mime_type"], filename=att["original_name"])


@router.delete("/notes/{note_id}/attachments/{attachment_id}")
def attachments_delete(note_id: str, attachment_id: str):
    if not _note_attachment(note_id, attachment_id):
        return not_found("Attachment")
    delete_attachment(attachment_id)
    return {"message": "Attachment deleted"}


# ---------------------------------------------------------------------------
# Quick capture
# ---------------------------------------------------------------------------

@router.post("/quick-capture")
async def quick_capture(request: Request):
    body = await json_body(request)
    if body is None:
        return error(INVALID_JSON)
    try:
        item = capture(
            body.get("type"),
            body.get("title"),
            content=body.get("content") or "",
            description=body.get("description") or "",
            priority=body.get("priority"),
            account_id=body.get("account_id"),
        )
    except ValueError as exc:
        return error(str(exc))
    return JSONResponse(item, status_code=201)
