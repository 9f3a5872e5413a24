"""Files attached to notes, stored under ``config.UPLOAD_DIR``."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Iterable

from . import config
from .database import get_connection
from .models import now_iso

log = logging.getLogger(__name__)


def stored_path(filename: str) -> Path:
    return config.UPLOAD_DIR / filename


def max_upload_bytes() -> int:
    return config.MAX_UPLOAD_SIZE_MB * 1024 * 1024


def _safe_name(original_name: str | None) -> str:
    # Drop any directory part a client may have sent.
    name = Path((original_name or "").replace("\\", "/")).name
    return name or "file"


def remove_stored_files(filenames: Iterable[str]) -> None:
    """Delete files from the upload directory; missing files are ignored."""
    for filename in filenames:
        try:
            stored_path(filename).unlink(missing_ok=True)
        except OSError:
            log.warning("Could not remove attachment file %s", filename, exc_info=True)


def save_attachment(
    note_id: str,
    *,
    original_name: str | None,
    mime_type: str | None,
    data: bytes,
) -> dict[str, Any] | None:
    """Validate and store an upload for a note.

    Returns the attachment dict, or None if the note does not exist.
    Raises ValueError for a disallowed type or an oversized file.
    """
    mime = mime_type or "application/octet-stream"
    if mime not in config.ALLOWED_UPLOAD_TYPES:
        raise ValueError(f"File type {mime} not allowed")
    if len(data) > max_upload_bytes():
        raise ValueError(f"File too large (max {config.MAX_UPLOAD_SIZE_MB} MB)")

    with get_connection() as conn:
        if not conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone():
            return None

    att_id = str(uuid.uuid4())
    original = _safe_name(original_name)
    filename = f"{att_id}_{original}"
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    path = stored_path(filename)
    path.write_bytes(data)

    att = {
        "id": att_id,
        "note_id": note_id,
        "filename": filename,
        "original_name": original,
        "mime_type": mime,
        "size_bytes": len(data),
        "created_at": now_iso(),
    }
    try:
        with get_connection() as conn:
            conn.execute(
                "INSERT INTO attachments "
                "(id, note_id, filename, original_name, mime_type, size_bytes, created_at) "
                "VALUES (:id, :note_id, :filename, :original_name, :mime_type, "
                " :size_bytes, :created_at)",
                att,
            )
    except Exception:
        path.unlink(missing_ok=True)
        raise
    log.info("Stored attachment %s (%d bytes) on note %s", original, len(data), note_id)
    return att


def list_attachments(note_id: str) -> list[dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM attachments WHERE note_id = ? ORDER BY created_at DESC",
            (note_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def get_attachment(attachment_id: str) -> dict[str, Any] | None:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM attachments WHERE id = ?", (attachment_id,)
        ).fetchone()
    return dict(row) if row else None


def delete_attachment(attachment_id: str) -> bool:
    """Delete the attachment row and its file."""
    with get_connection() as conn:
        row = conn.execute(
            "SELECT filename FROM attachments WHERE id = ?", (attachment_id,)
        ).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM attachments WHERE id = ?", (attachment_id,))
    remove_stored_files([row["filename"]])
    return True
