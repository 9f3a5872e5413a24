"""Tags and their links to notes."""

from __future__ import annotations

import re
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from .database import get_connection

DEFAULT_COLOR = "#6b7280"

_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{3}([0-9a-fA-F]{3})?$")


class DuplicateTagError(ValueError):
    """A tag with this name already exists."""


def _check_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Tag name is required")
    return name.strip()


def _check_color(color: Any) -> str:
    if color in (None, ""):
        return DEFAULT_COLOR
    if not isinstance(color, str) or not _COLOR_RE.match(color):
        raise ValueError(f"Invalid color: {color}")
    return color


def list_tags() -> list[dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute("SELECT * FROM tags ORDER BY name COLLATE NOCASE").fetchall()
    return [dict(r) for r in rows]


def get_tag(tag_id: str) -> dict[str, Any] | None:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
    return dict(row) if row else None


def create_tag(name: str, color: str | None = None) -> dict[str, Any]:
    """Create a tag.  Raises DuplicateTagError if the name is taken."""
    tag = {
        "id": str(uuid.uuid4()),
        "name": _check_name(name),
        "color": _check_color(color),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        with get_connection() as conn:
            conn.execute(
                "INSERT INTO tags (id, name, color, created_at) "
                "VALUES (:id, :name, :color, :created_at)",
                tag,
            )
    except sqlite3.IntegrityError as exc:
        raise DuplicateTagError(f"Tag already exists: {tag['name']}") from exc
    return tag


def update_tag(tag_id: str, *, name: str | None = None, color: str | None = None) -> dict | None:
    updates: dict[str, Any] = {}
    if name is not None:
        updates["name"] = _check_name(name)
    if color is not None:
        updates["color"] = _check_color(color)
    if not updates:
        raise ValueError("No fields to update")

    set_clause = ", ".join(f"{k} = ?" for k in updates)
    try:
        with get_connection() as conn:
            cur = conn.execute(
                f"UPDATE tags SET {set_clause} WHERE id = ?", [*updates.values(), tag_id],
            )
    except sqlite3.IntegrityError as exc:
        raise DuplicateTagError(f"Tag already exists: {updates.get('name')}") from exc
    if cur.rowcount == 0:
        return None
    return get_tag(tag_id)


def delete_tag(tag_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
    return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Note <-> tag
# ---------------------------------------------------------------------------

def list_note_tags(note_id: str) -> list[dict[str, Any]] | None:
    with get_connection() as conn:
        if not conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone():
            return None
        rows = conn.execute(
            "SELECT t.* FROM tags t JOIN note_tags nt ON nt.tag_id = t.id "
            "WHERE nt.note_id = ? ORDER BY t.name",
            (note_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def add_tag_to_note(note_id: str, tag_id: str) -> bool:
    """Attach a tag to a note; adding it twice is a no-op.

    Returns False if the note or the tag does not exist.
    """
    with get_connection() as conn:
        note = conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone()
        tag = conn.execute("SELECT 1 FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if not note or not tag:
            return False
        conn.execute(
            "INSERT OR IGNORE INTO note_tags (note_id, tag_id, created_at) VALUES (?, ?, ?)",
            (note_id, tag_id, datetime.now(timezone.utc).isoformat()),
        )
    return True


def remove_tag_from_note(note_id: str, tag_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute(
            "DELETE FROM note_tags WHERE note_id = ? AND tag_id = ?", (note_id, tag_id),
        )
    return cur.rowcount > 0
