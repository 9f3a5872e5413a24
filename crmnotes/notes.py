"""Notes CRUD: meeting notes with participants, FTS, trash, pins and ordering."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from html.parser import HTMLParser
from pathlib import Path
from typing import Any

import bleach

from .activities import log_activity
from .attachments import remove_stored_files
from .database import ACTIVE, get_connection
from .models import Lifecycle, parse_participants

log = logging.getLogger(__name__)

VALID_TEMPLATE_TYPES = ("initial", "followup", "quick")

_ALLOWED_TAGS = [
    "p", "br", "strong", "em", "u", "s", "code", "pre", "blockquote",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "a", "img",
    "table", "thead", "tbody", "tr", "th", "td",
    "span", "div", "hr", "sub", "sup", "mark",
]
_ALLOWED_ATTRS = {
    "a": ["href", "target", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "span": ["class", "data-type", "data-id"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan"],
}

UPDATABLE_FIELDS = (
    "title", "account_id", "template_type", "internal_participants",
    "external_participants", "content", "meeting_id", "meeting_date",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Plain-text extraction (for FTS indexing)
# ---------------------------------------------------------------------------

class _HTMLStripper(HTMLParser):
    """Simple HTML tag stripper for FTS indexing."""

    def __init__(self):
        super().__init__()
        self._parts: list[str] = []

    def handle_data(self, data: str) -> None:
        self._parts.append(data)

    def get_text(self) -> str:
        return " ".join(self._parts)


def _doc_text(node: Any) -> list[str]:
    """Collect ``text`` leaves from an editor JSON document."""
    parts: list[str] = []
    if isinstance(node, list):
        for item in node:
            parts.extend(_doc_text(item))
    elif isinstance(node, dict):
        if isinstance(node.get("text"), str):
            parts.append(node["text"])
        parts.extend(_doc_text(node.get("content", [])))
    return parts


def _editor_doc(content: str) -> dict | None:
    stripped = content.lstrip()
    if not stripped.startswith("{"):
        return None
    try:
        doc = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return doc if isinstance(doc, dict) else None


def extract_plain_text(content: str | None) -> str:
    """Plain text of a note body, which is either editor JSON or HTML."""
    if not content:
        return ""
    doc = _editor_doc(content)
    if doc is not None:
        return " ".join(_doc_text(doc)).strip()
    stripper = _HTMLStripper()
    stripper.feed(content)
    stripper.close()
    return stripper.get_text().strip()


def sanitize_content(content: str) -> str:
    """Strip disallowed markup from an HTML body.  Editor JSON is kept as is."""
    if not content or _editor_doc(content) is not None:
        return content
    return bleach.clean(content, tags=_ALLOWED_TAGS, attributes=_ALLOWED_ATTRS, strip=True)


# ---------------------------------------------------------------------------
# FTS management
# ---------------------------------------------------------------------------

def _update_fts(conn, note_id: str, title: str | None, content: str | None) -> None:
    """Replace the FTS5 index entry for a note."""
    conn.execute("DELETE FROM notes_fts WHERE note_id = ?", (note_id,))
    conn.execute(
        "INSERT INTO notes_fts (note_id, title, content_text) VALUES (?, ?, ?)",
        (note_id, title or "", extract_plain_text(content)),
    )


def rebuild_fts(db_path: Path | None = None) -> int:
    """Re-index every note.  Returns the number of notes indexed."""
    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM notes_fts")
        rows = conn.execute("SELECT id, title, content FROM notes").fetchall()
        for r in rows:
            _update_fts(conn, r["id"], r["title"], r["content"])
    return len(rows)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def parse_timestamp(value: str | None, what: str = "meeting date") -> str | None:
    """Normalise an ISO-8601 timestamp; offsets may be ``-07:00`` or ``-0700``."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Invalid {what} format")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")
        except ValueError:
            raise ValueError(f"Invalid {what} format") from None
    return parsed.isoformat()


def clean_participants(value: Any, field: str) -> list[str]:
    """Validate a participant list: strings only, blanks dropped, order kept."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{field} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _check_text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    return value


def _check_template(template_type: str) -> str:
    template_type = template_type or "initial"
    if template_type not in VALID_TEMPLATE_TYPES:
        raise ValueError(f"Invalid template_type: {template_type}")
    return template_type


def _require_account(conn, account_id: str | None) -> None:
    if not account_id:
        raise ValueError("account_id is required")
    if not conn.execute("SELECT 1 FROM accounts WHERE id = ?", (account_id,)).fetchone():
        raise ValueError(f"Account not found: {account_id}")


def _row_to_note(row) -> dict[str, Any]:
    note = dict(row)
    note["internal_participants"] = parse_participants(note.get("internal_participants"))
    note["external_participants"] = parse_participants(note.get("external_participants"))
    note["pinned"] = bool(note.get("pinned"))
    note["archived"] = bool(note.get("archived"))
    note["lifecycle"] = Lifecycle.of(row).value
    return note


_NOTE_SELECT = (
    "SELECT n.*, a.name AS account_name FROM notes n "
    "LEFT JOIN accounts a ON a.id = n.account_id"
)

_LIST_ORDER = "ORDER BY n.pinned DESC, n.sort_order, n.created_at DESC"


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_note(
    title: str,
    account_id: str,
    *,
    template_type: str = "initial",
    internal_participants: list[str] | None = None,
    external_participants: list[str] | None = None,
    content: str = "",
    meeting_id: str | None = None,
    meeting_date: str | None = None,
) -> dict[str, Any]:
    """Create a note under an existing account.  Returns the note dict."""
    title = _check_text(title, "title").strip()
    if not title:
        raise ValueError("Note title is required")
    template_type = _check_template(template_type)
    internal = clean_participants(internal_participants, "internal_participants")
    external = clean_participants(external_participants, "external_participants")
    meeting_date = parse_timestamp(meeting_date)
    content = sanitize_content(_check_text(content, "content"))

    now = _now()
    note_id = _uuid()
    with get_connection() as conn:
        _require_account(conn, account_id)
        conn.execute(
            "INSERT INTO notes "
            "(id, title, account_id, template_type, internal_participants, "
            " external_participants, content, meeting_id, meeting_date, "
            " created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (note_id, title, account_id, template_type, json.dumps(internal),
             json.dumps(external), content or "", meeting_id, meeting_date, now, now),
        )
        _update_fts(conn, note_id, title, content)

    log_activity(account_id, "note_created", title, entity_type="note", entity_id=note_id)
    return get_note(note_id)


def get_note(note_id: str) -> dict[str, Any] | None:
    """Get a note with its linked todos, tags and attachments.

    Trashed notes are returned too; check ``lifecycle``.
    """
    with get_connection() as conn:
        row = conn.execute(_NOTE_SELECT + " WHERE n.id = ?", (note_id,)).fetchone()
        if not row:
            return None
        note = _row_to_note(row)
        note["todos"] = [
            dict(r) for r in conn.execute(
                "SELECT t.id, t.title, t.description, t.status, t.priority, "
                "t.due_date, t.created_at, t.updated_at "
                "FROM todos t JOIN note_todos nt ON nt.todo_id = t.id "
                f"WHERE nt.note_id = ? AND t.{ACTIVE} "
                "ORDER BY t.created_at",
                (note_id,),
            ).fetchall()
        ]
        note["tags"] = [
            dict(r) for r in conn.execute(
                "SELECT t.* FROM tags t JOIN note_tags nt ON nt.tag_id = t.id "
                "WHERE nt.note_id = ? ORDER BY t.name",
                (note_id,),
            ).fetchall()
        ]
        note["attachments"] = [
            dict(r) for r in conn.execute(
                "SELECT * FROM attachments WHERE note_id = ? ORDER BY created_at DESC",
                (note_id,),
            ).fetchall()
        ]
    return note


def list_notes(*, include_archived: bool = False) -> list[dict[str, Any]]:
    """Active notes: pinned first, then manual order, then newest."""
    where = f"WHERE n.{ACTIVE}"
    if not include_archived:
        where += " AND n.archived = 0"
    with get_connection() as conn:
        rows = conn.execute(f"{_NOTE_SELECT} {where} {_LIST_ORDER}").fetchall()
    return [_row_to_note(r) for r in rows]


def list_account_notes(account_id: str) -> list[dict[str, Any]] | None:
    """Active notes of one account, or None if the account does not exist."""
    with get_connection() as conn:
        if not conn.execute("SELECT 1 FROM accounts WHERE id = ?", (account_id,)).fetchone():
            return None
        rows = conn.execute(
            f"{_NOTE_SELECT} WHERE n.account_id = ? AND n.{ACTIVE} {_LIST_ORDER}",
            (account_id,),
        ).fetchall()
    return [_row_to_note(r) for r in rows]


def update_note(note_id: str, **fields: Any) -> dict[str, Any] | None:
    """Partially update a note.

    Accepts any of ``title``, ``account_id``, ``template_type``,
    ``internal_participants``, ``external_participants``, ``content``,
    ``meeting_id``, ``meeting_date``.  Raises ValueError when none is given
    or a value is invalid.  Returns None if the note does not exist.
    """
    updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if not updates:
        raise ValueError("No fields to update")

    if "title" in updates:
        updates["title"] = _check_text(updates["title"], "title").strip()
        if not updates["title"]:
            raise ValueError("Note title is required")
    if "template_type" in updates:
        updates["template_type"] = _check_template(updates["template_type"])
    for key in ("internal_participants", "external_participants"):
        if key in updates:
            updates[key] = json.dumps(clean_participants(updates[key], key))
    if "meeting_date" in updates:
        updates["meeting_date"] = parse_timestamp(updates["meeting_date"])
    if "content" in updates:
        updates["content"] = sanitize_content(_check_text(updates["content"], "content"))
    if "meeting_id" in updates and updates["meeting_id"] is not None:
        if not isinstance(updates["meeting_id"], str):
            raise ValueError("meeting_id must be a string")

    updates["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in updates)
    with get_connection() as conn:
        current = conn.execute(
            "SELECT title, content FROM notes WHERE id = ?", (note_id,),
        ).fetchone()
        if not current:
            return None
        if "account_id" in updates:
            _require_account(conn, updates["account_id"])
        conn.execute(
            f"UPDATE notes SET {set_clause} WHERE id = ?",
            [*updates.values(), note_id],
        )
        if "title" in updates or "content" in updates:
            _update_fts(
                conn, note_id,
                updates.get("title", current["title"]),
                updates.get("content", current["content"]),
            )

    note = get_note(note_id)
    log_activity(
        note["account_id"], "note_updated", note["title"], entity_type="note", entity_id=note_id,
    )
    return note


# ---------------------------------------------------------------------------
# Trash
# ---------------------------------------------------------------------------

def trash_note(note_id: str) -> bool:
    """Move an active note to the trash."""
    with get_connection() as conn:
        cur = conn.execute(
            f"UPDATE notes SET deleted_at = ? WHERE id = ? AND {ACTIVE}",
            (_now(), note_id),
        )
    return cur.rowcount > 0


def restore_note(note_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute("UPDATE notes SET deleted_at = NULL WHERE id = ?", (note_id,))
    return cur.rowcount > 0


def note_lifecycle(note_id: str) -> Lifecycle:
    """Where a note stands: active, in the trash, or purged (no row)."""
    with get_connection() as conn:
        row = conn.execute("SELECT deleted_at FROM notes WHERE id = ?", (note_id,)).fetchone()
    return Lifecycle.of(row)


def _purge(conn, where: str, params: tuple) -> tuple[int, list[str]]:
    stored = [
        r["filename"] for r in conn.execute(
            f"SELECT filename FROM attachments WHERE note_id IN (SELECT id FROM notes WHERE {where})",
            params,
        ).fetchall()
    ]
    cur = conn.execute(f"DELETE FROM notes WHERE {where}", params)
    return cur.rowcount, stored


def purge_note(note_id: str) -> bool:
    """Delete a note for good, with its attachment files."""
    with get_connection() as conn:
        count, stored = _purge(conn, "id = ?", (note_id,))
    remove_stored_files(stored)
    return count > 0


def list_trashed_notes() -> list[dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute(
            f"{_NOTE_SELECT} WHERE n.deleted_at IS NOT NULL ORDER BY n.deleted_at DESC",
        ).fetchall()
    return [_row_to_note(r) for r in rows]


def empty_trash() -> int:
    """Purge every trashed note.  Returns how many were removed."""
    with get_connection() as conn:
        count, stored = _purge(conn, "deleted_at IS NOT NULL", ())
    remove_stored_files(stored)
    log.info("Emptied notes trash: %d note(s)", count)
    return count


# ---------------------------------------------------------------------------
# Pin / archive / order
# ---------------------------------------------------------------------------

def _toggle(note_id: str, column: str) -> bool | None:
    with get_connection() as conn:
        row = conn.execute(f"SELECT {column} FROM notes WHERE id = ?", (note_id,)).fetchone()
        if not row:
            return None
        new_value = 0 if row[column] else 1
        conn.execute(
            f"UPDATE notes SET {column} = ?, updated_at = ? WHERE id = ?",
            (new_value, _now(), note_id),
        )
    return bool(new_value)


def toggle_pin(note_id: str) -> bool | None:
    """Flip the pinned flag.  Returns the new value, or None if not found."""
    return _toggle(note_id, "pinned")


def toggle_archive(note_id: str) -> bool | None:
    """Flip the archived flag.  Returns the new value, or None if not found."""
    return _toggle(note_id, "archived")


def list_archived_notes() -> list[dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute(
            f"{_NOTE_SELECT} WHERE n.archived = 1 AND n.{ACTIVE} ORDER BY n.updated_at DESC",
        ).fetchall()
    return [_row_to_note(r) for r in rows]


def reorder_notes(account_id: str, note_ids: list[str]) -> int:
    """Set ``sort_order`` from the position in *note_ids*, in one transaction.

    Ids that do not belong to the account are skipped.  Returns the number
    of notes updated.
    """
    if not isinstance(note_ids, list) or not all(isinstance(n, str) for n in note_ids):
        raise ValueError("note_ids must be a list of strings")
    updated = 0
    with get_connection() as conn:
        for position, note_id in enumerate(note_ids):
            cur = conn.execute(
                "UPDATE notes SET sort_order = ? WHERE id = ? AND account_id = ?",
                (position, note_id, account_id),
            )
            updated += cur.rowcount
    return updated
