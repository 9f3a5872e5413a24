"""Whole-database operations: JSON export and clearing all user data."""

from __future__ import annotations

import logging
from typing import Any

from . import config
from .database import ACTIVE, get_connection
from .models import now_iso, parse_participants

log = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

# Children before parents so foreign keys never block a delete.
_CLEAR_ORDER = (
    "note_todos",
    "note_tags",
    "attachments",
    "activities",
    "contacts",
    "todos",
    "notes",
    "tags",
    "accounts",
)


def export_all() -> dict[str, Any]:
    """Snapshot of accounts, active notes and todos, tags and contacts."""
    with get_connection() as conn:
        accounts = [
            dict(r) for r in conn.execute(
                "SELECT id, name, account_owner, budget, est_engineers, created_at, updated_at "
                "FROM accounts ORDER BY created_at",
            ).fetchall()
        ]

        notes = []
        for r in conn.execute(
            "SELECT id, title, account_id, template_type, internal_participants, "
            "external_participants, content, meeting_id, meeting_date, pinned, archived, "
            f"created_at, updated_at FROM notes WHERE {ACTIVE} ORDER BY created_at",
        ).fetchall():
            note = dict(r)
            note["internal_participants"] = parse_participants(note["internal_participants"])
            note["external_participants"] = parse_participants(note["external_participants"])
            note["pinned"] = bool(note["pinned"])
            note["archived"] = bool(note["archived"])
            notes.append(note)

        todos = []
        for r in conn.execute(
            "SELECT id, title, description, status, priority, due_date, account_id, pinned, "
            f"created_at, updated_at FROM todos WHERE {ACTIVE} ORDER BY created_at",
        ).fetchall():
            todo = dict(r)
            todo["pinned"] = bool(todo["pinned"])
            todos.append(todo)

        tags = [
            dict(r) for r in conn.execute(
                "SELECT id, name, color, created_at FROM tags ORDER BY name",
            ).fetchall()
        ]

        contacts = []
        for r in conn.execute(
            "SELECT id, email, name, company, domain, is_internal, account_id, "
            "suggested_account_id, suggestion_confirmed, meeting_count, "
            "first_seen, last_seen, created_at FROM contacts ORDER BY email",
        ).fetchall():
            contact = dict(r)
            contact["is_internal"] = bool(contact["is_internal"])
            contact["suggestion_confirmed"] = bool(contact["suggestion_confirmed"])
            contacts.append(contact)

    return {
        "accounts": accounts,
        "notes": notes,
        "todos": todos,
        "tags": tags,
        "contacts": contacts,
        "exported_at": now_iso(),
        "version": EXPORT_VERSION,
    }


def clear_all() -> dict[str, int]:
    """Delete every row of user data, then the stored attachment files.

    The rows go in a single transaction.  Returns the row count removed
    per table.
    """
    removed: dict[str, int] = {}
    with get_connection() as conn:
        for table in _CLEAR_ORDER:
            removed[table] = conn.execute(f"DELETE FROM {table}").rowcount
        conn.execute("DELETE FROM notes_fts")

    files = 0
    if config.UPLOAD_DIR.is_dir():
        for path in config.UPLOAD_DIR.iterdir():
            if path.is_file():
                path.unlink()
                files += 1
    log.warning("Cleared all data (%d attachment file(s) removed)", files)
    return removed
