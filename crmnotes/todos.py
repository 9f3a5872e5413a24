"""Todos / follow-ups, optionally tied to an account and linked to notes."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from .activities import log_activity
from .database import ACTIVE, get_connection, placeholders
from .models import Todo, TodoPriority, TodoStatus
from .notes import parse_timestamp

log = logging.getLogger(__name__)

VALID_STATUSES = tuple(s.value for s in TodoStatus)
VALID_PRIORITIES = tuple(p.value for p in TodoPriority)

UPDATABLE_FIELDS = ("title", "description", "status", "priority", "due_date", "account_id")

_TODO_SELECT = (
    "SELECT t.*, a.name AS account_name FROM todos t "
    "LEFT JOIN accounts a ON a.id = t.account_id"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_status(status: Any) -> str:
    status = status or TodoStatus.NOT_STARTED.value
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid status: {status}")
    return status


def _check_priority(priority: Any) -> str:
    priority = priority or TodoPriority.MEDIUM.value
    if priority not in VALID_PRIORITIES:
        raise ValueError(f"Invalid priority: {priority}")
    return priority


def _check_account(conn, account_id: Any) -> str | None:
    if account_id in (None, ""):
        return None
    if not isinstance(account_id, str) or not conn.execute(
        "SELECT 1 FROM accounts WHERE id = ?", (account_id,),
    ).fetchone():
        raise ValueError(f"Account not found: {account_id}")
    return account_id


def _linked_notes(conn, todo_ids: list[str]) -> dict[str, list[dict]]:
    """Map todo id -> active notes linked to it."""
    if not todo_ids:
        return {}
    rows = conn.execute(
        "SELECT nt.todo_id, n.id, n.title FROM note_todos nt "
        "JOIN notes n ON n.id = nt.note_id "
        f"WHERE nt.todo_id IN ({placeholders(len(todo_ids))}) AND n.{ACTIVE} "
        "ORDER BY n.created_at",
        todo_ids,
    ).fetchall()
    linked: dict[str, list[dict]] = {}
    for r in rows:
        linked.setdefault(r["todo_id"], []).append({"id": r["id"], "title": r["title"]})
    return linked


def _hydrate(conn, rows) -> list[dict[str, Any]]:
    todos = [Todo.from_row(r) for r in rows]
    linked = _linked_notes(conn, [t.id for t in todos])
    for t in todos:
        t.linked_notes = linked.get(t.id, [])
    return [asdict(t) for t in todos]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def list_todos(status: str | None = None) -> list[dict[str, Any]]:
    """Active todos, pinned first then newest, each with its linked notes."""
    sql = f"{_TODO_SELECT} WHERE t.{ACTIVE}"
    params: list[Any] = []
    if status:
        sql += " AND t.status = ?"
        params.append(_check_status(status))
    sql += " ORDER BY t.pinned DESC, t.created_at DESC"
    with get_connection() as conn:
        return _hydrate(conn, conn.execute(sql, params).fetchall())


def get_todo(todo_id: str) -> dict[str, Any] | None:
    with get_connection() as conn:
        row = conn.execute(f"{_TODO_SELECT} WHERE t.id = ?", (todo_id,)).fetchone()
        if not row:
            return None
        return _hydrate(conn, [row])[0]


def create_todo(
    title: str,
    *,
    description: str = "",
    status: str | None = None,
    priority: str | None = None,
    due_date: str | None = None,
    account_id: str | None = None,
    note_id: str | None = None,
) -> dict[str, Any]:
    """Create a todo, optionally linked to a note and tagged with an account."""
    if not isinstance(title, str) or not title.strip():
        raise ValueError("Todo title is required")
    if description is not None and not isinstance(description, str):
        raise ValueError("description must be a string")
    status = _check_status(status)
    priority = _check_priority(priority)
    due_date = parse_timestamp(due_date, "due date")

    todo_id = str(uuid.uuid4())
    now = _now()
    with get_connection() as conn:
        account_id = _check_account(conn, account_id)
        if note_id and not conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone():
            raise ValueError(f"Note not found: {note_id}")
        conn.execute(
            "INSERT INTO todos "
            "(id, title, description, status, priority, due_date, account_id, "
            " created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (todo_id, title.strip(), description or "", status, priority,
             due_date, account_id, now, now),
        )
        if note_id:
            conn.execute(
                "INSERT OR IGNORE INTO note_todos (note_id, todo_id, created_at) VALUES (?, ?, ?)",
                (note_id, todo_id, now),
            )
    log_activity(account_id, "todo_created", title.strip(), entity_type="todo", entity_id=todo_id)
    return get_todo(todo_id)


def update_todo(todo_id: str, **fields: Any) -> dict[str, Any] | None:
    """Partially update a todo; empty ``account_id`` clears the account."""
    updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if not updates:
        raise ValueError("No fields to update")
    if "title" in updates:
        if not isinstance(updates["title"], str) or not updates["title"].strip():
            raise ValueError("Todo title is required")
        updates["title"] = updates["title"].strip()
    if "description" in updates:
        if updates["description"] is not None and not isinstance(updates["description"], str):
            raise ValueError("description must be a string")
        updates["description"] = updates["description"] or ""
    if "status" in updates:
        updates["status"] = _check_status(updates["status"])
    if "priority" in updates:
        updates["priority"] = _check_priority(updates["priority"])
    if "due_date" in updates:
        updates["due_date"] = parse_timestamp(updates["due_date"], "due date")

    updates["updated_at"] = _now()
    with get_connection() as conn:
        before = conn.execute("SELECT status FROM todos WHERE id = ?", (todo_id,)).fetchone()
        if before is None:
            return None
        if "account_id" in updates:
            updates["account_id"] = _check_account(conn, updates["account_id"])
        set_clause = ", ".join(f"{k} = ?" for k in updates)
        conn.execute(
            f"UPDATE todos SET {set_clause} WHERE id = ?",
            [*updates.values(), todo_id],
        )
    todo = get_todo(todo_id)
    completed = TodoStatus.COMPLETED.value
    if updates.get("status") == completed and before["status"] != completed:
        log_activity(
            todo["account_id"], "todo_completed", todo["title"],
            entity_type="todo", entity_id=todo_id,
        )
    return todo


# ---------------------------------------------------------------------------
# Trash
# ---------------------------------------------------------------------------

def trash_todo(todo_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute(
            f"UPDATE todos SET deleted_at = ? WHERE id = ? AND {ACTIVE}",
            (_now(), todo_id),
        )
    return cur.rowcount > 0


def restore_todo(todo_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute("UPDATE todos SET deleted_at = NULL WHERE id = ?", (todo_id,))
    return cur.rowcount > 0


def purge_todo(todo_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
    return cur.rowcount > 0


def list_trashed_todos() -> list[dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute(
            f"{_TODO_SELECT} WHERE t.deleted_at IS NOT NULL ORDER BY t.deleted_at DESC",
        ).fetchall()
        return _hydrate(conn, rows)


# ---------------------------------------------------------------------------
# Note links / pin
# ---------------------------------------------------------------------------

def link_note(todo_id: str, note_id: str) -> bool:
    """Link a todo to a note.  Returns False if either does not exist."""
    with get_connection() as conn:
        todo = conn.execute("SELECT 1 FROM todos WHERE id = ?", (todo_id,)).fetchone()
        note = conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone()
        if not todo or not note:
            return False
        conn.execute(
            "INSERT OR IGNORE INTO note_todos (note_id, todo_id, created_at) VALUES (?, ?, ?)",
            (note_id, todo_id, _now()),
        )
    return True


def unlink_note(todo_id: str, note_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute(
            "DELETE FROM note_todos WHERE note_id = ? AND todo_id = ?", (note_id, todo_id),
        )
    return cur.rowcount > 0


def toggle_pin(todo_id: str) -> bool | None:
    """Flip the pinned flag.  Returns the new value, or None if not found."""
    with get_connection() as conn:
        row = conn.execute("SELECT pinned FROM todos WHERE id = ?", (todo_id,)).fetchone()
        if not row:
            return None
        pinned = 0 if row["pinned"] else 1
        conn.execute(
            "UPDATE todos SET pinned = ?, updated_at = ? WHERE id = ?",
            (pinned, _now(), todo_id),
        )
    return bool(pinned)
