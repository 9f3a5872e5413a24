"""Per-account activity feed.

Entries are written by hand through the API or as a side effect of saving
notes and todos.  The side-effect writes are best effort: a failure is
logged and never fails the save that triggered it.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import asdict
from typing import Any

from .database import get_connection
from .models import Activity, now_iso

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def _check_str(value: Any, field: str, *, required: bool = False) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    value = value.strip()
    if required and not value:
        raise ValueError(f"{field} is required")
    return value


def _insert(conn, activity: Activity) -> None:
    conn.execute(
        "INSERT INTO activities "
        "(id, account_id, type, title, description, entity_type, entity_id, created_at) "
        "VALUES (:id, :account_id, :type, :title, :description, "
        "        :entity_type, :entity_id, :created_at)",
        asdict(activity),
    )


def create_activity(
    account_id: str,
    activity_type: str,
    title: str,
    *,
    description: str = "",
    entity_type: str = "",
    entity_id: str = "",
) -> dict[str, Any]:
    """Record an activity for an existing account.

    Raises ValueError for a missing field or an unknown account.
    """
    activity = Activity(
        id=str(uuid.uuid4()),
        account_id=_check_str(account_id, "account_id", required=True),
        type=_check_str(activity_type, "type", required=True),
        title=_check_str(title, "title", required=True),
        description=_check_str(description, "description"),
        entity_type=_check_str(entity_type, "entity_type"),
        entity_id=_check_str(entity_id, "entity_id"),
        created_at=now_iso(),
    )
    with get_connection() as conn:
        if not conn.execute(
            "SELECT 1 FROM accounts WHERE id = ?", (activity.account_id,),
        ).fetchone():
            raise ValueError(f"Account not found: {activity.account_id}")
        _insert(conn, activity)
    return asdict(activity)


def list_activities(account_id: str, limit: int = DEFAULT_LIMIT) -> list[dict] | None:
    """Newest-first activities of an account, or None if it does not exist."""
    if limit < 1 or limit > MAX_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
    with get_connection() as conn:
        if not conn.execute("SELECT 1 FROM accounts WHERE id = ?", (account_id,)).fetchone():
            return None
        rows = conn.execute(
            "SELECT * FROM activities WHERE account_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (account_id, limit),
        ).fetchall()
    return [asdict(Activity.from_row(r)) for r in rows]


def log_activity(
    account_id: str | None,
    activity_type: str,
    title: str,
    *,
    entity_type: str = "",
    entity_id: str = "",
) -> None:
    """Append a feed entry for a save that just happened; errors are logged."""
    if not account_id:
        return
    activity = Activity(
        id=str(uuid.uuid4()),
        account_id=account_id,
        type=activity_type,
        title=title,
        entity_type=entity_type,
        entity_id=entity_id,
        created_at=now_iso(),
    )
    try:
        with get_connection() as conn:
            _insert(conn, activity)
    except sqlite3.Error:
        log.exception("Could not log %s activity for account %s", activity_type, account_id)
