"""Dashboard numbers.  The catch-all account and trashed items are left out."""

from __future__ import annotations

from typing import Any

from . import config
from .database import ACTIVE, get_connection
from .models import TodoStatus


def get_analytics() -> dict[str, Any]:
    unassigned = config.UNASSIGNED_ACCOUNT_NAME
    with get_connection() as conn:
        total_notes = conn.execute(
            "SELECT COUNT(*) FROM notes n JOIN accounts a ON a.id = n.account_id "
            f"WHERE n.{ACTIVE} AND a.name != ?",
            (unassigned,),
        ).fetchone()[0]
        total_accounts = conn.execute(
            "SELECT COUNT(*) FROM accounts WHERE name != ?", (unassigned,),
        ).fetchone()[0]
        total_todos = conn.execute(
            f"SELECT COUNT(*) FROM todos WHERE {ACTIVE}",
        ).fetchone()[0]

        todos_by_status = {s.value: 0 for s in TodoStatus}
        for r in conn.execute(
            f"SELECT status, COUNT(*) AS n FROM todos WHERE {ACTIVE} GROUP BY status",
        ).fetchall():
            todos_by_status[r["status"]] = r["n"]

        notes_by_account = [
            dict(r) for r in conn.execute(
                "SELECT a.id AS account_id, a.name AS account_name, COUNT(n.id) AS note_count "
                "FROM accounts a "
                f"LEFT JOIN notes n ON n.account_id = a.id AND n.{ACTIVE} "
                "WHERE a.name != ? "
                "GROUP BY a.id, a.name "
                "ORDER BY note_count DESC, a.name",
                (unassigned,),
            ).fetchall()
        ]

    return {
        "total_notes": total_notes,
        "total_accounts": total_accounts,
        "total_todos": total_todos,
        "todos_by_status": todos_by_status,
        "notes_by_account": notes_by_account,
        "incomplete_count": len(get_incomplete_fields()),
    }


def _missing_fields(row) -> list[str]:
    missing = []
    if row["budget"] is None:
        missing.append("budget")
    if row["est_engineers"] is None:
        missing.append("est_engineers")
    if not row["account_owner"]:
        missing.append("account_owner")
    if not row["content"]:
        missing.append("content")
    if not row["internal_participants"] or row["internal_participants"] == "[]":
        missing.append("internal_participants")
    return missing


def get_incomplete_fields() -> list[dict[str, Any]]:
    """Active notes (outside the catch-all account) missing account or note details."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT n.id, n.title, a.name AS account_name, a.budget, a.est_engineers, "
            "a.account_owner, n.content, n.internal_participants "
            "FROM notes n JOIN accounts a ON a.id = n.account_id "
            f"WHERE n.{ACTIVE} AND a.name != ? "
            "ORDER BY n.created_at DESC",
            (config.UNASSIGNED_ACCOUNT_NAME,),
        ).fetchall()

    report = []
    for r in rows:
        missing = _missing_fields(r)
        if missing:
            report.append({
                "note_id": r["id"],
                "note_title": r["title"],
                "account_name": r["account_name"],
                "missing_fields": missing,
            })
    return report
