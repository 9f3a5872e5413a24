"""Account CRUD.  Deleting an account removes its notes as well."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from typing import Any

from . import config
from .attachments import remove_stored_files
from .database import get_connection
from .models import Account, now_iso

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "account_owner", "budget", "est_engineers")


def _validate_fields(account_owner: Any, budget: Any, est_engineers: Any) -> None:
    if account_owner is not None and not isinstance(account_owner, str):
        raise ValueError("account_owner must be a string")
    if budget is not None and (isinstance(budget, bool) or not isinstance(budget, (int, float))):
        raise ValueError("budget must be a number")
    if est_engineers is not None and (
        isinstance(est_engineers, bool) or not isinstance(est_engineers, int)
    ):
        raise ValueError("est_engineers must be an integer")


def list_accounts() -> list[dict]:
    with get_connection() as conn:
        rows = conn.execute("SELECT * FROM accounts ORDER BY name COLLATE NOCASE").fetchall()
    return [asdict(Account.from_row(r)) for r in rows]


def get_account(account_id: str) -> dict | None:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
    return asdict(Account.from_row(row)) if row else None


def create_account(
    name: str,
    *,
    account_owner: str = "",
    budget: float | None = None,
    est_engineers: int | None = None,
) -> dict:
    """Create an account.  Raises ValueError if *name* is blank."""
    if not isinstance(name, str):
        raise ValueError("Account name is required")
    name = name.strip()
    if not name:
        raise ValueError("Account name is required")
    _validate_fields(account_owner, budget, est_engineers)

    account = Account(
        id=str(uuid.uuid4()),
        name=name,
        account_owner=(account_owner or "").strip(),
        budget=budget,
        est_engineers=est_engineers,
        created_at=now_iso(),
    )
    account.updated_at = account.created_at
    with get_connection() as conn:
        conn.execute(
            "INSERT INTO accounts "
            "(id, name, account_owner, budget, est_engineers, created_at, updated_at) "
            "VALUES (:id, :name, :account_owner, :budget, :est_engineers, :created_at, :updated_at)",
            asdict(account),
        )
    return asdict(account)


def update_account(account_id: str, **fields: Any) -> dict | None:
    """Partially update an account.

    Only keys in ``name``, ``account_owner``, ``budget`` and
    ``est_engineers`` are applied.  Raises ValueError when none are given.
    Returns None if the account does not exist.
    """
    updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if not updates:
        raise ValueError("No fields to update")
    if "name" in updates:
        if not isinstance(updates["name"], str):
            raise ValueError("Account name is required")
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise ValueError("Account name is required")
    _validate_fields(
        updates.get("account_owner"), updates.get("budget"), updates.get("est_engineers"),
    )

    updates["updated_at"] = now_iso()
    set_clause = ", ".join(f"{k} = ?" for k in updates)
    with get_connection() as conn:
        cur = conn.execute(
            f"UPDATE accounts SET {set_clause} WHERE id = ?",
            [*updates.values(), account_id],
        )
    if cur.rowcount == 0:
        return None
    return get_account(account_id)


def delete_account(account_id: str) -> bool:
    """Hard-delete an account together with its notes and their attachments."""
    with get_connection() as conn:
        stored = [
            r["filename"] for r in conn.execute(
                "SELECT att.filename FROM attachments att "
                "JOIN notes n ON n.id = att.note_id WHERE n.account_id = ?",
                (account_id,),
            ).fetchall()
        ]
        cur = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
    if cur.rowcount == 0:
        return False
    remove_stored_files(stored)
    log.info("Deleted account %s (%d attachment file(s))", account_id, len(stored))
    return True


def get_or_create_unassigned() -> str:
    """Return the id of the catch-all account, creating it if needed."""
    with get_connection() as conn:
        row = conn.execute(
            "SELECT id FROM accounts WHERE name = ? ORDER BY created_at LIMIT 1",
            (config.UNASSIGNED_ACCOUNT_NAME,),
        ).fetchone()
    if row:
        return row["id"]
    return create_account(config.UNASSIGNED_ACCOUNT_NAME)["id"]
