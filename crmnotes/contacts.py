"""Contacts: upsert from meeting participants, account suggestions, and CRUD.

Contacts are keyed by lower-cased e-mail address.  Most of them are created
as a side effect of saving a note (:func:`extract_from_note`), which runs
after the HTTP response and only logs its failures.  A new external contact
gets an advisory ``suggested_account_id`` when an account name contains the
bare company token of its domain; the user accepts or rejects it with
:func:`confirm_suggestion`.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from typing import Any, Iterable

from .database import ACTIVE, get_connection, like_pattern, placeholders
from .domain_resolver import (
    CONTACT_SELECT,
    extract_domain,
    find_account_by_name_token,
    is_internal_domain,
    strip_domain_suffix,
)
from .models import Contact, ContactStats, now_iso

log = logging.getLogger(__name__)

CONTACT_FILTERS = ("internal", "external", "unlinked", "suggestions")
BULK_ACTIONS = ("delete", "set_internal", "set_account")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class DuplicateContactError(ValueError):
    """A contact with this e-mail address already exists."""


def normalize_email(email: str) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


# ---------------------------------------------------------------------------
# Upsert from participants
# ---------------------------------------------------------------------------

def upsert_from_email(email: str, display_name: str = "", source: str = "note") -> str | None:
    """Create the contact for *email* or record that it was seen again.

    A new contact starts with ``meeting_count = 1`` and gets an account
    suggestion.  An existing one has ``last_seen`` bumped and
    ``meeting_count`` incremented; its name is filled in from
    *display_name* only if it was empty.

    Returns the contact id, or None for an empty address.
    """
    email = normalize_email(email)
    if not email:
        return None
    display_name = (display_name or "").strip()
    domain = extract_domain(email)
    now = now_iso()

    created = False
    with get_connection() as conn:
        row = conn.execute("SELECT id FROM contacts WHERE email = ?", (email,)).fetchone()
        if row is None:
            contact_id = str(uuid.uuid4())
            try:
                conn.execute(
                    "INSERT INTO contacts "
                    "(id, email, name, domain, is_internal, source, "
                    " first_seen, last_seen, meeting_count, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)",
                    (contact_id, email, display_name, domain,
                     int(is_internal_domain(domain)), source or "note",
                     now, now, now, now),
                )
                created = True
            except sqlite3.IntegrityError:
                # Inserted concurrently by another request; count this sighting.
                row = conn.execute(
                    "SELECT id FROM contacts WHERE email = ?", (email,),
                ).fetchone()
                if row is None:
                    raise
        if not created:
            contact_id = row["id"]
            conn.execute(
                "UPDATE contacts SET "
                "name = CASE WHEN COALESCE(name, '') = '' AND ? != '' THEN ? ELSE name END, "
                "last_seen = ?, meeting_count = meeting_count + 1, updated_at = ? "
                "WHERE id = ?",
                (display_name, display_name, now, now, contact_id),
            )

    if created:
        log.debug("New contact %s (%s)", email, domain or "no domain")
        suggest_account_for_contact(contact_id, domain)
    return contact_id


def extract_from_note(
    internal_participants: Iterable[str] | None,
    external_participants: Iterable[str] | None,
) -> int:
    """Upsert a contact for every participant of a note.

    Each address is handled on its own; a storage failure is logged and the
    remaining addresses are still processed.  Returns how many succeeded.
    """
    done = 0
    for email in [*(internal_participants or []), *(external_participants or [])]:
        if not isinstance(email, str):
            continue
        try:
            if upsert_from_email(email, "", "note"):
                done += 1
        except sqlite3.Error:
            log.exception("Failed to upsert contact for %s", email)
    return done


def suggest_account_for_contact(contact_id: str, domain: str) -> str | None:
    """Point an unlinked contact at an account whose name matches its domain.

    ``jane@acme.com`` suggests the first account whose name contains
    ``acme``.  Contacts that already have ``account_id`` are left alone.
    Returns the suggested account id, or None.
    """
    domain = (domain or "").strip().lower()
    if not domain or is_internal_domain(domain):
        return None
    token = strip_domain_suffix(domain)

    try:
        with get_connection() as conn:
            match = find_account_by_name_token(conn, token)
            if match is None:
                return None
            cur = conn.execute(
                "UPDATE contacts SET suggested_account_id = ?, updated_at = ? "
                "WHERE id = ? AND account_id IS NULL",
                (match["id"], now_iso(), contact_id),
            )
    except sqlite3.Error:
        log.exception("Account suggestion failed for contact %s", contact_id)
        return None

    if cur.rowcount == 0:
        return None
    log.debug("Suggested account %s for contact %s", match["name"], contact_id)
    return match["id"]


def confirm_suggestion(contact_id: str, confirm: bool) -> bool:
    """Accept or reject a contact's suggested account.

    Accepting copies ``suggested_account_id`` into ``account_id`` and keeps
    the suggestion.  Rejecting clears the suggestion and leaves
    ``account_id`` as it was.  Both mark the suggestion as decided.
    Returns False if the contact does not exist; raises ValueError when
    accepting a contact that has no suggestion.
    """
    now = now_iso()
    with get_connection() as conn:
        row = conn.execute(
            "SELECT suggested_account_id FROM contacts WHERE id = ?", (contact_id,),
        ).fetchone()
        if row is None:
            return False
        if confirm:
            if not row["suggested_account_id"]:
                raise ValueError("Contact has no suggested account to confirm")
            conn.execute(
                "UPDATE contacts SET account_id = suggested_account_id, "
                "suggestion_confirmed = 1, updated_at = ? WHERE id = ?",
                (now, contact_id),
            )
        else:
            conn.execute(
                "UPDATE contacts SET suggested_account_id = NULL, "
                "suggestion_confirmed = 1, updated_at = ? WHERE id = ?",
                (now, contact_id),
            )
    return True



def suggest_unlinked() -> int:
    """Re-run suggestions for undecided external contacts without one."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT id, domain FROM contacts "
            "WHERE is_internal = 0 AND account_id IS NULL "
            "AND suggested_account_id IS NULL AND suggestion_confirmed = 0",
        ).fetchall()
    return sum(1 for r in rows if suggest_account_for_contact(r["id"], r["domain"]))


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_contact(
    email: str,
    *,
    name: str = "",
    company: str = "",
    source: str = "manual",
) -> Contact:
    """Create a contact by hand.

    Raises ValueError for a malformed address and DuplicateContactError if
    the address is already known.
    """
    email = normalize_email(email)
    if not is_valid_email(email):
        raise ValueError("A valid email is required")
    for key, val in (("name", name), ("company", company)):
        if val is not None and not isinstance(val, str):
            raise ValueError(f"{key} must be a string")
    domain = extract_domain(email)
    contact_id = str(uuid.uuid4())
    now = now_iso()

    try:
        with get_connection() as conn:
            conn.execute(
                "INSERT INTO contacts "
                "(id, email, name, company, domain, is_internal, source, "
                " first_seen, last_seen, meeting_count, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)",
                (contact_id, email, (name or "").strip(), (company or "").strip(),
                 domain, int(is_internal_domain(domain)), source or "manual",
                 now, now, now, now),
            )
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc):
            raise DuplicateContactError(f"Contact already exists: {email}") from exc
        raise

    suggest_account_for_contact(contact_id, domain)
    return get_contact(contact_id)


def get_contact(contact_id: str) -> Contact | None:
    with get_connection() as conn:
        row = conn.execute(CONTACT_SELECT + " WHERE c.id = ?", (contact_id,)).fetchone()
    return Contact.from_row(row) if row else None


def get_contact_by_email(email: str) -> Contact | None:
    with get_connection() as conn:
        row = conn.execute(
            CONTACT_SELECT + " WHERE c.email = ?", (normalize_email(email),),
        ).fetchone()
    return Contact.from_row(row) if row else None


def list_contacts(
    contact_filter: str | None = None,
    *,
    account_id: str | None = None,
) -> list[Contact]:
    """List contacts, most recently seen first.

    *contact_filter* is one of ``internal``, ``external``, ``unlinked``
    (external without an account) or ``suggestions`` (undecided suggestion).
    """
    clauses: list[str] = []
    params: list[Any] = []
    if contact_filter:
        if contact_filter not in CONTACT_FILTERS:
            raise ValueError(f"Invalid filter: {contact_filter}")
        if contact_filter == "internal":
            clauses.append("c.is_internal = 1")
        elif contact_filter == "external":
            clauses.append("c.is_internal = 0")
        elif contact_filter == "unlinked":
            clauses.append("c.account_id IS NULL AND c.is_internal = 0")
        else:
            clauses.append("c.suggested_account_id IS NOT NULL AND c.suggestion_confirmed = 0")
    if account_id:
        clauses.append("c.account_id = ?")
        params.append(account_id)

    sql = CONTACT_SELECT
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY c.last_seen DESC, c.email"

    with get_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [Contact.from_row(r) for r in rows]


def _account_exists(conn, account_id: str) -> bool:
    return conn.execute(
        "SELECT 1 FROM accounts WHERE id = ?", (account_id,),
    ).fetchone() is not None


def update_contact(
    contact_id: str,
    *,
    name: str | None = None,
    company: str | None = None,
    account_id: str | None = None,
) -> Contact | None:
    """Update name, company and/or linked account.

    An empty *account_id* string unlinks the contact.  Returns None if the
    contact does not exist.
    """
    fields: dict[str, Any] = {}
    for key, val in (("name", name), ("company", company)):
        if val is None:
            continue
        if not isinstance(val, str):
            raise ValueError(f"{key} must be a string")
        fields[key] = val.strip()
    if account_id is not None and not isinstance(account_id, str):
        raise ValueError("account_id must be a string")

    with get_connection() as conn:
        if not conn.execute("SELECT 1 FROM contacts WHERE id = ?", (contact_id,)).fetchone():
            return None
        if account_id is not None:
            if account_id == "":
                fields["account_id"] = None
            elif not _account_exists(conn, account_id):
                raise ValueError(f"Account not found: {account_id}")
            else:
                fields["account_id"] = account_id

        fields["updated_at"] = now_iso()
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        conn.execute(
            f"UPDATE contacts SET {set_clause} WHERE id = ?",
            [*fields.values(), contact_id],
        )

    return get_contact(contact_id)


def delete_contact(contact_id: str) -> bool:
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM contacts WHERE id = ?", (contact_id,))
    return cur.rowcount > 0


def link_contact_to_account(contact_id: str, account_id: str) -> Contact | None:
    """Link a contact to an account directly; this counts as a decision.

    Returns None if the contact does not exist.  Raises ValueError for an
    unknown account.
    """
    with get_connection() as conn:
        if not _account_exists(conn, account_id):
            raise ValueError(f"Account not found: {account_id}")
        cur = conn.execute(
            "UPDATE contacts SET account_id = ?, suggestion_confirmed = 1, updated_at = ? "
            "WHERE id = ?",
            (account_id, now_iso(), contact_id),
        )
    if cur.rowcount == 0:
        return None
    return get_contact(contact_id)


def get_contact_notes(contact_id: str, *, limit: int = 50) -> list[dict] | None:
    """Active notes listing the contact's address among their participants.

    Newest meeting first.  Returns None if the contact does not exist.
    """
    with get_connection() as conn:
        row = conn.execute("SELECT email FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        if not row:
            return None
        pattern = like_pattern(row["email"])
        rows = conn.execute(
            "SELECT n.id, n.title, n.account_id, a.name AS account_name, "
            "n.meeting_date, n.created_at "
            "FROM notes n LEFT JOIN accounts a ON a.id = n.account_id "
            f"WHERE n.{ACTIVE} "
            "AND (n.internal_participants LIKE ? ESCAPE '\\' "
            "     OR n.external_participants LIKE ? ESCAPE '\\') "
            "ORDER BY COALESCE(n.meeting_date, n.created_at) DESC "
            "LIMIT ?",
            (pattern, pattern, limit),
        ).fetchall()
    return [dict(r) for r in rows]


def get_contact_stats() -> ContactStats:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS total_contacts, "
            "COALESCE(SUM(is_internal = 1), 0) AS internal_contacts, "
            "COALESCE(SUM(is_internal = 0), 0) AS external_contacts, "
            "COALESCE(SUM(account_id IS NOT NULL), 0) AS linked_contacts, "
            "COALESCE(SUM(suggested_account_id IS NOT NULL AND suggestion_confirmed = 0), 0) "
            "  AS pending_suggestions "
            "FROM contacts",
        ).fetchone()
    return ContactStats(**dict(row))


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

def bulk_update(contact_ids: list[str], action: str, value: dict | None = None) -> int:
    """Apply *action* to every contact in *contact_ids* in one transaction.

    Actions: ``delete``; ``set_internal`` with ``value={"is_internal": bool}``;
    ``set_account`` with ``value={"account_id": str}`` (empty string unlinks).
    Invalid input raises ValueError before anything is written.  A storage
    error rolls back the whole batch.  Returns the number of rows affected;
    ids that do not exist are not an error.
    """
    if not isinstance(contact_ids, list) or not contact_ids:
        raise ValueError("No contacts selected")
    if not all(isinstance(cid, str) for cid in contact_ids):
        raise ValueError("contact_ids must be strings")
    value = value or {}

    if action == "delete":
        sql = f"DELETE FROM contacts WHERE id IN ({placeholders(len(contact_ids))})"
        params: list[Any] = list(contact_ids)
    elif action == "set_internal":
        is_internal = value.get("is_internal")
        if not isinstance(is_internal, bool):
            raise ValueError("Invalid value for is_internal")
        sql = (
            "UPDATE contacts SET is_internal = ?, updated_at = ? "
            f"WHERE id IN ({placeholders(len(contact_ids))})"
        )
        params = [int(is_internal), now_iso(), *contact_ids]
    elif action == "set_account":
        account_id = value.get("account_id")
        if not isinstance(account_id, str):
            raise ValueError("Invalid value for account_id")
        sql = (
            "UPDATE contacts SET account_id = ?, updated_at = ? "
            f"WHERE id IN ({placeholders(len(contact_ids))})"
        )
        params = [account_id or None, now_iso(), *contact_ids]
    else:
        raise ValueError(f"Invalid action: {action}")

    with get_connection() as conn:
        cur = conn.execute(sql, params)
    log.info("Bulk %s on %d contact(s): %d affected", action, len(contact_ids), cur.rowcount)
    return cur.rowcount
