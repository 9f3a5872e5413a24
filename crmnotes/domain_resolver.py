"""E-mail domain handling: classification, account matching, and domain groups."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from . import config
from .database import get_connection, like_pattern
from .models import Contact, DomainGroup, SuggestedAccount, now_iso

log = logging.getLogger(__name__)

# Stripped from a domain to get the bare company token, first match only.
COMPANY_SUFFIXES: tuple[str, ...] = (".com", ".io", ".ai", ".co")

# Contact rows joined with the names of their linked and suggested accounts.
CONTACT_SELECT = (
    "SELECT c.*, a.name AS account_name, sa.name AS suggested_account_name "
    "FROM contacts c "
    "LEFT JOIN accounts a ON a.id = c.account_id "
    "LEFT JOIN accounts sa ON sa.id = c.suggested_account_id"
)


def extract_domain(email: str) -> str:
    """Return the part after ``@``, lowercased.

    Addresses without exactly one ``@`` have no domain and yield ``""``.
    """
    if not email or email.count("@") != 1:
        return ""
    return email.split("@", 1)[1].lower()


def is_internal_domain(domain: str) -> bool:
    """True when *domain* is the configured internal domain.

    With no ``INTERNAL_DOMAIN`` configured nothing is internal.
    """
    return bool(domain) and domain.lower() == config.INTERNAL_DOMAIN


def is_internal_email(email: str) -> bool:
    return is_internal_domain(extract_domain(email))


def strip_domain_suffix(domain: str) -> str:
    """Drop the first matching entry of :data:`COMPANY_SUFFIXES`.

    ``"acme.com"`` -> ``"acme"``; ``"nvidia.ai"`` -> ``"nvidia"``;
    ``"example.org"`` is returned unchanged.
    """
    domain = domain.lower()
    for suffix in COMPANY_SUFFIXES:
        if domain.endswith(suffix):
            return domain[: -len(suffix)]
    return domain


def first_label(domain: str) -> str:
    return domain.lower().split(".", 1)[0]


def find_account_by_name_token(conn, token: str) -> dict | None:
    """Return the oldest account whose name contains *token* (case-insensitive)."""
    token = token.strip().lower()
    if not token:
        return None
    row = conn.execute(
        "SELECT id, name FROM accounts "
        "WHERE LOWER(name) LIKE ? ESCAPE '\\' "
        "ORDER BY created_at, id LIMIT 1",
        (like_pattern(token),),
    ).fetchone()
    return dict(row) if row else None


def find_account_by_domain_links(conn, domain: str) -> dict | None:
    """Return the account most contacts on *domain* are already linked to."""
    row = conn.execute(
        "SELECT a.id, a.name, COUNT(*) AS links FROM accounts a "
        "JOIN contacts c ON c.account_id = a.id "
        "WHERE c.domain = ? "
        "GROUP BY a.id, a.name "
        "ORDER BY links DESC, a.name "
        "LIMIT 1",
        (domain,),
    ).fetchone()
    return dict(row) if row else None


# ---------------------------------------------------------------------------
# Domain groups
# ---------------------------------------------------------------------------

def get_domain_groups(
    group_filter: str = "unlinked",
    *,
    include_contacts: bool = False,
) -> list[DomainGroup]:
    """Group external contacts by domain, largest group first.

    With ``group_filter="unlinked"`` only contacts without an account are counted.
    Groups that have no linked account get a suggested one: first the
    account most of the domain's contacts already point at, otherwise an
    account whose name contains the domain's first label.
    """
    if group_filter not in ("unlinked", "all"):
        raise ValueError(f"Invalid filter: {group_filter}")

    sql = (
        "SELECT domain, COUNT(*) AS contact_count, "
        "GROUP_CONCAT(id) AS contact_ids, MAX(account_id) AS account_id "
        "FROM contacts WHERE is_internal = 0"
    )
    if group_filter == "unlinked":
        sql += " AND account_id IS NULL"
    sql += " GROUP BY domain ORDER BY contact_count DESC, domain"

    groups: list[DomainGroup] = []
    with get_connection() as conn:
        for row in conn.execute(sql).fetchall():
            group = DomainGroup(
                domain=row["domain"] or "",
                contact_count=row["contact_count"],
                contact_ids=(row["contact_ids"] or "").split(",") if row["contact_ids"] else [],
            )
            if row["account_id"]:
                group.linked_account_id = row["account_id"]
                acct = conn.execute(
                    "SELECT name FROM accounts WHERE id = ?", (row["account_id"],),
                ).fetchone()
                group.linked_account_name = acct["name"] if acct else None
            else:
                match = find_account_by_domain_links(conn, group.domain)
                if match is None and group.domain:
                    match = find_account_by_name_token(conn, first_label(group.domain))
                if match:
                    group.suggested_account = SuggestedAccount(id=match["id"], name=match["name"])

            if include_contacts:
                group.contacts = [
                    Contact.from_row(r)
                    for r in conn.execute(
                        CONTACT_SELECT + " WHERE c.domain = ? ORDER BY c.name, c.email",
                        (group.domain,),
                    ).fetchall()
                ]
            groups.append(group)

    return groups


# ---------------------------------------------------------------------------
# Domain -> account linking
# ---------------------------------------------------------------------------

@dataclass
class DomainLinkResult:
    """Outcome of linking every external contact on a domain to an account."""

    domain: str
    account_id: str
    account_name: str
    contacts_updated: int = 0
    created_account: bool = False
    contact_ids: list[str] = field(default_factory=list)


def _link_domain(conn, domain: str, account_id: str) -> list[str]:
    ids = [
        r["id"] for r in conn.execute(
            "SELECT id FROM contacts WHERE domain = ? AND is_internal = 0",
            (domain,),
        ).fetchall()
    ]
    conn.execute(
        "UPDATE contacts SET account_id = ?, updated_at = ? "
        "WHERE domain = ? AND is_internal = 0",
        (account_id, now_iso(), domain),
    )
    return ids


def link_domain_to_account(domain: str, account_id: str) -> DomainLinkResult | None:
    """Link all external contacts on *domain* to an existing account.

    Returns None if the account does not exist.
    """
    domain = domain.strip().lower()
    if not domain:
        raise ValueError("Domain is required")

    with get_connection() as conn:
        acct = conn.execute(
            "SELECT id, name FROM accounts WHERE id = ?", (account_id,),
        ).fetchone()
        if not acct:
            return None
        ids = _link_domain(conn, domain, account_id)

    log.info("Linked %d contact(s) on %s to %s", len(ids), domain, acct["name"])
    return DomainLinkResult(
        domain=domain,
        account_id=account_id,
        account_name=acct["name"],
        contacts_updated=len(ids),
        contact_ids=ids,
    )


def default_account_name(domain: str) -> str:
    """``"acme.com"`` -> ``"Acme"``."""
    label = first_label(domain)
    return label.title() if label else domain


def create_account_from_domain(
    domain: str,
    account_name: str | None = None,
) -> DomainLinkResult:
    """Create an account for *domain* and link its external contacts to it."""
    domain = domain.strip().lower()
    if not domain:
        raise ValueError("Domain is required")
    name = (account_name or "").strip() or default_account_name(domain)

    account_id = str(uuid.uuid4())
    now = now_iso()
    with get_connection() as conn:
        conn.execute(
            "INSERT INTO accounts (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (account_id, name, now, now),
        )
        ids = _link_domain(conn, domain, account_id)

    log.info("Created account %s from domain %s (%d contact(s))", name, domain, len(ids))
    return DomainLinkResult(
        domain=domain,
        account_id=account_id,
        account_name=name,
        contacts_updated=len(ids),
        created_account=True,
        contact_ids=ids,
    )
