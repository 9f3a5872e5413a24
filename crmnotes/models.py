"""Data models for the meeting-notes CRM."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class TodoStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    STUCK = "stuck"
    COMPLETED = "completed"


class TodoPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Lifecycle(Enum):
    """Deletion state of a note or todo.

    ``ACTIVE`` rows have ``deleted_at IS NULL``; ``TRASHED`` rows carry a
    deletion timestamp and can be restored; ``PURGED`` rows no longer exist.
    """

    ACTIVE = "active"
    TRASHED = "trashed"
    PURGED = "purged"

    @classmethod
    def of(cls, row) -> Lifecycle:
        if row is None:
            return cls.PURGED
        return cls.TRASHED if dict(row).get("deleted_at") else cls.ACTIVE


class ResultType(Enum):
    NOTE = "note"
    ACCOUNT = "account"
    TODO = "todo"


def parse_participants(raw: str | None) -> list[str]:
    """Decode a JSON participant list column; anything unparsable is empty."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


@dataclass
class SearchResult:
    """A single hit from unified search."""

    type: str
    id: str
    title: str
    snippet: str = ""
    account_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.type, self.id)


@dataclass
class Account:
    id: str
    name: str
    account_owner: str = ""
    budget: float | None = None
    est_engineers: int | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row) -> Account:
        r = dict(row)
        return cls(
            id=r["id"],
            name=r["name"],
            account_owner=r.get("account_owner") or "",
            budget=r.get("budget"),
            est_engineers=r.get("est_engineers"),
            created_at=r.get("created_at") or "",
            updated_at=r.get("updated_at") or "",
        )


@dataclass
class Activity:
    """One entry in an account's activity feed."""

    id: str
    account_id: str
    type: str
    title: str
    description: str = ""
    entity_type: str = ""
    entity_id: str = ""
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> Activity:
        r = dict(row)
        return cls(
            id=r["id"],
            account_id=r["account_id"],
            type=r["type"],
            title=r["title"],
            description=r.get("description") or "",
            entity_type=r.get("entity_type") or "",
            entity_id=r.get("entity_id") or "",
            created_at=r.get("created_at") or "",
        )


@dataclass
class Todo:
    id: str
    title: str
    description: str = ""
    status: str = TodoStatus.NOT_STARTED.value
    priority: str = TodoPriority.MEDIUM.value
    due_date: str | None = None
    account_id: str | None = None
    account_name: str | None = None
    pinned: bool = False
    deleted_at: str | None = None
    created_at: str = ""
    updated_at: str = ""
    linked_notes: list[dict] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> Todo:
        r = dict(row)
        return cls(
            id=r["id"],
            title=r["title"],
            description=r.get("description") or "",
            status=r.get("status") or TodoStatus.NOT_STARTED.value,
            priority=r.get("priority") or TodoPriority.MEDIUM.value,
            due_date=r.get("due_date"),
            account_id=r.get("account_id"),
            account_name=r.get("account_name"),
            pinned=bool(r.get("pinned")),
            deleted_at=r.get("deleted_at"),
            created_at=r.get("created_at") or "",
            updated_at=r.get("updated_at") or "",
        )


@dataclass
class Contact:
    """A person seen in meeting participants or added by hand."""

    id: str
    email: str
    name: str = ""
    company: str = ""
    domain: str = ""
    is_internal: bool = False
    account_id: str | None = None
    account_name: str | None = None
    suggested_account_id: str | None = None
    suggested_account_name: str | None = None
    suggestion_confirmed: bool = False
    source: str = "manual"
    first_seen: str = ""
    last_seen: str = ""
    meeting_count: int = 0
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row) -> Contact:
        """Construct from a sqlite3.Row or dict.

        ``account_name`` / ``suggested_account_name`` are read when the
        query joined them in.
        """
        r = dict(row)
        return cls(
            id=r["id"],
            email=r["email"],
            name=r.get("name") or "",
            company=r.get("company") or "",
            domain=r.get("domain") or "",
            is_internal=bool(r.get("is_internal")),
            account_id=r.get("account_id"),
            account_name=r.get("account_name"),
            suggested_account_id=r.get("suggested_account_id"),
            suggested_account_name=r.get("suggested_account_name"),
            suggestion_confirmed=bool(r.get("suggestion_confirmed")),
            source=r.get("source") or "manual",
            first_seen=r.get("first_seen") or "",
            last_seen=r.get("last_seen") or "",
            meeting_count=r.get("meeting_count") or 0,
            created_at=r.get("created_at") or "",
            updated_at=r.get("updated_at") or "",
        )


@dataclass
class ContactStats:
    total_contacts: int = 0
    internal_contacts: int = 0
    external_contacts: int = 0
    linked_contacts: int = 0
    pending_suggestions: int = 0


@dataclass
class SuggestedAccount:
    id: str
    name: str


@dataclass
class DomainGroup:
    """External contacts sharing one e-mail domain."""

    domain: str
    contact_count: int = 0
    contact_ids: list[str] = field(default_factory=list)
    is_internal: bool = False
    linked_account_id: str | None = None
    linked_account_name: str | None = None
    suggested_account: SuggestedAccount | None = None
    contacts: list[Contact] | None = None


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
