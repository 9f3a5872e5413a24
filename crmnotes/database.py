"""SQLite connection management, schema initialization, and helpers."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from . import config

log = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Accounts (customer organisations)
CREATE TABLE IF NOT EXISTS accounts (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    account_owner TEXT DEFAULT '',
    budget        REAL,
    est_engineers INTEGER,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

-- Meeting notes
CREATE TABLE IF NOT EXISTS notes (
    id                    TEXT PRIMARY KEY,
    title                 TEXT NOT NULL,
    account_id            TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
    template_type         TEXT DEFAULT 'initial',
    internal_participants TEXT DEFAULT '[]',
    external_participants TEXT DEFAULT '[]',
    content               TEXT DEFAULT '',
    meeting_id            TEXT,
    meeting_date          TEXT,
    pinned                INTEGER DEFAULT 0,
    archived              INTEGER DEFAULT 0,
    sort_order            INTEGER DEFAULT 0,
    deleted_at            TEXT,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);

-- Todos / follow-ups
CREATE TABLE IF NOT EXISTS todos (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT DEFAULT '',
    status      TEXT DEFAULT 'not_started',
    priority    TEXT DEFAULT 'medium',
    due_date    TEXT,
    account_id  TEXT REFERENCES accounts(id) ON DELETE SET NULL,
    pinned      INTEGER DEFAULT 0,
    deleted_at  TEXT,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    CONSTRAINT valid_status CHECK (status IN ('not_started', 'in_progress', 'stuck', 'completed')),
    CONSTRAINT valid_priority CHECK (priority IN ('low', 'medium', 'high'))
);

-- Note <-> Todo M:N join
CREATE TABLE IF NOT EXISTS note_todos (
    note_id    TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
    todo_id    TEXT NOT NULL REFERENCES todos(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (note_id, todo_id)
);

-- Tags
CREATE TABLE IF NOT EXISTS tags (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL UNIQUE,
    color      TEXT DEFAULT '#6b7280',
    created_at TEXT NOT NULL
);

-- Note <-> Tag M:N join
CREATE TABLE IF NOT EXISTS note_tags (
    note_id    TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
    tag_id     TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (note_id, tag_id)
);

-- Uploaded files attached to notes
CREATE TABLE IF NOT EXISTS attachments (
    id            TEXT PRIMARY KEY,
    note_id       TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
    filename      TEXT NOT NULL,
    original_name TEXT NOT NULL,
    mime_type     TEXT,
    size_bytes    INTEGER,
    created_at    TEXT NOT NULL
);

-- Contacts (one row per distinct e-mail address)
CREATE TABLE IF NOT EXISTS contacts (
    id                   TEXT PRIMARY KEY,
    email                TEXT NOT NULL UNIQUE,
    name                 TEXT DEFAULT '',
    company              TEXT DEFAULT '',
    domain               TEXT DEFAULT '',
    is_internal          INTEGER DEFAULT 0,
    account_id           TEXT REFERENCES accounts(id) ON DELETE SET NULL,
    suggested_account_id TEXT REFERENCES accounts(id) ON DELETE SET NULL,
    suggestion_confirmed INTEGER DEFAULT 0,
    source               TEXT DEFAULT 'manual',
    first_seen           TEXT NOT NULL,
    last_seen            TEXT NOT NULL,
    meeting_count        INTEGER DEFAULT 0,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL
);

-- Per-account activity feed (note and todo events, manual entries)
CREATE TABLE IF NOT EXISTS activities (
    id          TEXT PRIMARY KEY,
    account_id  TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
    type        TEXT NOT NULL,
    title       TEXT NOT NULL,
    description TEXT DEFAULT '',
    entity_type TEXT DEFAULT '',
    entity_id   TEXT DEFAULT '',
    created_at  TEXT NOT NULL
);

-- Full-text index over note title + plain-text body (synced by notes.py)
CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
    note_id UNINDEXED,
    title,
    content_text,
    tokenize='unicode61'
);

-- Cascaded note deletes (account removal) must not leave index rows behind
CREATE TRIGGER IF NOT EXISTS notes_fts_ad AFTER DELETE ON notes BEGIN
    DELETE FROM notes_fts WHERE note_id = OLD.id;
END;
"""

_INDEX_SQL = """\
CREATE INDEX IF NOT EXISTS idx_notes_account       ON notes(account_id);
CREATE INDEX IF NOT EXISTS idx_notes_meeting_date  ON notes(meeting_date);
CREATE INDEX IF NOT EXISTS idx_notes_deleted       ON notes(deleted_at);
CREATE INDEX IF NOT EXISTS idx_todos_status        ON todos(status);
CREATE INDEX IF NOT EXISTS idx_todos_account       ON todos(account_id);
CREATE INDEX IF NOT EXISTS idx_note_todos_todo     ON note_todos(todo_id);
CREATE INDEX IF NOT EXISTS idx_note_tags_tag       ON note_tags(tag_id);
CREATE INDEX IF NOT EXISTS idx_attachments_note    ON attachments(note_id);
CREATE INDEX IF NOT EXISTS idx_contacts_domain     ON contacts(domain);
CREATE INDEX IF NOT EXISTS idx_contacts_account    ON contacts(account_id);
CREATE INDEX IF NOT EXISTS idx_contacts_suggested  ON contacts(suggested_account_id);
CREATE INDEX IF NOT EXISTS idx_activities_account ON activities(account_id, created_at);
"""

# Shared predicate for "not in the trash"; every default listing and every
# search path filters on it.
ACTIVE = "deleted_at IS NULL"


def _db_path() -> Path:
    return config.DB_PATH


def _drop_stemmed_index(conn: sqlite3.Connection) -> bool:
    """Drop a ``notes_fts`` table built with the porter stemmer.

    Stemmed terms break prefix queries ("generat"* never reaches "gener").
    Returns True when the table was dropped and must be repopulated.
    """
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'notes_fts'"
    ).fetchone()
    if row is None or "porter" not in (row[0] or ""):
        return False
    conn.execute("DROP TABLE notes_fts")
    return True


def init_db(db_path: Path | None = None) -> None:
    """Create the database file and initialize all tables and indexes."""
    path = db_path or _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        reindex = _drop_stemmed_index(conn)
        conn.executescript(_SCHEMA_SQL)
        conn.executescript(_INDEX_SQL)
        conn.commit()
        log.info("Database initialized at %s", path)
    finally:
        conn.close()

    if reindex:
        from .notes import rebuild_fts

        count = rebuild_fts(path)
        log.warning("Rebuilt full-text index without stemming (%d notes)", count)


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Context manager yielding a SQLite connection with WAL and FK enforcement.

    Commits on clean exit, rolls back on exception.
    """
    path = db_path or _db_path()
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def like_pattern(text: str) -> str:
    """Build a ``%text%`` pattern that matches *text* literally.

    Use together with ``LIKE ? ESCAPE '\\'``.
    """
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def placeholders(n: int) -> str:
    """Return ``?, ?, ...`` for an ``IN (...)`` clause of *n* values."""
    return ", ".join("?" for _ in range(n))
