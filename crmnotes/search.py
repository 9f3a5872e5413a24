"""Unified search across notes, accounts and todos.

Four lookups run in a fixed order and their hits are concatenated:

1. note title/body through the FTS5 index (prefix match, relevance order)
2. note participant lists (substring)
3. account name/owner (substring)
4. todo title/description (substring)

A ``(type, id)`` pair is emitted once, by the first lookup that finds it.
Trashed notes and todos never appear.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterator

from .database import ACTIVE, get_connection, like_pattern
from .models import ResultType, SearchResult

log = logging.getLogger(__name__)

NOTE_FTS_LIMIT = 20
PARTICIPANT_LIMIT = 10
ACCOUNT_LIMIT = 10
TODO_LIMIT = 10

TODO_SNIPPET_CHARS = 100
PARTICIPANT_SNIPPET = "Match in participants"


def build_fts_query(query: str) -> str:
    """Turn free text into an FTS5 expression of quoted prefix tokens.

    ``kick off`` becomes ``"kick"* "off"*`` (all terms must match).
    """
    terms = query.split()
    return " ".join('"' + t.replace('"', '""') + '"*' for t in terms)


# ---------------------------------------------------------------------------
# Individual lookups
# ---------------------------------------------------------------------------

def _notes_by_content(conn, query: str) -> Iterator[SearchResult]:
    try:
        rows = conn.execute(
            "SELECT n.id, n.title, n.account_id, "
            "       snippet(notes_fts, -1, '<mark>', '</mark>', '...', 32) AS snippet "
            "FROM notes_fts "
            "JOIN notes n ON n.id = notes_fts.note_id "
            f"WHERE notes_fts MATCH ? AND n.{ACTIVE} "
            "ORDER BY rank "
            "LIMIT ?",
            (build_fts_query(query), NOTE_FTS_LIMIT),
        ).fetchall()
    except sqlite3.OperationalError as exc:
        # Input the FTS5 parser rejects simply has no full-text hits.
        log.warning("Full-text lookup skipped for %r: %s", query, exc)
        return
    for r in rows:
        yield SearchResult(
            type=ResultType.NOTE.value,
            id=r["id"],
            title=r["title"],
            snippet=r["snippet"] or "",
            account_id=r["account_id"],
        )


def _notes_by_participant(conn, query: str) -> Iterator[SearchResult]:
    pattern = like_pattern(query)
    rows = conn.execute(
        "SELECT id, title, account_id FROM notes "
        f"WHERE {ACTIVE} "
        "AND (internal_participants LIKE ? ESCAPE '\\' "
        "     OR external_participants LIKE ? ESCAPE '\\') "
        "LIMIT ?",
        (pattern, pattern, PARTICIPANT_LIMIT),
    ).fetchall()
    for r in rows:
        yield SearchResult(
            type=ResultType.NOTE.value,
            id=r["id"],
            title=r["title"],
            snippet=PARTICIPANT_SNIPPET,
            account_id=r["account_id"],
        )


def _accounts(conn, query: str) -> Iterator[SearchResult]:
    pattern = like_pattern(query)
    needle = query.lower()
    rows = conn.execute(
        "SELECT id, name, account_owner FROM accounts "
        "WHERE name LIKE ? ESCAPE '\\' OR account_owner LIKE ? ESCAPE '\\' "
        "LIMIT ?",
        (pattern, pattern, ACCOUNT_LIMIT),
    ).fetchall()
    for r in rows:
        owner = r["account_owner"] or ""
        snippet = f"Owner: {owner}" if owner and needle in owner.lower() else ""
        yield SearchResult(
            type=ResultType.ACCOUNT.value,
            id=r["id"],
            title=r["name"],
            snippet=snippet,
        )


def todo_snippet(description: str, query: str, account_name: str | None) -> str:
    """Description excerpt when it matched, plus the linked account name."""
    snippet = ""
    if description and query.lower() in description.lower():
        if len(description) > TODO_SNIPPET_CHARS:
            snippet = description[:TODO_SNIPPET_CHARS] + "..."
        else:
            snippet = description
    if account_name:
        if snippet:
            snippet += " | "
        snippet += f"Account: {account_name}"
    return snippet


def _todos(conn, query: str) -> Iterator[SearchResult]:
    pattern = like_pattern(query)
    rows = conn.execute(
        "SELECT t.id, t.title, t.description, t.account_id, a.name AS account_name "
        "FROM todos t LEFT JOIN accounts a ON a.id = t.account_id "
        f"WHERE t.{ACTIVE} "
        "AND (t.title LIKE ? ESCAPE '\\' OR t.description LIKE ? ESCAPE '\\') "
        "LIMIT ?",
        (pattern, pattern, TODO_LIMIT),
    ).fetchall()
    for r in rows:
        yield SearchResult(
            type=ResultType.TODO.value,
            id=r["id"],
            title=r["title"],
            snippet=todo_snippet(r["description"] or "", query, r["account_name"]),
            account_id=r["account_id"],
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

_LOOKUPS = (_notes_by_content, _notes_by_participant, _accounts, _todos)


def search(query: str) -> list[SearchResult]:
    """Search everything for *query*.

    Raises ValueError for an empty or blank query.
    """
    query = (query or "").strip()
    if not query:
        raise ValueError("Query parameter 'q' is required")

    results: list[SearchResult] = []
    seen: set[tuple[str, str]] = set()
    with get_connection() as conn:
        for lookup in _LOOKUPS:
            for hit in lookup(conn, query):
                if hit.key in seen:
                    continue
                seen.add(hit.key)
                results.append(hit)

    log.debug("Search %r: %d result(s)", query, len(results))
    return results
