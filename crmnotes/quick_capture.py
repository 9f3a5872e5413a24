"""One-shot capture of a note or todo from minimal input."""

from __future__ import annotations

from typing import Any

from .accounts import get_or_create_unassigned
from .notes import create_note
from .todos import create_todo

CAPTURE_TYPES = ("note", "todo")


def capture(
    capture_type: str,
    title: str,
    *,
    content: str = "",
    description: str = "",
    priority: str | None = None,
    account_id: str | None = None,
) -> dict[str, Any]:
    """Create a quick note or todo.

    Notes without an account go to the catch-all "Unassigned" account.
    Raises ValueError for an unknown type or invalid fields.
    """
    if capture_type not in CAPTURE_TYPES:
        raise ValueError("Invalid type, must be 'note' or 'todo'")

    if capture_type == "note":
        note = create_note(
            title,
            account_id or get_or_create_unassigned(),
            template_type="quick",
            content=content,
        )
        return {"type": "note", **note}

    todo = create_todo(
        title,
        description=description,
        priority=priority,
        account_id=account_id,
    )
    return {"type": "todo", **todo}
