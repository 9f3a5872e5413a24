"""Tests for crmnotes.todos."""

from __future__ import annotations

import pytest

from crmnotes.accounts import create_account, delete_account
from crmnotes.database import init_db
from crmnotes.notes import create_note, get_note, trash_note
from crmnotes.todos import (
    create_todo,
    get_todo,
    link_note,
    list_todos,
    list_trashed_todos,
    purge_todo,
    restore_todo,
    toggle_pin,
    trash_todo,
    unlink_note,
    update_todo,
)


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    db_file = tmp_path / "test.db"
    monkeypatch.setattr("crmnotes.config.DB_PATH", db_file)
    init_db(db_file)
    return db_file


@pytest.fixture()
def account(tmp_db):
    return create_account("Acme Corp")


class TestTodoCrud:
    def test_defaults(self, tmp_db):
        todo = create_todo("Send deck")
        assert todo["status"] == "not_started"
        assert todo["priority"] == "medium"
        assert todo["pinned"] is False
        assert todo["linked_notes"] == []
        assert todo["account_id"] is None

    def test_with_account_and_note(self, account):
        note = create_note("Kickoff", account["id"])
        todo = create_todo(
            "Send deck", priority="high", due_date="2024-05-01T09:00:00+00:00",
            account_id=account["id"], note_id=note["id"],
        )
        assert todo["account_name"] == "Acme Corp"
        assert todo["linked_notes"] == [{"id": note["id"], "title": "Kickoff"}]
        assert todo["due_date"] == "2024-05-01T09:00:00+00:00"

    @pytest.mark.parametrize("kwargs", [
        {"status": "done"},
        {"priority": "urgent"},
        {"due_date": "whenever"},
        {"account_id": "missing"},
        {"note_id": "missing"},
        {"description": 5},
    ])
    def test_create_invalid(self, tmp_db, kwargs):
        with pytest.raises(ValueError):
            create_todo("Send deck", **kwargs)

    def test_title_required(self, tmp_db):
        with pytest.raises(ValueError):
            create_todo("  ")

    def test_list_filters_by_status(self, tmp_db):
        a = create_todo("A", status="in_progress")
        create_todo("B")
        assert [t["id"] for t in list_todos("in_progress")] == [a["id"]]
        with pytest.raises(ValueError):
            list_todos("bogus")

    def test_update(self, account):
        todo = create_todo("Send deck", account_id=account["id"])
        updated = update_todo(todo["id"], status="completed", account_id="")
        assert updated["status"] == "completed"
        assert updated["account_id"] is None

    def test_update_errors(self, tmp_db):
        todo = create_todo("Send deck")
        with pytest.raises(ValueError):
            update_todo(todo["id"])
        with pytest.raises(ValueError):
            update_todo(todo["id"], priority="urgent")
        assert update_todo("missing", title="x") is None

    def test_account_delete_keeps_todo(self, account):
        todo = create_todo("Send deck", account_id=account["id"])
        delete_account(account["id"])
        assert get_todo(todo["id"])["account_id"] is None


class TestTodoLifecycle:
    def test_trash_restore_purge(self, tmp_db):
        todo = create_todo("Send deck")

        assert trash_todo(todo["id"]) is True
        assert list_todos() == []
        assert [t["id"] for t in list_trashed_todos()] == [todo["id"]]

        assert restore_todo(todo["id"]) is True
        assert [t["id"] for t in list_todos()] == [todo["id"]]

        assert purge_todo(todo["id"]) is True
        assert get_todo(todo["id"]) is None
        assert purge_todo(todo["id"]) is False

    def test_pin_orders_first(self, tmp_db):
        older = create_todo("Older")
        create_todo("Newer")
        assert toggle_pin(older["id"]) is True
        assert list_todos()[0]["id"] == older["id"]
        assert toggle_pin("missing") is None


class TestNoteLinks:
    def test_link_and_unlink(self, account):
        note = create_note("Kickoff", account["id"])
        todo = create_todo("Send deck")

        assert link_note(todo["id"], note["id"]) is True
        assert link_note(todo["id"], note["id"]) is True
        assert [t["id"] for t in get_note(note["id"])["todos"]] == [todo["id"]]

        assert unlink_note(todo["id"], note["id"]) is True
        assert unlink_note(todo["id"], note["id"]) is False
        assert get_todo(todo["id"])["linked_notes"] == []

    def test_link_missing(self, account):
        todo = create_todo("Send deck")
        assert link_note(todo["id"], "missing") is False
        assert link_note("missing", create_note("N", account["id"])["id"]) is False

    def test_trashed_note_hidden_from_links(self, account):
        note = create_note("Kickoff", account["id"])
        todo = create_todo("Send deck", note_id=note["id"])
        trash_note(note["id"])
        assert get_todo(todo["id"])["linked_notes"] == []

    def test_trashed_todo_hidden_from_note(self, account):
        note = create_note("Kickoff", account["id"])
        todo = create_todo("Send deck", note_id=note["id"])
        trash_todo(todo["id"])
        assert get_note(note["id"])["todos"] == []
