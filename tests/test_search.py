"""Tests for crmnotes.search: unified search across notes, accounts and todos."""

from __future__ import annotations

import pytest

from crmnotes.accounts import create_account
from crmnotes.database import get_connection, init_db
from crmnotes.notes import create_note, trash_note, update_note
from crmnotes.search import build_fts_query, search, todo_snippet
from crmnotes.todos import create_todo, trash_todo


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    db_file = tmp_path / "test.db"
    monkeypatch.setattr("crmnotes.config.DB_PATH", db_file)
    init_db(db_file)
    return db_file


@pytest.fixture()
def account(tmp_db):
    return create_account("Globex", account_owner="Hank Scorpio")


def _keys(results):
    return [(r.type, r.id) for r in results]


class TestBuildFtsQuery:
    def test_prefix_terms(self):
        assert build_fts_query("kick off") == '"kick"* "off"*'

    def test_quotes_escaped(self):
        assert build_fts_query('say "hi"') == '"say"* """hi"""*'


class TestTodoSnippet:
    def test_description_match(self):
        assert todo_snippet("Send the contract", "contract", None) == "Send the contract"

    def test_long_description_truncated(self):
        desc = "contract " + "x" * 200
        snippet = todo_snippet(desc, "contract", None)
        assert snippet == desc[:100] + "..."

    def test_account_suffix(self):
        assert todo_snippet("Send the contract", "CONTRACT", "Globex") == (
            "Send the contract | Account: Globex"
        )

    def test_title_match_only_account(self):
        assert todo_snippet("unrelated", "contract", "Globex") == "Account: Globex"
        assert todo_snippet("unrelated", "contract", None) == ""


class TestSearch:
    def test_empty_query_rejected(self, tmp_db):
        for q in ("", "   ", None):
            with pytest.raises(ValueError):
                search(q)

    def test_no_matches_is_empty(self, account):
        create_note("Weekly sync", account["id"], content="<p>status</p>")
        assert search("zebra") == []

    def test_kickoff_scenario(self, account):
        note = create_note("Kickoff call", account["id"], content="<p>kickoff agenda</p>")

        results = search("kickoff")
        assert len(results) == 1
        hit = results[0]
        assert (hit.type, hit.id) == ("note", note["id"])
        assert hit.account_id == account["id"]
        assert "<mark>" in hit.snippet
        assert "kickoff" in hit.snippet.lower()

    def test_prefix_match(self, account):
        note = create_note("Roadmap", account["id"], content="<p>integration review</p>")
        assert _keys(search("integ")) == [("note", note["id"])]

    def test_fts_does_not_match_inside_words(self, account):
        create_note("Roadmap", account["id"], content="<p>integration review</p>")
        assert search("gration") == []

    def test_participant_match(self, account):
        note = create_note(
            "Sync", account["id"], external_participants=["jane@initech.com"],
        )
        results = search("initech")
        assert _keys(results) == [("note", note["id"])]
        assert results[0].snippet == "Match in participants"

    def test_note_found_by_content_not_repeated_for_participants(self, account):
        note = create_note(
            "jane review", account["id"], external_participants=["jane@initech.com"],
        )
        results = search("jane")
        assert _keys(results) == [("note", note["id"])]
        assert results[0].snippet != "Match in participants"

    def test_account_owner_snippet(self, account):
        results = search("scorpio")
        assert _keys(results) == [("account", account["id"])]
        assert results[0].snippet == "Owner: Hank Scorpio"
        assert results[0].account_id is None

    def test_account_name_match_has_empty_snippet(self, account):
        results = search("globex")
        assert _keys(results) == [("account", account["id"])]
        assert results[0].snippet == ""

    def test_todo_match(self, account):
        todo = create_todo(
            "Follow up", description="Send the contract draft", account_id=account["id"],
        )
        results = search("contract")
        assert _keys(results) == [("todo", todo["id"])]
        assert results[0].snippet == "Send the contract draft | Account: Globex"

    def test_stream_order(self, account):
        fts = create_note("Hammock plan", account["id"])
        by_participant = create_note(
            "Sync", account["id"], internal_participants=["hammock@example.com"],
        )
        acct = create_account("Hammock Inc")
        todo = create_todo("Buy hammock")

        assert _keys(search("hammock")) == [
            ("note", fts["id"]),
            ("note", by_participant["id"]),
            ("account", acct["id"]),
            ("todo", todo["id"]),
        ]

    def test_no_duplicate_keys(self, account):
        for i in range(5):
            create_note(
                f"alpha {i}", account["id"],
                content="<p>alpha</p>",
                internal_participants=["alpha@example.com"],
            )
        create_todo("alpha", description="alpha alpha")
        keys = _keys(search("alpha"))
        assert len(keys) == len(set(keys)) == 6

    def test_trashed_items_excluded(self, account):
        note = create_note(
            "Secret plan", account["id"], internal_participants=["secret@example.com"],
        )
        todo = create_todo("secret todo")
        trash_note(note["id"])
        trash_todo(todo["id"])
        assert search("secret") == []

    def test_updated_content_is_reindexed(self, account):
        note = create_note("Notes", account["id"], content="<p>apples</p>")
        update_note(note["id"], content="<p>oranges</p>")
        assert search("apples") == []
        assert _keys(search("oranges")) == [("note", note["id"])]

    def test_like_wildcards_are_literal(self, account):
        create_todo("100 percent done")
        todo = create_todo("50% off")
        assert _keys(search("%")) == [("todo", todo["id"])]

    def test_fts_syntax_does_not_fail(self, account):
        create_todo('odd "quoted" title')
        results = search('"quoted')
        assert [r.type for r in results] == ["todo"]

    def test_editor_json_content_indexed(self, account):
        doc = '{"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "budget approval"}]}]}'
        note = create_note("Json body", account["id"], content=doc)
        assert _keys(search("approval")) == [("note", note["id"])]

    @pytest.mark.parametrize("partial", ["generat", "organizat", "happine", "generation"])
    def test_partial_word_beyond_stem(self, account, partial):
        note = create_note(
            "Planning", account["id"],
            content="<p>lead generation and organization for happiness</p>",
        )
        assert ("note", note["id"]) in _keys(search(partial))


class TestStemmedIndexMigration:
    def test_porter_index_rebuilt_on_init(self, tmp_db):
        acct = create_account("Globex")
        note = create_note("Planning", acct["id"], content="<p>lead generation</p>")

        with get_connection() as conn:
            conn.execute("DROP TABLE notes_fts")
            conn.execute(
                "CREATE VIRTUAL TABLE notes_fts USING fts5("
                "note_id UNINDEXED, title, content_text, tokenize='porter unicode61')"
            )
        init_db(tmp_db)

        with get_connection() as conn:
            sql = conn.execute(
                "SELECT sql FROM sqlite_master WHERE name = 'notes_fts'"
            ).fetchone()[0]
        assert "porter" not in sql
        assert _keys(search("generat")) == [("note", note["id"])]
