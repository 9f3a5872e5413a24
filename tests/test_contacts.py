"""Tests for crmnotes.contacts: upsert, suggestions, CRUD and bulk actions."""

from __future__ import annotations

import sqlite3

import pytest

from crmnotes.accounts import create_account
from crmnotes.contacts import (
    DuplicateContactError,
    bulk_update,
    confirm_suggestion,
    create_contact,
    delete_contact,
    extract_from_note,
    get_contact,
    get_contact_by_email,
    get_contact_notes,
    get_contact_stats,
    link_contact_to_account,
    list_contacts,
    suggest_account_for_contact,
    suggest_unlinked,
    update_contact,
    upsert_from_email,
)
from crmnotes.database import get_connection, init_db
from crmnotes.notes import create_note, trash_note


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    db_file = tmp_path / "test.db"
    monkeypatch.setattr("crmnotes.config.DB_PATH", db_file)
    monkeypatch.setattr("crmnotes.config.INTERNAL_DOMAIN", "example.com")
    init_db(db_file)
    return db_file


def _count_contacts():
    with get_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM contacts").fetchone()[0]


# ---------------------------------------------------------------------------
# Upsert from e-mail
# ---------------------------------------------------------------------------

class TestUpsertFromEmail:
    def test_creates_contact(self, tmp_db):
        contact_id = upsert_from_email("Jane@Acme.com", "Jane", "note")

        c = get_contact(contact_id)
        assert c.email == "jane@acme.com"
        assert c.domain == "acme.com"
        assert c.is_internal is False
        assert c.name == "Jane"
        assert c.source == "note"
        assert c.meeting_count == 1

    def test_idempotent_per_email(self, tmp_db):
        first = upsert_from_email("A@X.com", "", "note")
        second = upsert_from_email("a@x.com  ", "", "note")

        assert first == second
        assert _count_contacts() == 1
        assert get_contact(first).meeting_count == 2

    def test_empty_email_is_noop(self, tmp_db):
        assert upsert_from_email("   ", "Nobody") is None
        assert _count_contacts() == 0

    def test_internal_domain(self, tmp_db):
        c = get_contact(upsert_from_email("bob@example.com"))
        assert c.is_internal is True

    def test_name_filled_only_when_empty(self, tmp_db):
        cid = upsert_from_email("jane@acme.com", "")
        upsert_from_email("jane@acme.com", "Jane Doe")
        assert get_contact(cid).name == "Jane Doe"

        upsert_from_email("jane@acme.com", "Someone Else")
        assert get_contact(cid).name == "Jane Doe"

    def test_last_seen_bumped(self, tmp_db):
        cid = upsert_from_email("jane@acme.com")
        before = get_contact(cid).last_seen
        upsert_from_email("jane@acme.com")
        assert get_contact(cid).last_seen >= before

    def test_new_contact_gets_suggestion(self, tmp_db):
        acct = create_account("Acme Corp")

        c = get_contact(upsert_from_email("Jane@Acme.com"))
        assert c.domain == "acme.com"
        assert c.is_internal is False
        assert c.suggested_account_id == acct["id"]
        assert c.suggested_account_name == "Acme Corp"
        assert c.account_id is None


class TestExtractFromNote:
    def test_upserts_both_lists(self, tmp_db):
        done = extract_from_note(["bob@example.com"], ["jane@acme.com", "joe@globex.org"])
        assert done == 3
        assert _count_contacts() == 3
        assert get_contact_by_email("bob@example.com").is_internal is True

    def test_repeated_participant_counted_twice(self, tmp_db):
        extract_from_note([], ["jane@acme.com", "JANE@acme.com"])
        assert _count_contacts() == 1
        assert get_contact_by_email("jane@acme.com").meeting_count == 2

    def test_skips_non_strings_and_blanks(self, tmp_db):
        assert extract_from_note(None, [None, 42, "", "jane@acme.com"]) == 1

    def test_storage_error_is_logged_not_raised(self, tmp_db, monkeypatch, caplog):
        calls = []

        def flaky(email, display_name="", source="note"):
            calls.append(email)
            if email == "bad@acme.com":
                raise sqlite3.OperationalError("database is locked")
            return "id-" + email

        monkeypatch.setattr("crmnotes.contacts.upsert_from_email", flaky)

        done = extract_from_note(["bad@acme.com"], ["good@acme.com"])
        assert done == 1
        assert calls == ["bad@acme.com", "good@acme.com"]
        assert "bad@acme.com" in caplog.text


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class TestSuggestAccount:
    def test_suffix_stripped_before_match(self, tmp_db):
        acct = create_account("NVIDIA")
        cid = create_contact("ann@nvidia.ai").id
        assert get_contact(cid).suggested_account_id == acct["id"]

    def test_no_match_leaves_null(self, tmp_db):
        create_account("Globex")
        cid = create_contact("ann@acme.com").id
        assert get_contact(cid).suggested_account_id is None

    def test_internal_domain_skipped(self, tmp_db):
        create_account("Example Inc")
        cid = upsert_from_email("me@example.com")
        assert suggest_account_for_contact(cid, "example.com") is None
        assert get_contact(cid).suggested_account_id is None

    def test_empty_domain_skipped(self, tmp_db):
        create_account("Anything")
        cid = upsert_from_email("local-only")
        assert suggest_account_for_contact(cid, "") is None

    def test_never_touches_linked_contact(self, tmp_db):
        linked = create_account("Initrode")
        create_account("Acme Corp")
        cid = create_contact("jane@acme.org").id
        link_contact_to_account(cid, linked["id"])
        with get_connection() as conn:
            conn.execute(
                "UPDATE contacts SET suggested_account_id = ? WHERE id = ?",
                (linked["id"], cid),
            )

        assert suggest_account_for_contact(cid, "acme.com") is None
        c = get_contact(cid)
        assert c.account_id == linked["id"]
        assert c.suggested_account_id == linked["id"]

    def test_oldest_matching_account_wins(self, tmp_db):
        first = create_account("Acme Corp")
        create_account("Acme Labs")
        cid = create_contact("jane@acme.com").id
        assert get_contact(cid).suggested_account_id == first["id"]

    def test_suggest_unlinked_backfills(self, tmp_db):
        cid = create_contact("jane@acme.com").id
        assert get_contact(cid).suggested_account_id is None

        acct = create_account("Acme Corp")
        assert suggest_unlinked() == 1
        assert get_contact(cid).suggested_account_id == acct["id"]


class TestConfirmSuggestion:
    def _suggested(self):
        acct = create_account("Acme Corp")
        cid = create_contact("jane@acme.com").id
        assert get_contact(cid).suggested_account_id == acct["id"]
        return cid, acct["id"]

    def test_accept_copies_and_keeps_suggestion(self, tmp_db):
        cid, acct_id = self._suggested()
        assert confirm_suggestion(cid, True) is True

        c = get_contact(cid)
        assert c.account_id == acct_id
        assert c.suggested_account_id == acct_id
        assert c.suggestion_confirmed is True

    def test_reject_clears_suggestion_only(self, tmp_db):
        cid, _ = self._suggested()
        other = create_account("Other")
        update_contact(cid, account_id=other["id"])

        assert confirm_suggestion(cid, False) is True
        c = get_contact(cid)
        assert c.suggested_account_id is None
        assert c.account_id == other["id"]
        assert c.suggestion_confirmed is True

    def test_unknown_contact(self, tmp_db):
        assert confirm_suggestion("missing", True) is False

    def test_accept_without_suggestion_rejected(self, tmp_db):
        linked = create_account("Globex")
        cid = create_contact("jane@acme.org").id
        update_contact(cid, account_id=linked["id"])

        with pytest.raises(ValueError):
            confirm_suggestion(cid, True)
        c = get_contact(cid)
        assert c.account_id == linked["id"]
        assert c.suggestion_confirmed is False


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestContactCrud:
    def test_create_manual(self, tmp_db):
        c = create_contact(" Jane@Acme.com ", name="Jane", company="Acme")
        assert c.email == "jane@acme.com"
        assert c.source == "manual"
        assert c.meeting_count == 0

    def test_create_duplicate(self, tmp_db):
        create_contact("jane@acme.com")
        with pytest.raises(DuplicateContactError):
            create_contact("JANE@acme.com")

    @pytest.mark.parametrize("email", ["", "jane", "jane@", "a@b@c.com", 42, None])
    def test_create_invalid_email(self, tmp_db, email):
        with pytest.raises(ValueError):
            create_contact(email)

    def test_list_filters(self, tmp_db):
        acct = create_account("Acme Corp")
        create_contact("me@example.com")
        suggested = create_contact("jane@acme.com").id
        linked = create_contact("joe@globex.org").id
        link_contact_to_account(linked, acct["id"])

        assert [c.email for c in list_contacts("internal")] == ["me@example.com"]
        assert {c.email for c in list_contacts("external")} == {"jane@acme.com", "joe@globex.org"}
        assert [c.id for c in list_contacts("unlinked")] == [suggested]
        assert [c.id for c in list_contacts("suggestions")] == [suggested]
        assert [c.id for c in list_contacts(account_id=acct["id"])] == [linked]

    def test_list_invalid_filter(self, tmp_db):
        with pytest.raises(ValueError):
            list_contacts("vip")

    def test_update(self, tmp_db):
        acct = create_account("Acme Corp")
        cid = create_contact("jane@acme.org").id

        c = update_contact(cid, name=" Jane ", account_id=acct["id"])
        assert c.name == "Jane"
        assert c.account_name == "Acme Corp"

        c = update_contact(cid, account_id="")
        assert c.account_id is None

    def test_update_unknown_account(self, tmp_db):
        cid = create_contact("jane@acme.org").id
        with pytest.raises(ValueError):
            update_contact(cid, account_id="nope")

    def test_update_missing(self, tmp_db):
        assert update_contact("missing", name="x") is None

    def test_delete(self, tmp_db):
        cid = create_contact("jane@acme.org").id
        assert delete_contact(cid) is True
        assert delete_contact(cid) is False

    def test_link_marks_decided(self, tmp_db):
        acct = create_account("Globex")
        cid = create_contact("jane@acme.org").id
        c = link_contact_to_account(cid, acct["id"])
        assert c.account_id == acct["id"]
        assert c.suggestion_confirmed is True

    def test_link_errors(self, tmp_db):
        acct = create_account("Globex")
        cid = create_contact("jane@acme.org").id
        assert link_contact_to_account("missing", acct["id"]) is None
        with pytest.raises(ValueError):
            link_contact_to_account(cid, "missing")

    def test_contact_notes(self, tmp_db):
        acct = create_account("Acme Corp")
        cid = create_contact("jane@acme.com").id
        seen = create_note("Kickoff", acct["id"], external_participants=["jane@acme.com"])
        gone = create_note("Old", acct["id"], external_participants=["jane@acme.com"])
        create_note("Other", acct["id"], external_participants=["joe@acme.com"])
        trash_note(gone["id"])

        notes = get_contact_notes(cid)
        assert [n["id"] for n in notes] == [seen["id"]]
        assert notes[0]["account_name"] == "Acme Corp"
        assert get_contact_notes("missing") is None

    def test_stats(self, tmp_db):
        acct = create_account("Acme Corp")
        create_contact("me@example.com")
        create_contact("jane@acme.com")
        linked = create_contact("joe@globex.org").id
        link_contact_to_account(linked, acct["id"])

        stats = get_contact_stats()
        assert stats.total_contacts == 3
        assert stats.internal_contacts == 1
        assert stats.external_contacts == 2
        assert stats.linked_contacts == 1
        assert stats.pending_suggestions == 1


# ---------------------------------------------------------------------------
# Bulk actions
# ---------------------------------------------------------------------------

class TestBulkUpdate:
    def test_delete_with_missing_id(self, tmp_db):
        c1 = create_contact("a@acme.org").id
        keep = create_contact("b@acme.org").id

        assert bulk_update([c1, "does-not-exist"], "delete") == 1
        assert get_contact(c1) is None
        assert get_contact(keep) is not None

    def test_set_internal(self, tmp_db):
        ids = [create_contact("a@acme.org").id, create_contact("b@acme.org").id]
        assert bulk_update(ids, "set_internal", {"is_internal": True}) == 2
        assert all(get_contact(i).is_internal for i in ids)

    def test_set_account_and_clear(self, tmp_db):
        acct = create_account("Acme Corp")
        ids = [create_contact("a@acme.org").id, create_contact("b@acme.org").id]

        bulk_update(ids, "set_account", {"account_id": acct["id"]})
        assert {get_contact(i).account_id for i in ids} == {acct["id"]}

        bulk_update(ids, "set_account", {"account_id": ""})
        assert {get_contact(i).account_id for i in ids} == {None}

    @pytest.mark.parametrize("ids,action,value", [
        (["x"], "merge", None),
        (["x"], "set_internal", None),
        (["x"], "set_internal", {"is_internal": "yes"}),
        (["x"], "set_account", {}),
        ([], "delete", None),
        ("x", "delete", None),
        ([1, 2], "delete", None),
    ])
    def test_invalid_input(self, tmp_db, ids, action, value):
        with pytest.raises(ValueError):
            bulk_update(ids, action, value)

    def test_storage_failure_rolls_back(self, tmp_db):
        ids = [create_contact("a@acme.org").id, create_contact("b@acme.org").id]

        with pytest.raises(sqlite3.IntegrityError):
            bulk_update(ids, "set_account", {"account_id": "no-such-account"})
        assert {get_contact(i).account_id for i in ids} == {None}
