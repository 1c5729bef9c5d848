"""
Unit tests for the SQLite store adapter.

Tests cover:
- Schema creation and migration bookkeeping
- Project binding
- Entry upsert / lookup / listing
- Lines and tags
- Subtree rename and delete, including rollback on failure
"""

import sqlite3

import pytest

from rowfs.errors import (
    AlreadyExistsError,
    InvalidLineError,
    InvalidPathError,
    KindMismatchError,
    NotEmptyError,
    NotFoundError,
    StoreError,
    TypeConflictError,
)
from rowfs.models import EntryKind
from rowfs.store import MAX_LINENO, SCHEMA_VERSION, Store

DIR = EntryKind.DIRECTORY
FILE = EntryKind.FILE


def _paths(entries):
    return [e.path for e in entries]


class TestSchema:
    def test_migrations_applied(self, store):
        assert store.schema_version() == SCHEMA_VERSION

    def test_tables_exist(self, store):
        names = {
            r[0]
            for r in store.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        assert {"schema_migrations", "projects", "files", "file_tags", "file_lines"} <= names

    def test_reopen_does_not_reapply(self, tmp_path):
        db = tmp_path / "again.sqlite"
        with Store(db, wal_mode=False) as s:
            s.ensure_project("/r")
        with Store(db, wal_mode=False) as s:
            rows = s.conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
            assert [r[0] for r in rows] == list(range(1, SCHEMA_VERSION + 1))

    def test_not_a_database(self, tmp_path):
        bogus = tmp_path / "bogus.sqlite"
        bogus.write_bytes(b"this is definitely not sqlite" * 100)
        store = Store(bogus, wal_mode=False)
        with pytest.raises(StoreError):
            store.ensure_project("/r")


class TestProjects:
    def test_ensure_project_idempotent(self, store):
        first = store.ensure_project("/root/a")
        second = store.ensure_project("/root/a")
        assert first == second
        assert len(store.list_projects()) == 1

    def test_get_project(self, store, project_id):
        project = store.get_project(project_id)
        assert project.root == "/projects/demo"
        assert project.created_at

    def test_get_missing_project(self, store):
        with pytest.raises(NotFoundError):
            store.get_project(999)

    def test_projects_do_not_share_paths(self, store):
        p1 = store.ensure_project("/one")
        p2 = store.ensure_project("/two")
        store.upsert_entry(p1, "docs", "docs", DIR)
        store.upsert_entry(p2, "docs", "docs", FILE)
        assert store.get_entry(p1, "docs").kind == DIR
        assert store.get_entry(p2, "docs").kind == FILE


class TestEntries:
    def test_upsert_creates_once(self, store, project_id):
        assert store.upsert_entry(project_id, "a", "a", DIR) is True
        assert store.upsert_entry(project_id, "a", "a", DIR) is False
        assert len(store.list_children(project_id, "")) == 1

    def test_upsert_kind_conflict(self, store, project_id):
        store.upsert_entry(project_id, "a", "a", FILE)
        with pytest.raises(TypeConflictError):
            store.upsert_entry(project_id, "a", "a", DIR)

    def test_upsert_root_rejected(self, store, project_id):
        with pytest.raises(InvalidPathError):
            store.upsert_entry(project_id, "", "", DIR)

    def test_get_entry(self, store, project_id):
        store.upsert_entry(project_id, "a", "a", DIR)
        entry = store.get_entry(project_id, "a")
        assert entry.name == "a"
        assert entry.is_dir
        assert entry.note is None
        assert entry.tags == []

    def test_get_missing(self, store, project_id):
        assert store.find_entry(project_id, "nope") is None
        with pytest.raises(NotFoundError):
            store.get_entry(project_id, "nope")

    def test_list_children_prefix(self, store, project_id):
        for path, kind in [("a", DIR), ("a/x", FILE), ("a/y", DIR), ("a/y/z", FILE), ("ab", DIR)]:
            store.upsert_entry(project_id, path, path.rsplit("/", 1)[-1], kind)
        assert _paths(store.list_children(project_id, "a")) == ["a", "a/x", "a/y", "a/y/z"]
        assert _paths(store.list_children(project_id, "a/y")) == ["a/y", "a/y/z"]
        assert len(store.list_children(project_id, "")) == 5

    def test_list_children_is_case_sensitive_and_literal(self, store, project_id):
        store.upsert_entry(project_id, "A", "A", DIR)
        store.upsert_entry(project_id, "a_b", "a_b", DIR)
        store.upsert_entry(project_id, "a_b/c", "c", FILE)
        store.upsert_entry(project_id, "axb", "axb", DIR)
        assert _paths(store.list_children(project_id, "a")) == []
        assert _paths(store.list_children(project_id, "a_b")) == ["a_b", "a_b/c"]

    def test_has_descendants(self, store, project_id):
        store.upsert_entry(project_id, "a", "a", DIR)
        assert not store.has_descendants(project_id, "a")
        store.upsert_entry(project_id, "a/b", "b", FILE)
        assert store.has_descendants(project_id, "a")

    def test_update_metadata(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        store.update_entry_metadata(project_id, "f", note="hello")
        store.update_entry_metadata(project_id, "f", control="do it")
        entry = store.get_entry(project_id, "f")
        assert entry.note == "hello"
        assert entry.control == "do it"

    def test_update_metadata_missing(self, store, project_id):
        with pytest.raises(NotFoundError):
            store.update_entry_metadata(project_id, "f", note="x")

    def test_attach_tags_deduplicates(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        assert store.attach_tags(project_id, "f", ["a", "b"]) == 2
        assert store.attach_tags(project_id, "f", ["b", "c"]) == 1
        assert store.get_entry(project_id, "f").tags == ["a", "b", "c"]


class TestLines:
    def test_append_numbers_lines(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        assert store.append_line(project_id, "f", "one") == 1
        assert store.append_line(project_id, "f", "two") == 2
        assert [ln.content for ln in store.read_lines(project_id, "f")] == ["one", "two"]

    def test_append_after_gap(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        store.set_line_metadata(project_id, "f", 5, note="placeholder")
        assert store.append_line(project_id, "f", "next") == 6
        assert [ln.lineno for ln in store.read_lines(project_id, "f")] == [5, 6]

    def test_lines_on_directory(self, store, project_id):
        store.upsert_entry(project_id, "d", "d", DIR)
        with pytest.raises(KindMismatchError):
            store.append_line(project_id, "d", "x")
        with pytest.raises(KindMismatchError):
            store.read_lines(project_id, "d")

    def test_set_line_metadata_creates_empty_line(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        store.set_line_metadata(project_id, "f", 2, note="side", control="ctl")
        (line,) = store.read_lines(project_id, "f")
        assert line.lineno == 2
        assert line.content == ""
        assert line.note == "side"
        assert line.control == "ctl"

    def test_set_line_metadata_keeps_content(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        store.append_line(project_id, "f", "text")
        store.set_line_metadata(project_id, "f", 1, note="n")
        (line,) = store.read_lines(project_id, "f")
        assert line.content == "text"
        assert line.note == "n"

    def test_invalid_line_number(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        with pytest.raises(InvalidLineError):
            store.set_line_metadata(project_id, "f", 0, note="x")

    def test_line_number_beyond_integer_range(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        with pytest.raises(InvalidLineError):
            store.set_line_metadata(project_id, "f", MAX_LINENO + 1, note="x")
        store.set_line_metadata(project_id, "f", MAX_LINENO, note="last")
        assert [ln.lineno for ln in store.read_lines(project_id, "f")] == [MAX_LINENO]

    def test_unencodable_text_is_a_store_error(self, store, project_id):
        store.upsert_entry(project_id, "f", "f", FILE)
        store.append_line(project_id, "f", "ok")
        with pytest.raises(StoreError):
            store.append_line(project_id, "f", "caf\udce9")
        with pytest.raises(StoreError):
            store.find_entry(project_id, "caf\udce9")
        assert [ln.content for ln in store.read_lines(project_id, "f")] == ["ok"]


class TestSubtrees:
    @pytest.fixture
    def tree(self, store, project_id):
        for path, kind in [("a", DIR), ("a/x", FILE), ("a/y", DIR), ("a/y/z", FILE)]:
            store.upsert_entry(project_id, path, path.rsplit("/", 1)[-1], kind)
        store.append_line(project_id, "a/x", "hello")
        store.attach_tags(project_id, "a/y/z", ["t"])
        return store

    def test_rename_subtree(self, tree, project_id):
        assert tree.rename_subtree(project_id, "a", "b") == 4
        assert _paths(tree.list_children(project_id, "")) == ["b", "b/x", "b/y", "b/y/z"]
        assert tree.get_entry(project_id, "b/y/z").name == "z"
        assert tree.get_entry(project_id, "b/y/z").tags == ["t"]
        assert [ln.content for ln in tree.read_lines(project_id, "b/x")] == ["hello"]

    def test_rename_updates_leaf_name(self, tree, project_id):
        tree.rename_subtree(project_id, "a/x", "a/renamed")
        assert tree.get_entry(project_id, "a/renamed").name == "renamed"

    def test_rename_missing(self, tree, project_id):
        with pytest.raises(NotFoundError):
            tree.rename_subtree(project_id, "nope", "b")

    def test_rename_onto_existing(self, tree, project_id):
        tree.upsert_entry(project_id, "b", "b", DIR)
        with pytest.raises(AlreadyExistsError):
            tree.rename_subtree(project_id, "a", "b")
        assert _paths(tree.list_children(project_id, "a")) == ["a", "a/x", "a/y", "a/y/z"]

    def test_rename_into_own_subtree(self, tree, project_id):
        with pytest.raises(InvalidPathError):
            tree.rename_subtree(project_id, "a", "a/y/a")

    def test_rename_rolls_back_on_failure(self, tree, project_id):
        """A statement failing mid-rename leaves every row where it was."""
        tree.conn.execute(
            "CREATE TRIGGER fail_on_z BEFORE UPDATE ON files"
            " WHEN NEW.path = 'b/y/z' BEGIN SELECT RAISE(ABORT, 'boom'); END"
        )
        with pytest.raises(StoreError):
            tree.rename_subtree(project_id, "a", "b")
        assert _paths(tree.list_children(project_id, "")) == ["a", "a/x", "a/y", "a/y/z"]
        assert not tree.conn.in_transaction

    def test_delete_subtree(self, tree, project_id):
        assert tree.delete_subtree(project_id, "a", recursive=True) == 4
        assert tree.list_children(project_id, "") == []
        assert tree.conn.execute("SELECT COUNT(*) FROM file_lines").fetchone()[0] == 0
        assert tree.conn.execute("SELECT COUNT(*) FROM file_tags").fetchone()[0] == 0

    def test_delete_non_recursive_with_children(self, tree, project_id):
        with pytest.raises(NotEmptyError):
            tree.delete_subtree(project_id, "a", recursive=False)
        assert len(tree.list_children(project_id, "a")) == 4

    def test_delete_single_file(self, tree, project_id):
        assert tree.delete_subtree(project_id, "a/x", recursive=False) == 1
        assert tree.find_entry(project_id, "a/x") is None
        assert tree.conn.execute("SELECT COUNT(*) FROM file_lines").fetchone()[0] == 0

    def test_delete_root_rejected(self, tree, project_id):
        with pytest.raises(InvalidPathError):
            tree.delete_subtree(project_id, "", recursive=True)

    def test_stats(self, tree, project_id):
        assert tree.stats(project_id) == {"dirs": 2, "files": 2, "lines": 1, "tags": 1}


class TestTransactions:
    def test_nested_transactions_commit_together(self, store, project_id):
        with store.transaction():
            store.upsert_entry(project_id, "a", "a", DIR)
            with store.transaction():
                store.upsert_entry(project_id, "a/b", "b", DIR)
        assert _paths(store.list_children(project_id, "")) == ["a", "a/b"]

    def test_exception_rolls_back_everything(self, store, project_id):
        with pytest.raises(RuntimeError), store.transaction():
            store.upsert_entry(project_id, "a", "a", DIR)
            store.upsert_entry(project_id, "a/b", "b", DIR)
            raise RuntimeError("abort")
        assert store.list_children(project_id, "") == []

    def test_sqlite_errors_become_store_errors(self, store, project_id):
        with pytest.raises(StoreError) as excinfo, store.transaction() as conn:
            conn.execute("INSERT INTO no_such_table VALUES (1)")
        assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
