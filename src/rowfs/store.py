"""SQLite store for one project: the only module that issues SQL.

Table schema (one store file per project):

    schema_migrations(version)
    projects(id, root UNIQUE, created_at)
    files(id, project_id, path, name, type, note, aicom, created_at)
        UNIQUE(project_id, path); type is 'dir' | 'file'
    file_tags(id, file_id, tag)
    file_lines(id, file_id, lineno, content, side, aicom)
        UNIQUE(file_id, lineno)

Invariants:
    - paths are stored normalized (see rowfs.paths); the root has no row
    - a subtree is ``path = X OR path`` starting with ``X + '/'``
    - every public method is atomic; wrap several calls in ``transaction()``
      to make them one unit (nested transactions join the outer one)
    - any sqlite3.Error, or text sqlite3 cannot encode as UTF-8, leaves as
      StoreError after rollback

Usage:
    store = Store(".../project.sqlite")
    pid = store.ensure_project("/abs/root")
    with store.transaction():
        store.upsert_entry(pid, "docs", "docs", EntryKind.DIRECTORY)
        store.upsert_entry(pid, "docs/a.md", "a.md", EntryKind.FILE)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

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
from rowfs.models import Entry, EntryKind, Line, Project, now_iso
from rowfs.paths import is_within, leaf_name, rebase

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from rowfs.config import StoreConfig

logger = logging.getLogger(__name__)

_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY,
            root TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS files (
            id INTEGER PRIMARY KEY,
            project_id INTEGER NOT NULL REFERENCES projects(id),
            path TEXT NOT NULL,
            name TEXT NOT NULL,
            type TEXT NOT NULL CHECK (type IN ('dir', 'file')),
            note TEXT,
            aicom TEXT,
            created_at TEXT NOT NULL,
            UNIQUE(project_id, path)
        );

        CREATE TABLE IF NOT EXISTS file_tags (
            id INTEGER PRIMARY KEY,
            file_id INTEGER NOT NULL REFERENCES files(id),
            tag TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS file_lines (
            id INTEGER PRIMARY KEY,
            file_id INTEGER NOT NULL REFERENCES files(id),
            lineno INTEGER NOT NULL,
            content TEXT NOT NULL,
            side TEXT,
            aicom TEXT,
            UNIQUE(file_id, lineno)
        );
        """,
    ),
    (
        2,
        "CREATE INDEX IF NOT EXISTS idx_file_tags_file ON file_tags(file_id);",
    ),
]

SCHEMA_VERSION = _MIGRATIONS[-1][0]

# Largest value a SQLite INTEGER column holds.
MAX_LINENO = 2**63 - 1

_KIND_LABEL = {EntryKind.DIRECTORY: "directory", EntryKind.FILE: "file"}


def _subtree(path: str) -> tuple[str, tuple[Any, ...]]:
    """SQL predicate (on files.path) selecting ``path`` and its descendants."""
    if not path:
        return "1", ()
    return "(path = ? OR substr(path, 1, ?) = ?)", (path, len(path) + 1, path + "/")


def _descendants(path: str) -> tuple[str, tuple[Any, ...]]:
    if not path:
        return "1", ()
    return "substr(path, 1, ?) = ?", (len(path) + 1, path + "/")


def _path_key(entry: Entry) -> list[str]:
    return entry.path.split("/")


class Store:
    """SQLite-backed adapter owning the schema of one project store.

    The connection is opened lazily on first use, in autocommit mode with
    explicit transactions, and migrated to SCHEMA_VERSION.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    @classmethod
    def from_config(cls, db_path: Path | str, cfg: StoreConfig) -> Store:
        return cls(db_path, busy_timeout_ms=cfg.busy_timeout_ms, wal_mode=cfg.wal)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = self._connect()
            try:
                self._migrate(conn)
            except StoreError:
                conn.close()
                raise
            self._conn = conn
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create store directory for {self.db_path}: {exc}") from exc
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open store {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as exc:
            conn.close()
            raise StoreError(
                f"Failed to open store {self.db_path} (corrupt or not a database?)\n"
                f"Original error: {exc}"
            ) from exc
        return conn

    def _migrate(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY)")
            current = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()[0]
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot read schema version of {self.db_path}: {exc}") from exc

        for version, sql in _MIGRATIONS:
            if version <= current:
                continue
            script = (
                f"BEGIN IMMEDIATE;\n{sql}\n"
                f"INSERT INTO schema_migrations(version) VALUES ({version});\nCOMMIT;"
            )
            try:
                conn.executescript(script)
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StoreError(f"Schema migration {version} failed on {self.db_path}: {exc}") from exc
            logger.info("applied schema migration %d to %s", version, self.db_path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One atomic unit. Re-entrant: inner blocks join the outer transaction."""
        conn = self.conn
        if self._depth:
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot begin transaction on {self.db_path}: {exc}") from exc
        self._depth = 1
        try:
            yield conn
        except (sqlite3.Error, UnicodeEncodeError) as exc:
            self._rollback(conn)
            raise StoreError(f"Statement failed on {self.db_path}: {exc}") from exc
        except BaseException:
            self._rollback(conn)
            raise
        else:
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise StoreError(f"Commit failed on {self.db_path}: {exc}") from exc
        finally:
            self._depth = 0

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        """Reads run inside the open transaction if any, else in autocommit."""
        conn = self.conn
        if self._depth:
            yield conn
            return
        try:
            yield conn
        except (sqlite3.Error, UnicodeEncodeError) as exc:
            raise StoreError(f"Query failed on {self.db_path}: {exc}") from exc

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def schema_version(self) -> int:
        with self._reading() as conn:
            return int(conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()[0])

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def ensure_project(self, root: str) -> int:
        """Insert-or-fetch the project row keyed on ``root``."""
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO projects(root, created_at) VALUES (?, ?)",
                (root, now_iso()),
            )
            if cur.rowcount:
                logger.info("bound project root %s in %s", root, self.db_path)
            row = conn.execute("SELECT id FROM projects WHERE root = ?", (root,)).fetchone()
        if row is None:
            raise StoreError(f"Failed to resolve project id for {root}")
        return int(row["id"])

    def get_project(self, project_id: int) -> Project:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT id, root, created_at FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"project not found: {project_id}")
        return Project(id=row["id"], root=row["root"], created_at=row["created_at"])

    def list_projects(self) -> list[Project]:
        with self._reading() as conn:
            rows = conn.execute("SELECT id, root, created_at FROM projects ORDER BY id").fetchall()
        return [Project(id=r["id"], root=r["root"], created_at=r["created_at"]) for r in rows]

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    @staticmethod
    def _entry_from_row(row: sqlite3.Row, tags: list[str] | None = None) -> Entry:
        return Entry(
            id=row["id"],
            project_id=row["project_id"],
            path=row["path"],
            name=row["name"],
            kind=EntryKind(row["type"]),
            note=row["note"],
            control=row["aicom"],
            created_at=row["created_at"],
            tags=tags or [],
        )

    def _lookup(self, conn: sqlite3.Connection, project_id: int, path: str) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT * FROM files WHERE project_id = ? AND path = ?", (project_id, path)
        ).fetchone()

    def _entry_id(
        self,
        conn: sqlite3.Connection,
        project_id: int,
        path: str,
        kind: EntryKind | None = None,
    ) -> int:
        row = conn.execute(
            "SELECT id, type FROM files WHERE project_id = ? AND path = ?", (project_id, path)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"not found: {path or '/'}", path=path)
        if kind is not None and row["type"] != kind:
            actual = _KIND_LABEL[EntryKind(row["type"])]
            raise KindMismatchError(
                f"{path} is a {actual}, not a {_KIND_LABEL[kind]}", path=path, kind=row["type"]
            )
        return int(row["id"])

    def upsert_entry(self, project_id: int, path: str, name: str, kind: EntryKind | str) -> bool:
        """Create the entry if absent. Returns True if a row was inserted.

        An existing entry of the same kind is left as is; of the other kind
        raises TypeConflictError.
        """
        kind = EntryKind(kind)
        if not path:
            raise InvalidPathError("the project root cannot be created", path=path)
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO files(project_id, path, name, type, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (project_id, path, name, str(kind), now_iso()),
            )
            if cur.rowcount:
                logger.debug("created %s %s", _KIND_LABEL[kind], path)
                return True
            row = conn.execute(
                "SELECT type FROM files WHERE project_id = ? AND path = ?", (project_id, path)
            ).fetchone()
            if row is None:
                raise StoreError(f"insert of {path} was ignored but no row exists", path=path)
            if row["type"] != kind:
                existing = _KIND_LABEL[EntryKind(row["type"])]
                raise TypeConflictError(
                    f"{path} already exists as a {existing}", path=path, kind=row["type"]
                )
            return False

    def find_entry(self, project_id: int, path: str) -> Entry | None:
        with self._reading() as conn:
            row = self._lookup(conn, project_id, path)
            if row is None:
                return None
            tags = [
                r["tag"]
                for r in conn.execute(
                    "SELECT tag FROM file_tags WHERE file_id = ? ORDER BY id", (row["id"],)
                )
            ]
        return self._entry_from_row(row, tags)

    def get_entry(self, project_id: int, path: str) -> Entry:
        entry = self.find_entry(project_id, path)
        if entry is None:
            raise NotFoundError(f"not found: {path or '/'}", path=path)
        return entry

    def list_children(self, project_id: int, path_prefix: str) -> list[Entry]:
        """The entry at ``path_prefix`` (if any) and all its descendants, tree-ordered."""
        clause, params = _subtree(path_prefix)
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT * FROM files WHERE project_id = ? AND {clause}",  # noqa: S608
                (project_id, *params),
            ).fetchall()
            tags: dict[int, list[str]] = {}
            for r in conn.execute(
                "SELECT file_id, tag FROM file_tags WHERE file_id IN"
                f" (SELECT id FROM files WHERE project_id = ? AND {clause}) ORDER BY id",  # noqa: S608
                (project_id, *params),
            ):
                tags.setdefault(r["file_id"], []).append(r["tag"])
        entries = [self._entry_from_row(r, tags.get(r["id"])) for r in rows]
        return sorted(entries, key=_path_key)

    def has_descendants(self, project_id: int, path: str) -> bool:
        clause, params = _descendants(path)
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT 1 FROM files WHERE project_id = ? AND {clause} LIMIT 1",  # noqa: S608
                (project_id, *params),
            ).fetchone()
        return row is not None

    def update_entry_metadata(
        self,
        project_id: int,
        path: str,
        note: str | None = None,
        control: str | None = None,
    ) -> None:
        """Overwrite note and/or control; None leaves a field untouched."""
        with self.transaction() as conn:
            fid = self._entry_id(conn, project_id, path)
            sets: list[str] = []
            params: list[Any] = []
            if note is not None:
                sets.append("note = ?")
                params.append(note)
            if control is not None:
                sets.append("aicom = ?")
                params.append(control)
            if sets:
                conn.execute(f"UPDATE files SET {', '.join(sets)} WHERE id = ?", (*params, fid))  # noqa: S608

    def attach_tags(self, project_id: int, path: str, tags: Iterable[str]) -> int:
        """Attach labels to an entry, skipping ones it already has. Returns the number added."""
        added = 0
        with self.transaction() as conn:
            fid = self._entry_id(conn, project_id, path)
            for tag in tags:
                cur = conn.execute(
                    "INSERT INTO file_tags(file_id, tag) SELECT ?, ?"
                    " WHERE NOT EXISTS (SELECT 1 FROM file_tags WHERE file_id = ? AND tag = ?)",
                    (fid, tag, fid, tag),
                )
                added += cur.rowcount
        return added

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def append_line(self, project_id: int, path: str, content: str) -> int:
        """Insert ``content`` after the highest existing line. Returns its number."""
        with self.transaction() as conn:
            fid = self._entry_id(conn, project_id, path, EntryKind.FILE)
            lineno = int(
                conn.execute(
                    "SELECT COALESCE(MAX(lineno), 0) + 1 FROM file_lines WHERE file_id = ?", (fid,)
                ).fetchone()[0]
            )
            conn.execute(
                "INSERT INTO file_lines(file_id, lineno, content) VALUES (?, ?, ?)",
                (fid, lineno, content),
            )
        return lineno

    def read_lines(self, project_id: int, path: str) -> list[Line]:
        with self._reading() as conn:
            fid = self._entry_id(conn, project_id, path, EntryKind.FILE)
            rows = conn.execute(
                "SELECT lineno, content, side, aicom FROM file_lines WHERE file_id = ? ORDER BY lineno",
                (fid,),
            ).fetchall()
        return [
            Line(lineno=r["lineno"], content=r["content"], note=r["side"], control=r["aicom"])
            for r in rows
        ]

    def set_line_metadata(
        self,
        project_id: int,
        path: str,
        lineno: int,
        note: str | None = None,
        control: str | None = None,
    ) -> None:
        """Set note/control on a line, creating an empty line row if needed."""
        if lineno < 1:
            raise InvalidLineError(f"line numbers start at 1, got {lineno}", path=path, lineno=lineno)
        if lineno > MAX_LINENO:
            raise InvalidLineError(f"line number too large: {lineno}", path=path, lineno=lineno)
        with self.transaction() as conn:
            fid = self._entry_id(conn, project_id, path, EntryKind.FILE)
            conn.execute(
                "INSERT OR IGNORE INTO file_lines(file_id, lineno, content) VALUES (?, ?, '')",
                (fid, lineno),
            )
            sets: list[str] = []
            params: list[Any] = []
            if note is not None:
                sets.append("side = ?")
                params.append(note)
            if control is not None:
                sets.append("aicom = ?")
                params.append(control)
            if sets:
                conn.execute(
                    f"UPDATE file_lines SET {', '.join(sets)} WHERE file_id = ? AND lineno = ?",  # noqa: S608
                    (*params, fid, lineno),
                )

    # ------------------------------------------------------------------
    # Subtrees
    # ------------------------------------------------------------------

    def rename_subtree(self, project_id: int, old_path: str, new_path: str) -> int:
        """Re-key ``old_path`` and every descendant under ``new_path``. Returns rows renamed."""
        if not old_path or not new_path:
            raise InvalidPathError("the project root cannot be moved", path=old_path)
        if old_path == new_path:
            return 0
        if is_within(new_path, old_path):
            raise InvalidPathError(
                f"cannot move {old_path} into its own subtree ({new_path})", path=old_path
            )
        clause, params = _subtree(old_path)
        dst_clause, dst_params = _subtree(new_path)
        with self.transaction() as conn:
            rows = conn.execute(
                f"SELECT id, path FROM files WHERE project_id = ? AND {clause}"  # noqa: S608
                " ORDER BY length(path)",
                (project_id, *params),
            ).fetchall()
            if not rows:
                raise NotFoundError(f"not found: {old_path}", path=old_path)
            taken = conn.execute(
                f"SELECT path FROM files WHERE project_id = ? AND {dst_clause} LIMIT 1",  # noqa: S608
                (project_id, *dst_params),
            ).fetchone()
            if taken is not None:
                raise AlreadyExistsError(f"destination exists: {taken['path']}", path=new_path)
            for row in rows:
                dst = rebase(row["path"], old_path, new_path)
                conn.execute(
                    "UPDATE files SET path = ?, name = ? WHERE id = ?",
                    (dst, leaf_name(dst), row["id"]),
                )
        logger.info("renamed %s -> %s (%d entries)", old_path, new_path, len(rows))
        return len(rows)

    def delete_subtree(self, project_id: int, path: str, recursive: bool) -> int:
        """Delete the entry (and, if recursive, its descendants) with their lines and tags.

        Non-recursive delete of an entry that has descendants raises NotEmptyError.
        Returns the number of entries removed.
        """
        if not path:
            raise InvalidPathError("the project root cannot be removed", path=path)
        clause, params = _subtree(path)
        ids = f"SELECT id FROM files WHERE project_id = ? AND {clause}"  # noqa: S608
        with self.transaction() as conn:
            self._entry_id(conn, project_id, path)
            if not recursive and self.has_descendants(project_id, path):
                raise NotEmptyError(f"directory not empty: {path}; use -r", path=path)
            conn.execute(f"DELETE FROM file_lines WHERE file_id IN ({ids})", (project_id, *params))  # noqa: S608
            conn.execute(f"DELETE FROM file_tags WHERE file_id IN ({ids})", (project_id, *params))  # noqa: S608
            cur = conn.execute(
                f"DELETE FROM files WHERE project_id = ? AND {clause}",  # noqa: S608
                (project_id, *params),
            )
            removed = cur.rowcount
        logger.info("removed %s (%d entries)", path, removed)
        return removed

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self, project_id: int) -> dict[str, int]:
        with self._reading() as conn:
            kinds = {
                r["type"]: r["n"]
                for r in conn.execute(
                    "SELECT type, COUNT(*) AS n FROM files WHERE project_id = ? GROUP BY type", (project_id,)
                )
            }
            lines = conn.execute(
                "SELECT COUNT(*) FROM file_lines WHERE file_id IN"
                " (SELECT id FROM files WHERE project_id = ?)",
                (project_id,),
            ).fetchone()[0]
            tags = conn.execute(
                "SELECT COUNT(*) FROM file_tags WHERE file_id IN"
                " (SELECT id FROM files WHERE project_id = ?)",
                (project_id,),
            ).fetchone()[0]
        return {
            "dirs": int(kinds.get("dir", 0)),
            "files": int(kinds.get("file", 0)),
            "lines": int(lines),
            "tags": int(tags),
        }
