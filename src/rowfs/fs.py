"""Path-based filesystem operations over a project-scoped Store.

VirtualFS holds no state besides the store and the project id; every public
method normalizes its paths, then runs as a single store transaction, so a
failure anywhere leaves the namespace as it was.

Ancestor invariant: every entry's parent directory exists. make_directory
walks the path prefixes shortest first, new_file and move create the parent
chain of their target. Rows written around VirtualFS are not re-checked.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rowfs.errors import InvalidPathError, IsDirectoryError, NotEmptyError, NotFoundError
from rowfs.models import Entry, EntryKind, Line
from rowfs.paths import Meta, is_within, iter_prefixes, leaf_name, normalize_path, parent_path, parse_meta

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rowfs.store import Store

logger = logging.getLogger(__name__)

MetaArg = Meta | str | None


def _as_meta(meta: MetaArg | Sequence[str]) -> Meta:
    if isinstance(meta, Meta):
        return meta
    return parse_meta(meta)


class VirtualFS:
    """Directories, files and lines of one project."""

    def __init__(self, store: Store, project_id: int) -> None:
        self.store = store
        self.project_id = project_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _named(self, path: str, action: str) -> str:
        norm = normalize_path(path)
        if not norm:
            raise InvalidPathError(f"cannot {action} the project root", path=path)
        return norm

    def _ensure_dirs(self, path: str) -> None:
        for prefix in iter_prefixes(path):
            self.store.upsert_entry(self.project_id, prefix, leaf_name(prefix), EntryKind.DIRECTORY)

    def _apply_meta(self, path: str, meta: Meta) -> None:
        if meta.note or meta.control:
            self.store.update_entry_metadata(
                self.project_id,
                path,
                note=meta.note or None,
                control=meta.control or None,
            )
        if meta.tags:
            self.store.attach_tags(self.project_id, path, meta.tags)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def make_directory(self, path: str, meta: MetaArg = None) -> Entry:
        """Create ``path`` and any missing ancestors; metadata goes on ``path`` only.

        Existing directories are left alone. A file anywhere along the path
        raises TypeConflictError.
        """
        norm = self._named(path, "create")
        meta = _as_meta(meta)
        with self.store.transaction():
            self._ensure_dirs(norm)
            self._apply_meta(norm, meta)
            return self.store.get_entry(self.project_id, norm)

    def new_file(self, path: str, content: str | None = None, meta: MetaArg = None) -> Entry:
        """Create a file (and its parent directories).

        ``content`` becomes line 1 when the file is newly created; re-creating
        an existing file only applies ``meta``.
        """
        norm = self._named(path, "create")
        meta = _as_meta(meta)
        with self.store.transaction():
            parent = parent_path(norm)
            if parent:
                self._ensure_dirs(parent)
            created = self.store.upsert_entry(self.project_id, norm, leaf_name(norm), EntryKind.FILE)
            if created and content:
                self.store.append_line(self.project_id, norm, content)
            self._apply_meta(norm, meta)
            return self.store.get_entry(self.project_id, norm)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def stat(self, path: str) -> Entry:
        return self.store.get_entry(self.project_id, normalize_path(path))

    def exists(self, path: str) -> bool:
        return self.store.find_entry(self.project_id, normalize_path(path)) is not None

    def list(self, path: str = "") -> list[Entry]:
        """The entry at ``path`` (unless it is the root) and every descendant."""
        norm = normalize_path(path)
        entries = self.store.list_children(self.project_id, norm)
        if norm and not any(e.path == norm for e in entries):
            raise NotFoundError(f"not found: {norm}", path=norm)
        return entries

    def listdir(self, path: str = "") -> list[Entry]:
        """Immediate children of a directory; a file lists as itself."""
        norm = normalize_path(path)
        entries = self.list(norm)
        node = next((e for e in entries if e.path == norm), None)
        if node is not None and node.is_file:
            return [node]
        return [e for e in entries if e.path != norm and parent_path(e.path) == norm]

    def read(self, path: str) -> list[Line]:
        return self.store.read_lines(self.project_id, self._named(path, "read"))

    def read_text(self, path: str) -> str:
        return "".join(f"{line.content}\n" for line in self.read(path))

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def append(self, path: str, text: str) -> int:
        """Add ``text`` as the next line of a file. Returns the new line number."""
        return self.store.append_line(self.project_id, self._named(path, "append to"), text)

    def annotate(self, path: str, meta: MetaArg, line: int | None = None) -> Entry:
        """Attach note/control/tags to an entry, or note/control to one of its lines.

        Tags always belong to the entry, even for a line-targeted call.
        """
        norm = self._named(path, "annotate")
        meta = _as_meta(meta)
        with self.store.transaction():
            if line is None:
                self.store.get_entry(self.project_id, norm)
                self._apply_meta(norm, meta)
            else:
                self.store.set_line_metadata(
                    self.project_id,
                    norm,
                    line,
                    note=meta.note or None,
                    control=meta.control or None,
                )
                if meta.tags:
                    self.store.attach_tags(self.project_id, norm, meta.tags)
            logger.debug("annotated %s%s", norm, f":{line}" if line is not None else "")
            return self.store.get_entry(self.project_id, norm)

    def move(self, src: str, dst: str) -> int:
        """Rename a file, or a directory together with its whole subtree.

        The destination must not exist; its parent directories are created.
        Returns the number of entries renamed.
        """
        src_norm = self._named(src, "move")
        dst_norm = self._named(dst, "move onto")
        if src_norm == dst_norm:
            self.stat(src_norm)
            return 0
        if is_within(dst_norm, src_norm):
            raise InvalidPathError(
                f"cannot move {src_norm} into its own subtree ({dst_norm})", path=dst_norm
            )
        with self.store.transaction():
            self.store.get_entry(self.project_id, src_norm)
            parent = parent_path(dst_norm)
            if parent:
                self._ensure_dirs(parent)
            return self.store.rename_subtree(self.project_id, src_norm, dst_norm)

    def remove(self, path: str, recursive: bool = False) -> int:
        """Delete a file, or a directory and (with ``recursive``) everything under it."""
        norm = self._named(path, "remove")
        with self.store.transaction():
            entry = self.store.get_entry(self.project_id, norm)
            if entry.is_dir and not recursive:
                if self.store.has_descendants(self.project_id, norm):
                    raise NotEmptyError(f"directory not empty: {norm}; use -r", path=norm)
                raise IsDirectoryError(f"is a directory: {norm}; use -r to remove it", path=norm)
            return self.store.delete_subtree(self.project_id, norm, recursive=entry.is_dir)
