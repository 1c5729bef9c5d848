"""Per-project virtual filesystem stored as SQLite rows.

Layout:
    <name>.rowproj/
        project.sqlite    # projects, files, file_tags, file_lines
        meta.json         # bundle name / created_at / version

Directories and files exist only as rows in ``files``; file content is one
``file_lines`` row per line; notes, tags and a control-channel payload can be
attached to entries and lines.

    with open_named("notes", load_config()) as project:
        project.fs.new_file("docs/plan.md", content="first line")
        project.fs.annotate("docs/plan.md", "// draft")
        project.fs.move("docs", "archive/docs")

Writes are one SQLite transaction per operation; concurrent writers are
serialized only by SQLite's own locking.
"""

from rowfs.config import RowFSConfig, init_config, load_config
from rowfs.errors import (
    AlreadyExistsError,
    InvalidLineError,
    InvalidPathError,
    IsDirectoryError,
    KindMismatchError,
    NotEmptyError,
    NotFoundError,
    RowFSError,
    StoreError,
    TypeConflictError,
)
from rowfs.fs import VirtualFS
from rowfs.models import Entry, EntryKind, Line, Project
from rowfs.paths import Meta, normalize_path, parse_meta
from rowfs.project import ProjectHandle, current_project, init_project, open_named, open_project
from rowfs.store import Store

__all__ = [
    "AlreadyExistsError",
    "Entry",
    "EntryKind",
    "InvalidLineError",
    "InvalidPathError",
    "IsDirectoryError",
    "KindMismatchError",
    "Line",
    "Meta",
    "NotEmptyError",
    "NotFoundError",
    "Project",
    "ProjectHandle",
    "RowFSConfig",
    "RowFSError",
    "Store",
    "StoreError",
    "TypeConflictError",
    "VirtualFS",
    "current_project",
    "init_config",
    "init_project",
    "load_config",
    "normalize_path",
    "open_named",
    "open_project",
    "parse_meta",
]
