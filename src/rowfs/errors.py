"""Error types raised by rowfs.

Every error derives from RowFSError and carries a short ``code`` so callers
(the CLI, scripts) can branch on it without parsing messages. Create on an
existing same-kind path is not an error and has no class here.
"""

from __future__ import annotations

from typing import Any


class RowFSError(Exception):
    """Base exception for all rowfs errors."""

    code = "ROWFS_ERROR"

    def __init__(self, message: str, *, path: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.details: dict[str, Any] = {"path": path, **details} if path is not None else dict(details)


class InvalidPathError(RowFSError):
    """Path cannot be used: escapes the root, names the root, or targets its own subtree."""

    code = "INVALID_PATH"


class InvalidLineError(RowFSError):
    code = "INVALID_LINE"


class NotFoundError(RowFSError):
    """Path, line or project does not exist."""

    code = "NOT_FOUND"


class AlreadyExistsError(RowFSError):
    """Destination is taken (move target, project name)."""

    code = "ALREADY_EXISTS"


class TypeConflictError(RowFSError):
    """An entry of the other kind already occupies the path."""

    code = "TYPE_CONFLICT"


class KindMismatchError(TypeConflictError):
    """File operation on a directory, or the reverse."""

    code = "KIND_MISMATCH"


class IsDirectoryError(RowFSError):
    """Non-recursive remove of a directory."""

    code = "IS_DIRECTORY"


class NotEmptyError(IsDirectoryError):
    code = "NOT_EMPTY"


class StoreError(RowFSError):
    """The SQLite backend failed: open, statement, or transaction abort."""

    code = "STORE_ERROR"
