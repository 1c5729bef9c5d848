"""Data models for the row-backed namespace."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class EntryKind(StrEnum):
    """Values stored in ``files.type``."""

    DIRECTORY = "dir"
    FILE = "file"


@dataclass
class Project:
    """The single ``projects`` row of a store."""

    id: int
    root: str
    created_at: str = ""


@dataclass
class Line:
    """One numbered line of a file entry."""

    lineno: int
    content: str = ""
    note: str | None = None          # stored as file_lines.side
    control: str | None = None       # stored as file_lines.aicom

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"lineno": self.lineno, "content": self.content}
        if self.note:
            d["note"] = self.note
        if self.control:
            d["control"] = self.control
        return d


@dataclass
class Entry:
    """A directory or file addressed by its normalized path."""

    id: int
    project_id: int
    path: str
    name: str
    kind: EntryKind
    note: str | None = None
    control: str | None = None       # stored as files.aicom
    created_at: str = ""
    tags: list[str] = field(default_factory=list)

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    @property
    def depth(self) -> int:
        """Number of segments in the path (top-level entries have depth 1)."""
        return self.path.count("/") + 1

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "path": self.path,
            "kind": str(self.kind),
        }
        if self.note:
            d["note"] = self.note
        if self.control:
            d["control"] = self.control
        if self.tags:
            d["tags"] = list(self.tags)
        if self.created_at:
            d["created_at"] = self.created_at
        return d
