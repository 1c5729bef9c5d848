"""Flatten a project into a JSON-ready dict, using only list/read."""

from __future__ import annotations

import json
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rowfs.project import ProjectHandle

EXPORT_VERSION = 1


def export_project(handle: ProjectHandle) -> dict[str, Any]:
    project = handle.store.get_project(handle.project_id)
    entries: list[dict[str, Any]] = []
    for entry in handle.fs.list(""):
        item = entry.to_dict()
        if entry.is_file:
            item["lines"] = [line.to_dict() for line in handle.fs.read(entry.path)]
        entries.append(item)
    return {
        "version": EXPORT_VERSION,
        "project": {
            "name": handle.name,
            "root": project.root,
            "created_at": project.created_at,
        },
        "entries": entries,
    }


def dump_json(data: dict[str, Any], out: IO[str]) -> None:
    json.dump(data, out, indent=2, ensure_ascii=False)
    out.write("\n")
