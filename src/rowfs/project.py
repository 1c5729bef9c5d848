"""Project bundles: name -> store file -> the project row every call is scoped to.

Bundle layout (in the working directory, or under <home>/projects):

    <name>.rowproj/
        project.sqlite    # the store
        meta.json         # {"name", "created_at", "version"}

A bare ``<name>.sqlite`` file is accepted as a legacy single-file store.

Each store holds exactly one ``projects`` row, keyed on the project root:
the bundle directory, or the directory holding a legacy store file. Binding
is insert-or-fetch and runs on every open.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rowfs.errors import AlreadyExistsError, NotFoundError, StoreError
from rowfs.fs import VirtualFS
from rowfs.models import now_iso
from rowfs.store import Store

if TYPE_CHECKING:
    from rowfs.config import RowFSConfig

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".rowproj"
DB_FILENAME = "project.sqlite"
META_FILENAME = "meta.json"
LEGACY_SUFFIX = ".sqlite"
BUNDLE_VERSION = 1


def bundle_dir_from_db(db_path: Path) -> Path | None:
    """The bundle directory holding ``db_path``, or None for a legacy store."""
    if db_path.name == DB_FILENAME:
        return db_path.parent
    return None


def project_root(db_path: Path) -> str:
    """Key of the store's project row."""
    resolved = db_path.resolve()
    bundle = bundle_dir_from_db(resolved)
    return str(bundle if bundle is not None else resolved.parent)


def _search_dirs(cfg: RowFSConfig) -> list[Path]:
    return [Path.cwd(), cfg.projects_dir]


def resolve_project(name: str, cfg: RowFSConfig) -> Path | None:
    """Find the store file for ``name``: bundle, then legacy file, cwd before home."""
    if not name:
        return None
    for base in _search_dirs(cfg):
        db = base / f"{name}{BUNDLE_SUFFIX}" / DB_FILENAME
        if db.is_file():
            return db
        legacy = base / f"{name}{LEGACY_SUFFIX}"
        if legacy.is_file():
            return legacy
    return None


def list_projects(cfg: RowFSConfig) -> list[tuple[str, Path]]:
    """(name, store path) for every project visible from cwd and home, cwd first."""
    found: list[tuple[str, Path]] = []
    seen: set[Path] = set()
    for base in _search_dirs(cfg):
        if not base.is_dir():
            continue
        for child in sorted(base.iterdir()):
            if child.is_dir() and child.name.endswith(BUNDLE_SUFFIX):
                db = child / DB_FILENAME
                name = child.name[: -len(BUNDLE_SUFFIX)]
            elif child.is_file() and child.name.endswith(LEGACY_SUFFIX):
                db = child
                name = child.name[: -len(LEGACY_SUFFIX)]
            else:
                continue
            if db.is_file() and db.resolve() not in seen:
                seen.add(db.resolve())
                found.append((name, db))
    return found


def _write_meta(bundle: Path, name: str) -> None:
    meta = {"name": name, "created_at": now_iso(), "version": BUNDLE_VERSION}
    (bundle / META_FILENAME).write_text(json.dumps(meta, indent=2) + "\n")


def read_meta(db_path: Path) -> dict[str, object]:
    bundle = bundle_dir_from_db(db_path)
    if bundle is None or not (bundle / META_FILENAME).exists():
        return {}
    try:
        return json.loads((bundle / META_FILENAME).read_text())  # type: ignore[no-any-return]
    except json.JSONDecodeError:
        logger.warning("ignoring unreadable %s", bundle / META_FILENAME)
        return {}


def init_project(name: str, cfg: RowFSConfig, *, in_home: bool = False) -> Path:
    """Create ``<name>.rowproj`` with an initialized store. Returns the store path."""
    if resolve_project(name, cfg) is not None:
        raise AlreadyExistsError(f"project already exists: {name}", name=name)
    base = cfg.projects_dir if in_home else Path.cwd()
    bundle = base / f"{name}{BUNDLE_SUFFIX}"
    try:
        bundle.mkdir(parents=True, exist_ok=True)
        _write_meta(bundle, name)
    except OSError as exc:
        raise StoreError(f"Cannot create project bundle {bundle}: {exc}", path=str(bundle)) from exc
    db_path = bundle / DB_FILENAME
    with open_project(db_path, cfg, name=name):
        pass
    logger.info("created project %s at %s", name, bundle)
    return db_path


@dataclass
class ProjectHandle:
    """An open store bound to its project row."""

    name: str
    db_path: Path
    store: Store
    project_id: int
    _fs: VirtualFS | None = field(default=None, repr=False)

    @property
    def fs(self) -> VirtualFS:
        if self._fs is None:
            self._fs = VirtualFS(self.store, self.project_id)
        return self._fs

    @property
    def bundle_dir(self) -> Path | None:
        return bundle_dir_from_db(self.db_path)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> ProjectHandle:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_project(db_path: Path | str, cfg: RowFSConfig | None = None, name: str | None = None) -> ProjectHandle:
    """Open (creating if needed) the store at ``db_path`` and bind its project row."""
    db_path = Path(db_path)
    store = Store.from_config(db_path, cfg.store) if cfg is not None else Store(db_path)
    try:
        project_id = store.ensure_project(project_root(db_path))
    except Exception:
        store.close()
        raise
    if name is None:
        meta_name = read_meta(db_path).get("name")
        if isinstance(meta_name, str) and meta_name:
            name = meta_name
        else:
            bundle = bundle_dir_from_db(db_path)
            stem = bundle.name if bundle is not None else db_path.name
            name = stem.rsplit(".", 1)[0]
    return ProjectHandle(name=name, db_path=db_path, store=store, project_id=project_id)


def open_named(name: str, cfg: RowFSConfig) -> ProjectHandle:
    db_path = resolve_project(name, cfg)
    if db_path is None:
        raise NotFoundError(f"project not found: {name}", name=name)
    return open_project(db_path, cfg, name=name)


def current_project(cfg: RowFSConfig) -> ProjectHandle:
    """The session's project: ROWFS_PROJECT_DB first, then the configured default name."""
    if cfg.project_db is not None:
        if not cfg.project_db.is_file():
            raise NotFoundError(f"project store not found: {cfg.project_db}", path=str(cfg.project_db))
        return open_project(cfg.project_db, cfg)
    if cfg.project:
        return open_named(cfg.project, cfg)
    raise NotFoundError(
        "not in a project context: pass --project NAME, set ROWFS_PROJECT_DB,"
        " or set [rowfs] project in rowfs.toml"
    )
