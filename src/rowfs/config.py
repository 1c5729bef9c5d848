"""RowFSConfig: optional rowfs.toml plus ROWFS_* environment overrides.

rowfs.toml is looked up from the working directory upward; without one the
defaults apply and the working directory is the config root.

rowfs.toml example:

    [rowfs]
    project = "notes"          # default project when ROWFS_PROJECT_DB is unset
    home = "~/.rowfs"          # project bundles fall back to <home>/projects

    [store]
    busy_timeout_ms = 5000
    wal = true

    [logging]
    level = "WARNING"

Environment (wins over the file):
    ROWFS_PROJECT_DB   store file of the current session's project
    ROWFS_PROJECT      default project name
    ROWFS_HOME         home directory
    ROWFS_LOG_LEVEL    logging level name
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "rowfs.toml"
_DEFAULT_HOME = "~/.rowfs"

ENV_PROJECT_DB = "ROWFS_PROJECT_DB"
ENV_PROJECT = "ROWFS_PROJECT"
ENV_HOME = "ROWFS_HOME"
ENV_LOG_LEVEL = "ROWFS_LOG_LEVEL"


@dataclass
class StoreConfig:
    busy_timeout_ms: int = 5000
    wal: bool = True


@dataclass
class RowFSConfig:
    """Resolved configuration."""

    root: Path                      # directory that contains rowfs.toml (or cwd)
    project: str = ""               # default project name
    home_dir: Path = field(default_factory=lambda: Path(_DEFAULT_HOME).expanduser())
    project_db: Path | None = None  # ambient session store, from ROWFS_PROJECT_DB
    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "WARNING"

    @property
    def projects_dir(self) -> Path:
        return self.home_dir / "projects"

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME


def _expand(p: str, base: Path) -> Path:
    path = Path(os.path.expandvars(p)).expanduser()
    return path if path.is_absolute() else base / path


def load_config(root: Path | str | None = None, env: dict[str, str] | None = None) -> RowFSConfig:
    """Load rowfs.toml from root (or search upward from cwd if root is None)."""
    env = dict(os.environ) if env is None else env
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid {CONFIG_FILENAME} at {config_path}: {exc}"
            raise ValueError(msg) from exc

    main = raw.get("rowfs", {})
    store_section = raw.get("store", {})
    log_section = raw.get("logging", {})

    home = env.get(ENV_HOME) or str(main.get("home", _DEFAULT_HOME))
    project_db = env.get(ENV_PROJECT_DB)

    return RowFSConfig(
        root=root_path,
        project=env.get(ENV_PROJECT) or str(main.get("project", "")),
        home_dir=_expand(home, root_path),
        project_db=_expand(project_db, Path.cwd()) if project_db else None,
        store=StoreConfig(
            busy_timeout_ms=int(store_section.get("busy_timeout_ms", 5000)),
            wal=bool(store_section.get("wal", True)),
        ),
        log_level=(env.get(ENV_LOG_LEVEL) or str(log_section.get("level", "WARNING"))).upper(),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for rowfs.toml."""
    for directory in (start, *start.parents):
        if (directory / CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, project: str | None = None) -> Path:
    """Write a default rowfs.toml at root. Raises if already exists."""
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        msg = f"{CONFIG_FILENAME} already exists at {config_path}"
        raise FileExistsError(msg)

    project_line = f'project = "{project}"' if project else '# project = "notes"'
    content = f"""\
[rowfs]
{project_line}   # default project when ROWFS_PROJECT_DB is unset
# home = "~/.rowfs"   # bundles not found in the working directory live in <home>/projects

# [store]
# busy_timeout_ms = 5000
# wal = true

# [logging]
# level = "WARNING"   # or set ROWFS_LOG_LEVEL
"""
    config_path.write_text(content)
    return config_path
