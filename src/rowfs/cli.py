"""rowfs CLI — project directories and files stored as SQLite rows.

Commands:
    rowfs init [NAME]                   write rowfs.toml in the current directory
    rowfs project init NAME [--home]    create NAME.rowproj/ with an empty store
    rowfs project info [NAME]           show store location and counts
    rowfs project list                  list projects in cwd and ~/.rowfs/projects
    rowfs mkdir PATH [META...]          create directories (parents included)
    rowfs newfile PATH [META...]        create a file, optionally with --content
    rowfs ls [PATH]                     list a directory (-a: whole subtree, -l: details)
    rowfs tree [PATH]                   indented subtree
    rowfs cat PATH                      print a file's lines
    rowfs append PATH TEXT              add a line to a file
    rowfs annotate PATH META...         note/tags/control on a file or --line N
    rowfs mv SRC DST                    move a file or a directory subtree
    rowfs rm [-r] PATH                  remove a file or directory
    rowfs export [--out FILE]           dump the project as JSON

META is trailing annotation text:  // note   @@tag1,tag2   ::control payload::

The project is taken from --db, --project, ROWFS_PROJECT_DB, or the
[rowfs] project setting in rowfs.toml, in that order.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import click

from rowfs.config import RowFSConfig, init_config, load_config
from rowfs.errors import RowFSError
from rowfs.export import dump_json, export_project
from rowfs.paths import normalize_path, parse_meta
from rowfs.project import (
    ProjectHandle,
    current_project,
    init_project,
    list_projects,
    open_named,
    open_project,
    read_meta,
)
from rowfs.store import MAX_LINENO

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rowfs.models import Entry

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> RowFSConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(message)s",
    )


@contextmanager
def _errors() -> Iterator[None]:
    try:
        yield
    except RowFSError as exc:
        raise click.ClickException(exc.message) from exc


@dataclass
class _Session:
    cfg: RowFSConfig
    project_name: str | None = None
    db_path: Path | None = None

    def open(self) -> ProjectHandle:
        if self.db_path is not None:
            return open_project(self.db_path, self.cfg)
        if self.project_name:
            return open_named(self.project_name, self.cfg)
        return current_project(self.cfg)


@contextmanager
def _project(ctx: click.Context) -> Iterator[ProjectHandle]:
    session: _Session = ctx.obj
    with _errors(), session.open() as handle:
        yield handle


def _ok() -> None:
    click.echo("ok")


def _display_name(entry: Entry) -> str:
    return f"{entry.name}/" if entry.is_dir else entry.name


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="rowfs")
@click.option("--project", "project_name", default=None, help="Project name to operate on")
@click.option(
    "--db",
    "db_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Store file to operate on (overrides --project)",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
@click.pass_context
def cli(ctx: click.Context, project_name: str | None, db_path: Path | None, verbose: bool) -> None:
    """rowfs — project directories and files kept as rows in SQLite."""
    cfg = _load_cfg()
    _setup_logging("DEBUG" if verbose else cfg.log_level)
    ctx.obj = _Session(cfg=cfg, project_name=project_name, db_path=db_path)


# ---------------------------------------------------------------------------
# rowfs init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("project", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Directory to write rowfs.toml in")
def init(project: str | None, root: str) -> None:
    """Write a default rowfs.toml (PROJECT becomes the default project)."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, project=project)
    except FileExistsError:
        click.echo("rowfs.toml already exists — skipping init")
        return
    click.echo(f"Created {config_path}")


# ---------------------------------------------------------------------------
# rowfs project ...
# ---------------------------------------------------------------------------


@cli.group()
def project() -> None:
    """Create and inspect project stores."""


@project.command("init")
@click.argument("name")
@click.option("--home", "in_home", is_flag=True, help="Create under ~/.rowfs/projects instead of cwd")
@click.pass_context
def project_init(ctx: click.Context, name: str, in_home: bool) -> None:
    """Create NAME.rowproj/ with an initialized store."""
    session: _Session = ctx.obj
    with _errors():
        db_path = init_project(name, session.cfg, in_home=in_home)
    click.echo(f"Created bundle: {db_path.parent}")
    click.echo(f"db: {db_path}")


@project.command("list")
@click.pass_context
def project_list(ctx: click.Context) -> None:
    """List projects visible from the working directory and the home directory."""
    session: _Session = ctx.obj
    found = list_projects(session.cfg)
    if not found:
        click.echo("No projects found.")
        return
    for name, db in found:
        click.echo(f"- {name}  ({db})")


@project.command("info")
@click.argument("name", required=False)
@click.pass_context
def project_info(ctx: click.Context, name: str | None) -> None:
    """Show where a project lives and what it holds."""
    from rich.console import Console
    from rich.table import Table

    session: _Session = ctx.obj
    if name:
        session = _Session(cfg=session.cfg, project_name=name)
        ctx.obj = session

    with _project(ctx) as handle:
        stats = handle.store.stats(handle.project_id)
        proj = handle.store.get_project(handle.project_id)
        version = handle.store.schema_version()

    meta = read_meta(handle.db_path)
    table = Table(title=f"rowfs — {handle.name}", show_header=True, header_style="bold")
    table.add_column("Field", style="dim", no_wrap=True)
    table.add_column("Value")
    table.add_row("Project", handle.name)
    if handle.bundle_dir is not None:
        table.add_row("Dir", str(handle.bundle_dir))
    table.add_row("DB", str(handle.db_path))
    table.add_row("Root", proj.root)
    table.add_row("Created", str(meta.get("created_at") or proj.created_at))
    table.add_row("Schema", f"v{version}")
    table.add_row("", "")
    table.add_row("Directories", str(stats["dirs"]))
    table.add_row("Files", str(stats["files"]))
    table.add_row("Lines", str(stats["lines"]))
    table.add_row("Tags", str(stats["tags"]))
    Console().print(table)


# ---------------------------------------------------------------------------
# rowfs mkdir / newfile
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.argument("meta", nargs=-1)
@click.pass_context
def mkdir(ctx: click.Context, path: str, meta: tuple[str, ...]) -> None:
    """Create PATH and any missing parents.

    \b
    rowfs mkdir docs/design // design notes
    rowfs mkdir src/core @@core,wip
    """
    with _project(ctx) as handle:
        handle.fs.make_directory(path, " ".join(meta))
    _ok()


@cli.command()
@click.argument("path")
@click.argument("meta", nargs=-1)
@click.option("--content", default=None, help="Initial content (line 1)")
@click.pass_context
def newfile(ctx: click.Context, path: str, meta: tuple[str, ...], content: str | None) -> None:
    """Create the file PATH (parents included).

    \b
    rowfs newfile docs/plan.md --content "first line" // draft
    """
    with _project(ctx) as handle:
        handle.fs.new_file(path, content=content, meta=" ".join(meta))
    _ok()


# ---------------------------------------------------------------------------
# rowfs ls / tree / cat
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", default="")
@click.option("-a", "--all", "show_all", is_flag=True, help="Whole subtree with full paths")
@click.option("-l", "--long", "long_", is_flag=True, help="Show kind, note, tags and control")
@click.pass_context
def ls(ctx: click.Context, path: str, show_all: bool, long_: bool) -> None:
    """List PATH (default: the project root)."""
    with _project(ctx) as handle:
        entries = handle.fs.list(path) if show_all else handle.fs.listdir(path)

    if not long_:
        for e in entries:
            if show_all:
                click.echo(f"{e.path}/" if e.is_dir else e.path)
            else:
                click.echo(_display_name(e))
        return

    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    table = Table(show_header=True, header_style="bold")
    table.add_column("Kind", style="dim", no_wrap=True)
    table.add_column("Path", no_wrap=True)
    table.add_column("Tags")
    table.add_column("Note")
    table.add_column("Control", style="dim")
    for e in entries:
        table.add_row(
            str(e.kind),
            escape(e.path if show_all else _display_name(e)),
            escape(", ".join(e.tags)),
            escape(e.note or ""),
            escape(e.control or ""),
        )
    Console().print(table)


@cli.command()
@click.argument("path", default="")
@click.pass_context
def tree(ctx: click.Context, path: str) -> None:
    """Print PATH and everything under it, indented."""
    with _errors():
        base = normalize_path(path)
    with _project(ctx) as handle:
        entries = handle.fs.list(base)
    base_depth = base.count("/") + 1 if base else 0
    if not base:
        click.echo("/")
    for e in entries:
        indent = "  " * (e.depth - base_depth)
        suffix = f"  [{', '.join(e.tags)}]" if e.tags else ""
        click.echo(f"{indent}{_display_name(e)}{suffix}")


@cli.command()
@click.argument("path")
@click.option("-n", "--numbers", is_flag=True, help="Prefix lines with their number")
@click.option("-m", "--meta", "show_meta", is_flag=True, help="Show line notes and control text")
@click.pass_context
def cat(ctx: click.Context, path: str, numbers: bool, show_meta: bool) -> None:
    """Print the lines of a file in order."""
    with _project(ctx) as handle:
        lines = handle.fs.read(path)
    for line in lines:
        text = f"{line.lineno:>4}  {line.content}" if numbers else line.content
        if show_meta:
            if line.note:
                text += f"  // {line.note}"
            if line.control:
                text += f"  ::{line.control}::"
        click.echo(text)


# ---------------------------------------------------------------------------
# rowfs append / annotate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.argument("text", required=False)
@click.option("--text", "text_opt", default=None, help="Line to append (alternative to TEXT)")
@click.pass_context
def append(ctx: click.Context, path: str, text: str | None, text_opt: str | None) -> None:
    """Append TEXT as the next line of a file."""
    line = text_opt if text_opt is not None else text
    if line is None:
        raise click.UsageError("nothing to append: pass TEXT or --text")
    with _project(ctx) as handle:
        handle.fs.append(path, line)
    _ok()


@cli.command()
@click.argument("path")
@click.argument("meta", nargs=-1, required=True)
@click.option(
    "--line",
    "lineno",
    type=click.IntRange(min=1, max=MAX_LINENO),
    default=None,
    help="Annotate this line",
)
@click.pass_context
def annotate(ctx: click.Context, path: str, meta: tuple[str, ...], lineno: int | None) -> None:
    """Attach a note, tags or control text to a file, directory or line.

    \b
    rowfs annotate docs/plan.md // needs review
    rowfs annotate docs/plan.md --line 3 "::summarize this line::"
    rowfs annotate docs @@archive
    """
    parsed = parse_meta(meta)
    if not parsed:
        raise click.UsageError("no annotation found: start META with //, @@ or ::")
    with _project(ctx) as handle:
        handle.fs.annotate(path, parsed, line=lineno)
    _ok()


# ---------------------------------------------------------------------------
# rowfs mv / rm
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("src")
@click.argument("dst")
@click.pass_context
def mv(ctx: click.Context, src: str, dst: str) -> None:
    """Move or rename SRC to DST (directories move with their contents)."""
    with _project(ctx) as handle:
        handle.fs.move(src, dst)
    _ok()


@cli.command()
@click.argument("path")
@click.option("-r", "--recursive", is_flag=True, help="Remove a directory and everything under it")
@click.pass_context
def rm(ctx: click.Context, path: str, recursive: bool) -> None:
    """Remove a file, or a directory with -r."""
    with _project(ctx) as handle:
        handle.fs.remove(path, recursive=recursive)
    _ok()


# ---------------------------------------------------------------------------
# rowfs export
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--out", "out_path", default=None, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export(ctx: click.Context, out_path: Path | None) -> None:
    """Write every entry, line and tag of the project as JSON."""
    with _project(ctx) as handle:
        data = export_project(handle)
    if out_path is None:
        dump_json(data, sys.stdout)
        return
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with out_path.open("w", encoding="utf-8") as f:
            dump_json(data, f)
    except OSError as exc:
        raise click.ClickException(f"Cannot write {out_path}: {exc}") from exc
    click.echo(f"Exported {len(data['entries'])} entries to {out_path}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
