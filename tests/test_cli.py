"""CLI tests driven through click's CliRunner."""

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from rowfs.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def run(runner):
    """Invoke against the 'notes' project, asserting success unless told otherwise."""
    assert runner.invoke(cli, ["project", "init", "notes"]).exit_code == 0

    def _run(*args, ok=True):
        result = runner.invoke(cli, ["--project", "notes", *args])
        if ok:
            assert result.exit_code == 0, result.output
        return result

    return _run


class TestProjectCommands:
    def test_init_writes_config(self, runner):
        result = runner.invoke(cli, ["init", "notes"])
        assert result.exit_code == 0
        assert "Created" in result.output
        assert 'project = "notes"' in Path("rowfs.toml").read_text()

        again = runner.invoke(cli, ["init"])
        assert again.exit_code == 0
        assert "already exists" in again.output

    def test_project_init_and_list(self, runner):
        result = runner.invoke(cli, ["project", "init", "notes"])
        assert result.exit_code == 0
        assert Path("notes.rowproj/project.sqlite").is_file()

        listed = runner.invoke(cli, ["project", "list"])
        assert "notes" in listed.output

    def test_project_init_twice_fails(self, runner):
        runner.invoke(cli, ["project", "init", "notes"])
        result = runner.invoke(cli, ["project", "init", "notes"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_list_empty(self, runner):
        result = runner.invoke(cli, ["project", "list"])
        assert "No projects found." in result.output

    def test_info(self, run):
        run("newfile", "a.txt", "--content", "hello")
        result = run("project", "info")
        assert "notes" in result.output
        assert "Files" in result.output

    def test_info_by_name(self, run, runner):
        result = runner.invoke(cli, ["project", "info", "notes"])
        assert result.exit_code == 0
        assert "Directories" in result.output

    def test_no_project_context(self, runner):
        result = runner.invoke(cli, ["ls"])
        assert result.exit_code == 1
        assert "not in a project context" in result.output

    def test_default_project_from_config(self, runner):
        runner.invoke(cli, ["init", "notes"])
        runner.invoke(cli, ["project", "init", "notes"])
        assert runner.invoke(cli, ["mkdir", "docs"]).exit_code == 0
        assert runner.invoke(cli, ["ls"]).output == "docs/\n"

    def test_db_option(self, runner, tmp_path):
        db = tmp_path / "loose.sqlite"
        assert runner.invoke(cli, ["--db", str(db), "mkdir", "x"]).exit_code == 0
        assert runner.invoke(cli, ["--db", str(db), "ls"]).output == "x/\n"


class TestEntryCommands:
    def test_mkdir_and_ls(self, run):
        run("mkdir", "docs/design", "//", "design notes")
        run("newfile", "docs/plan.md")
        assert run("ls").output == "docs/\n"
        assert run("ls", "docs").output == "design/\nplan.md\n"
        assert run("ls", "-a").output == "docs/\ndocs/design/\ndocs/plan.md\n"

    def test_ls_long_shows_metadata(self, run):
        run("mkdir", "docs", "@@core,wip")
        result = run("ls", "-l")
        assert "core, wip" in result.output

    def test_ls_missing(self, run):
        result = run("ls", "nope", ok=False)
        assert result.exit_code == 1
        assert "nope" in result.output

    def test_newfile_cat_append(self, run):
        run("newfile", "a.txt", "--content", "first")
        run("append", "a.txt", "second")
        run("append", "a.txt", "--text", "third")
        assert run("cat", "a.txt").output == "first\nsecond\nthird\n"
        numbered = run("cat", "-n", "a.txt").output.splitlines()
        assert numbered[0].split() == ["1", "first"]

    def test_append_needs_text(self, run):
        run("newfile", "a.txt")
        result = run("append", "a.txt", ok=False)
        assert result.exit_code == 2

    def test_append_to_directory_fails(self, run):
        run("mkdir", "d")
        result = run("append", "d", "x", ok=False)
        assert result.exit_code == 1

    def test_annotate_line(self, run):
        run("newfile", "a.txt", "--content", "one")
        run("annotate", "a.txt", "--line", "1", "//", "check", "this")
        assert run("cat", "-m", "a.txt").output == "one  // check this\n"

    def test_annotate_line_out_of_range(self, run):
        run("newfile", "a.txt", "--content", "one")
        result = run("annotate", "a.txt", "--line", "99999999999999999999", "//", "n", ok=False)
        assert result.exit_code == 2
        assert isinstance(result.exception, SystemExit)

    def test_annotate_without_marker(self, run):
        run("newfile", "a.txt")
        result = run("annotate", "a.txt", "just", "words", ok=False)
        assert result.exit_code == 2
        assert "no annotation found" in result.output

    def test_append_undecodable_text(self, run):
        run("newfile", "a.txt", "--content", "one")
        result = run("append", "a.txt", os.fsdecode(b"caf\xe9"), ok=False)
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert run("cat", "a.txt").output == "one\n"

    def test_annotate_entry_tags(self, run):
        run("mkdir", "docs")
        run("annotate", "docs", "@@archive")
        assert "[archive]" in run("tree").output

    def test_tree(self, run):
        run("newfile", "docs/plan.md")
        run("mkdir", "src")
        assert run("tree").output == "/\n  docs/\n    plan.md\n  src/\n"
        assert run("tree", "docs").output == "docs/\n  plan.md\n"

    def test_mv(self, run):
        run("newfile", "a/x.txt", "--content", "payload")
        run("mv", "a", "b/a")
        assert run("cat", "b/a/x.txt").output == "payload\n"
        assert run("ls").output == "b/\n"

    def test_mv_onto_existing_fails(self, run):
        run("mkdir", "a")
        run("mkdir", "b")
        result = run("mv", "a", "b", ok=False)
        assert result.exit_code == 1
        assert "exists" in result.output

    def test_rm(self, run):
        run("newfile", "d/f.txt")
        result = run("rm", "d", ok=False)
        assert result.exit_code == 1
        run("rm", "-r", "d")
        assert run("ls").output == ""

    def test_escaping_path_rejected(self, run):
        result = run("mkdir", "../outside", ok=False)
        assert result.exit_code == 1


class TestExport:
    def test_export_to_stdout(self, run):
        run("newfile", "a.txt", "--content", "hi")
        data = json.loads(run("export").output)
        assert data["project"]["name"] == "notes"
        assert data["entries"][0]["lines"] == [{"lineno": 1, "content": "hi"}]

    def test_export_to_file(self, run):
        run("mkdir", "d")
        result = run("export", "--out", "out/dump.json")
        assert "Exported 1 entries" in result.output
        data = json.loads(Path("out/dump.json").read_text())
        assert [e["path"] for e in data["entries"]] == ["d"]

    def test_export_unwritable_destination(self, run):
        Path("blocker").write_text("")
        result = run("export", "--out", "blocker/dump.json", ok=False)
        assert result.exit_code == 1
        assert "Cannot write" in result.output
