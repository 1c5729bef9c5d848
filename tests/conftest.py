"""Shared fixtures: a fresh store per test, isolated from the user's environment."""

from __future__ import annotations

import pytest

from rowfs.fs import VirtualFS
from rowfs.store import Store


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Run every test in an empty cwd with a private ROWFS_HOME."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("ROWFS_HOME", str(tmp_path / "home"))
    for var in ("ROWFS_PROJECT_DB", "ROWFS_PROJECT", "ROWFS_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store(tmp_path):
    s = Store(tmp_path / "store" / "project.sqlite", wal_mode=False)
    yield s
    s.close()


@pytest.fixture
def project_id(store):
    return store.ensure_project("/projects/demo")


@pytest.fixture
def fs(store, project_id):
    return VirtualFS(store, project_id)
