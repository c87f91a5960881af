"""
Shared pytest fixtures for the TestCraft Repository Hub Scanner test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - hub: Empty repository hub directory (function-scoped)
    - write_java: Helper writing a Java source file under a repository
    - make_remote: Helper creating a local git repository to clone from
"""

import os
from pathlib import Path

import git
import pytest

from testcraft import create_app
from testcraft.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


# ── Filesystem fixtures ──────────────────────────────────────────────────


@pytest.fixture()
def hub(tmp_path):
    """An empty repository hub."""
    path = tmp_path / "hub"
    path.mkdir()
    return path


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture()
def write_java():
    """Write ``source`` to ``<repo>/src/test/java/<rel_path>`` (or a custom root)."""

    def _write_java(repo: Path, rel_path: str, source: str, root: str = "src/test/java") -> Path:
        return _write(Path(repo) / root / rel_path, source)

    return _write_java


GIT_ACTOR = git.Actor("TestCraft CI", "ci@testcraft.invalid")


def commit_files(repo: git.Repo, files: dict[str, str], message: str = "update") -> str:
    """Write files into ``repo``, stage and commit them. Returns the commit sha."""
    for rel, content in files.items():
        _write(Path(repo.working_tree_dir) / rel, content)
    repo.index.add(list(files))
    commit = repo.index.commit(message, author=GIT_ACTOR, committer=GIT_ACTOR)
    return commit.hexsha


@pytest.fixture()
def make_remote(tmp_path):
    """Create a local git repository usable as a clone source.

    Returns a callable ``(name, files) -> (url, repo)``; the url is a
    ``file://`` URL ending in ``<name>.git``.
    """
    created = []

    def _make_remote(name: str, files: dict[str, str] | None = None):
        path = tmp_path / "remotes" / f"{name}.git"
        path.mkdir(parents=True)
        repo = git.Repo.init(path, initial_branch="main")
        commit_files(repo, files or {"README.md": f"# {name}\n"}, message="initial")
        created.append(repo)
        return path.as_uri(), repo

    yield _make_remote
    for repo in created:
        repo.close()


@pytest.fixture(autouse=True)
def _isolated_git_env(monkeypatch, tmp_path):
    """Keep tests away from the developer's global git config."""
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    if "GIT_SSH_COMMAND" in os.environ:
        monkeypatch.delenv("GIT_SSH_COMMAND")


@pytest.fixture()
def git_commit():
    """The ``commit_files`` helper, for tests that change a remote after cloning."""
    return commit_files
