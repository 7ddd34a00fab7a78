"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from gitbiome.biome import BiomeOptions
from gitbiome.config import EditorOptions
from tests.helpers import GIT, git

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_CLEARED_ENV = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_EDITOR",
    "GITBIOME_REPO",
    "GITBIOME_GIT",
    "GITBIOME_LOG_LEVEL",
    "GITBIOME_EDIT_TIMEOUT_S",
    "GITBIOME_START_MAINTENANCE",
    "GITBIOME_GITHUB_TOKEN",
    "GITBIOME_GITHUB_TIMEOUT_S",
    "GH_TOKEN",
    "GITHUB_TOKEN",
    "GH_ENTERPRISE_TOKEN",
    "GITHUB_ENTERPRISE_TOKEN",
)


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user and system git config out of every test.

    The project root is prepended to ``PYTHONPATH`` so the config edit
    helper git launches can import ``gitbiome`` from a source checkout.
    """
    for name in _CLEARED_ENV:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    global_config = home / ".gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Fixture Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.test")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Fixture Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.test")
    python_path = os.environ.get("PYTHONPATH", "")
    monkeypatch.setenv(
        "PYTHONPATH",
        os.pathsep.join(part for part in (str(_PROJECT_ROOT), python_path) if part),
    )


@pytest.fixture
def git_required() -> None:
    """Skip the test when git is not installed."""
    if GIT is None:
        pytest.skip("git executable not available")


@pytest.fixture
def biome_path(tmp_path: Path) -> Path:
    """Return a path where a biome repository may be created."""
    return tmp_path / "biome.git"


@pytest.fixture
def biome_options() -> BiomeOptions:
    """Return biome options with a generous edit deadline."""
    return BiomeOptions(editor=EditorOptions(timeout_s=60.0))


@pytest.fixture
def bare_repo(tmp_path: Path, git_required: None) -> Path:
    """Return a freshly initialised bare repository."""
    path = tmp_path / "bare.git"
    path.mkdir()
    git(path, "init", "--bare", "--quiet")
    return path



@pytest.fixture
def old_git(tmp_path: Path, git_required: None) -> str:
    """Return a git wrapper that reports version 2.39.5 and runs real git."""
    script = tmp_path / "old-git"
    script.write_text(
        "#!/bin/sh\n"
        'if [ "$1" = version ]; then\n'
        '  echo "git version 2.39.5"\n'
        "  exit 0\n"
        "fi\n"
        f'exec "{GIT}" "$@"\n',
        encoding="utf-8",
    )
    script.chmod(0o755)
    return str(script)
