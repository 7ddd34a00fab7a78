"""End-to-end tests for the ``gitbiome`` command line.

The CLI is run as ``python -m gitbiome`` in a subprocess. None of these
commands reach GitHub: they either fail before any request or operate on
a biome with no owners.
"""

from __future__ import annotations

import subprocess
import sys
import typing as typ

import pytest

from tests.helpers import git

if typ.TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.usefixtures("git_required")


def _gitbiome(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603 - fixed argv
        [sys.executable, "-m", "gitbiome", *args],
        cwd=cwd,
        check=False,
        capture_output=True,
        text=True,
        timeout=120,
    )


@pytest.fixture
def initialised(tmp_path: Path) -> Path:
    """Return the path of a biome created through the CLI."""
    result = _gitbiome(tmp_path, "init", "biome.git", "--no-maintenance")
    assert result.returncode == 0, f"init failed: {result.stderr}"
    return tmp_path / "biome.git"


def test_help_lists_commands(tmp_path: Path) -> None:
    """The top-level help names every user-facing command."""
    result = _gitbiome(tmp_path, "--help")

    assert result.returncode == 0, result.stderr
    for command in ("init", "add", "remove", "list", "fetch", "remotes", "heads"):
        assert command in result.stdout, f"Expected {command!r} in help output"
    assert "config-edit-helper" not in result.stdout, "Expected the helper hidden"


def test_init_creates_biome(initialised: Path) -> None:
    """``init`` creates a bare repository with the schema version set."""
    assert git(initialised, "config", "--get", "biome.version") == "1", (
        "Expected the schema version"
    )


def test_init_twice_succeeds(initialised: Path) -> None:
    """Re-running ``init`` on a biome is harmless."""
    result = _gitbiome(initialised.parent, "init", "biome.git", "--no-maintenance")

    assert result.returncode == 0, result.stderr


def test_listings_of_empty_biome_are_empty(initialised: Path) -> None:
    """An empty biome lists no owners, remotes or heads."""
    for args in (("list",), ("remotes", "--all"), ("heads", "--all")):
        result = _gitbiome(initialised.parent, *args, "--repo", "biome.git")
        assert result.returncode == 0, f"{args} failed: {result.stderr}"
        assert result.stdout == "", f"Expected no output from {args}"


def test_repo_defaults_from_environment(
    initialised: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """``GITBIOME_REPO`` selects the biome when ``--repo`` is omitted."""
    monkeypatch.setenv("GITBIOME_REPO", str(initialised))

    result = _gitbiome(initialised.parent.parent, "ls")

    assert result.returncode == 0, result.stderr


def test_add_without_owners_is_a_usage_error(initialised: Path) -> None:
    """``add`` needs at least one owner."""
    result = _gitbiome(initialised, "add")

    assert result.returncode == 2, "Expected the usage exit status"
    assert "at least one owner" in result.stderr, "Expected a usage message"


def test_add_reports_every_invalid_owner(initialised: Path) -> None:
    """All malformed owner references are reported together."""
    result = _gitbiome(initialised, "add", "a/b/c", "https://", "acme")

    assert result.returncode == 1, "Expected failure"
    assert "2 owner reference(s) invalid" in result.stderr, "Expected a summary"
    assert "'a/b/c'" in result.stderr, "Expected the first bad reference"
    assert "'https://'" in result.stderr, "Expected the second bad reference"


def test_fetch_rejects_owner_not_in_biome(initialised: Path) -> None:
    """Fetching a specific owner requires it to be added first."""
    result = _gitbiome(initialised, "fetch", "acme")

    assert result.returncode == 1, "Expected failure"
    assert "not added to the biome: github.com/acme" in result.stderr, (
        "Expected the missing owner named"
    )


def test_commands_fail_outside_a_biome(tmp_path: Path) -> None:
    """Commands against a plain directory report it is not a repository."""
    result = _gitbiome(tmp_path, "list")

    assert result.returncode == 1, "Expected failure"
    assert "gitbiome: error:" in result.stderr, "Expected the error prefix"
    assert "is not a git repository" in result.stderr, "Expected the reason"


def test_config_edit_helper_fails_without_editor(tmp_path: Path) -> None:
    """The hidden helper command exits 1 when no editor is listening."""
    result = _gitbiome(
        tmp_path, "config-edit-helper", str(tmp_path / "absent.sock"), "config"
    )

    assert result.returncode == 1, "Expected failure"
