"""Tests for config edit sessions driven through ``git config --edit``.

These run the real git executable with the helper as its editor.
"""

from __future__ import annotations

import asyncio
import typing as typ
from pathlib import Path

import pytest

from gitbiome.config import (
    ConfigEditor,
    ConfigLockedError,
    ConfigTransformError,
    EditCancelledError,
    EditorOptions,
    HelperDidNotConnectError,
)
from tests.helpers import git

if typ.TYPE_CHECKING:
    from gitbiome.config import GitConfig


def _editor(repo: Path, **overrides: typ.Any) -> ConfigEditor:  # noqa: ANN401
    options = {"timeout_s": 60.0, **overrides}
    return ConfigEditor(repo, EditorOptions(**options))


@pytest.mark.asyncio
async def test_edit_saves_when_transform_returns_true(bare_repo: Path) -> None:
    """Changes made by the transform reach the repository config."""
    seen: dict[str, str | None] = {}

    async def transform(cfg: GitConfig) -> bool:
        seen["bare"] = cfg.get("core.bare")
        cfg.set("biome.version", "1")
        cfg.add("biome.owners", "github.com/acme")
        cfg.add("biome.owners", "github.com/cli")
        return True

    await _editor(bare_repo).edit(transform)

    assert seen == {"bare": "true"}, "Expected the transform to see the live config"
    assert git(bare_repo, "config", "--get", "biome.version") == "1", (
        "Expected the new key to be saved"
    )
    assert git(bare_repo, "config", "--get-all", "biome.owners").splitlines() == [
        "github.com/acme",
        "github.com/cli",
    ], "Expected both owners saved in order"


@pytest.mark.asyncio
async def test_edit_leaves_file_untouched_when_transform_returns_false(
    bare_repo: Path,
) -> None:
    """A read-only transform does not rewrite the config."""
    config_file = bare_repo / "config"
    before = config_file.read_bytes()

    async def transform(cfg: GitConfig) -> bool:
        cfg.set("biome.version", "ignored")
        return False

    await _editor(bare_repo).edit(transform)

    assert config_file.read_bytes() == before, "Expected the file unchanged"


@pytest.mark.asyncio
async def test_transform_error_aborts_edit(bare_repo: Path) -> None:
    """A failing transform is reported with its cause and nothing is written."""
    config_file = bare_repo / "config"
    before = config_file.read_bytes()
    failure = ValueError("boom")

    async def transform(cfg: GitConfig) -> bool:
        cfg.set("biome.version", "1")
        raise failure

    with pytest.raises(ConfigTransformError) as excinfo:
        await _editor(bare_repo).edit(transform)

    assert excinfo.value.__cause__ is failure, "Expected the original error as cause"
    assert excinfo.value.error is failure, "Expected the original error attached"
    assert config_file.read_bytes() == before, "Expected the file unchanged"


@pytest.mark.asyncio
async def test_editor_that_never_calls_back_is_reported(bare_repo: Path) -> None:
    """git exiting before the helper connects surfaces git's output."""

    async def transform(cfg: GitConfig) -> bool:
        pytest.fail("transform must not run without a callback")

    with pytest.raises(HelperDidNotConnectError) as excinfo:
        await _editor(bare_repo, helper_command=("false",)).edit(transform)

    assert "problem with the editor" in excinfo.value.output, (
        "Expected git's editor diagnostics captured"
    )
    assert excinfo.value.returncode is not None, "Expected git to have exited"


@pytest.mark.asyncio
@pytest.mark.usefixtures("git_required")
async def test_missing_repository_is_reported(tmp_path: Path) -> None:
    """Editing a directory that does not exist fails before any callback."""

    async def transform(cfg: GitConfig) -> bool:
        pytest.fail("transform must not run for a missing repository")

    with pytest.raises(HelperDidNotConnectError):
        await _editor(tmp_path / "absent.git").edit(transform)


@pytest.mark.asyncio
async def test_deadline_cancels_session(bare_repo: Path) -> None:
    """A session running past its deadline is cancelled and writes nothing."""
    config_file = bare_repo / "config"
    before = config_file.read_bytes()

    async def transform(cfg: GitConfig) -> bool:
        await asyncio.sleep(30)
        cfg.set("biome.version", "1")
        return True

    with pytest.raises(EditCancelledError):
        await _editor(bare_repo, timeout_s=1.0).edit(transform)

    assert config_file.read_bytes() == before, "Expected the file unchanged"


@pytest.mark.asyncio
async def test_sequential_sessions_see_previous_edits(bare_repo: Path) -> None:
    """Each session loads the config as the previous one left it."""
    editor = _editor(bare_repo)
    values: list[list[str]] = []

    async def append(cfg: GitConfig) -> bool:
        values.append(cfg.get_all("biome.owners"))
        cfg.add("biome.owners", f"github.com/owner{len(values)}")
        return True

    await editor.edit(append)
    await editor.edit(append)

    assert values == [[], ["github.com/owner1"]], "Expected edits to accumulate"


@pytest.mark.asyncio
async def test_concurrent_sessions_run_one_at_a_time(bare_repo: Path) -> None:
    """Overlapping edits are serialised and neither loses its change."""
    editor = _editor(bare_repo)
    running = 0
    peak = 0

    def adding(owner: str) -> typ.Callable[[GitConfig], typ.Awaitable[bool]]:
        async def transform(cfg: GitConfig) -> bool:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.5)
            cfg.add("biome.owners", owner)
            running -= 1
            return True

        return transform

    await asyncio.gather(
        editor.edit(adding("github.com/acme")),
        editor.edit(adding("github.com/cli")),
    )

    assert peak == 1, "Expected transforms never to overlap"
    assert sorted(
        git(bare_repo, "config", "--get-all", "biome.owners").splitlines()
    ) == ["github.com/acme", "github.com/cli"], "Expected both edits kept"
    assert not (bare_repo / "config.lock").exists(), "Expected the lock released"


@pytest.mark.asyncio
async def test_session_waits_for_held_lock_then_gives_up(bare_repo: Path) -> None:
    """A lock held by another writer is never broken."""
    lock = bare_repo / "config.lock"
    lock.write_text("", encoding="utf-8")
    before = (bare_repo / "config").read_bytes()

    async def transform(cfg: GitConfig) -> bool:
        pytest.fail("transform must not run while another writer holds the lock")

    with pytest.raises(ConfigLockedError) as excinfo:
        await _editor(bare_repo, lock_wait_s=0.2).edit(transform)

    assert Path(excinfo.value.lock_path) == lock.resolve(), (
        "Expected the lock file named"
    )
    assert lock.exists(), "Expected the other writer's lock left in place"
    assert (bare_repo / "config").read_bytes() == before, "Expected no change"


@pytest.mark.asyncio
async def test_lock_is_released_after_failed_transform(bare_repo: Path) -> None:
    """A failing session does not leave the config locked."""

    async def transform(cfg: GitConfig) -> bool:
        msg = "boom"
        raise ValueError(msg)

    with pytest.raises(ConfigTransformError):
        await _editor(bare_repo).edit(transform)

    assert not (bare_repo / "config.lock").exists(), "Expected the lock released"


def test_editor_options_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """The deadline is read from GITBIOME_EDIT_TIMEOUT_S."""
    assert EditorOptions.from_env().timeout_s is None, "Expected no default deadline"

    monkeypatch.setenv("GITBIOME_EDIT_TIMEOUT_S", "2.5")
    assert EditorOptions.from_env().timeout_s == pytest.approx(2.5), (
        "Expected the configured deadline"
    )

    monkeypatch.setenv("GITBIOME_EDIT_TIMEOUT_S", "-1")
    with pytest.raises(ValueError, match="must be positive"):
        EditorOptions.from_env()

    monkeypatch.setenv("GITBIOME_EDIT_TIMEOUT_S", "soon")
    with pytest.raises(ValueError, match="must be a number"):
        EditorOptions.from_env()
