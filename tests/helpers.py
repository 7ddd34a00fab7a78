"""Shared test utilities."""

from __future__ import annotations

import asyncio
import functools
import re
import shutil
import subprocess
import typing as typ

import pytest

from gitbiome.github.errors import GitHubOwnerNotFoundError
from gitbiome.github.models import DefaultBranchRef, RepositoryDescriptor

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from gitbiome.biome import Owner

GIT = shutil.which("git")


def run_async[T](coro_func: typ.Callable[[], typ.Coroutine[typ.Any, typ.Any, T]]) -> T:
    """Execute an async callable within the test context."""
    return asyncio.run(coro_func())


@functools.cache
def git_version() -> tuple[int, int, int]:
    """Return the installed git version, or zeros when git is missing."""
    if GIT is None:
        return (0, 0, 0)
    output = subprocess.run(  # noqa: S603 - fixed argv
        [GIT, "version"], check=True, capture_output=True, text=True
    ).stdout
    match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", output)
    if match is None:
        return (0, 0, 0)
    major, minor, patch = match.groups()
    return (int(major), int(minor), int(patch or 0))


requires_git = pytest.mark.skipif(GIT is None, reason="git executable not available")
requires_symref_update = pytest.mark.skipif(
    git_version() < (2, 46, 0), reason="symref-update needs git 2.46 or newer"
)


def git(repo: Path, *args: str, stdin: str | None = None) -> str:
    """Run git in ``repo`` and return its stripped standard output."""
    return subprocess.run(  # noqa: S603 - argv list, no shell
        ["git", "-C", str(repo), *args],
        check=True,
        capture_output=True,
        text=True,
        input=stdin,
    ).stdout.strip()


def git_ok(repo: Path, *args: str) -> bool:
    """Return True when git exits zero in ``repo``."""
    return (
        subprocess.run(  # noqa: S603 - argv list, no shell
            ["git", "-C", str(repo), *args], check=False, capture_output=True
        ).returncode
        == 0
    )


def make_commit(repo: Path) -> str:
    """Write an empty-tree commit into ``repo`` and return its object id."""
    tree = git(repo, "mktree", stdin="")
    return git(repo, "commit-tree", tree, "-m", "fixture")


def descriptor(
    name: str,
    *,
    archived: bool = False,
    disabled: bool = False,
    locked: bool = False,
    default_branch: str | None = "main",
) -> RepositoryDescriptor:
    """Build a repository listing entry for ``host/owner/repo``."""
    branch = (
        None
        if default_branch is None
        else DefaultBranchRef(name=default_branch, prefix="refs/heads/")
    )
    return RepositoryDescriptor(
        url=f"https://{name}",
        is_archived=archived,
        is_disabled=disabled,
        is_locked=locked,
        default_branch_ref=branch,
    )


class FakeDirectory:
    """In-memory repository directory keyed by canonical owner reference."""

    def __init__(
        self,
        repositories: cabc.Mapping[str, list[RepositoryDescriptor]] | None = None,
    ) -> None:
        self.repositories: dict[str, list[RepositoryDescriptor]] = dict(
            repositories or {}
        )
        self.validated: list[str] = []
        self.listed: list[str] = []

    async def validate_owner(self, owner: Owner) -> None:
        self.validated.append(str(owner))
        if str(owner) not in self.repositories:
            raise GitHubOwnerNotFoundError(str(owner))

    async def iter_repositories(
        self, owner: Owner
    ) -> cabc.AsyncIterator[RepositoryDescriptor]:
        self.listed.append(str(owner))
        for entry in self.repositories.get(str(owner), []):
            yield entry
