"""Repository engine operations implemented with the git executable.

Every operation here shells out to ``git`` through asyncio subprocesses,
so callers can cancel them like any other awaitable. Reference name
validation is the one synchronous helper: it is a cheap local check that
:class:`gitbiome.biome.remote.Remote` performs on demand. Coroutines run it
through :func:`asyncio.to_thread` so the event loop keeps running.

Public API
----------
- ``check_refspec_pattern``: Ask git whether a refspec pattern is valid.
- ``GitEngine``: Async wrapper for the plumbing the biome needs.
- ``RefRecord``: One reference reported by ``for-each-ref``.

"""

from __future__ import annotations

import asyncio
import dataclasses
import re
import subprocess
import typing as typ
from pathlib import Path

from gitbiome.logging import get_logger, log_debug

from .errors import GitCommandError, GitExecutableNotFoundError, GitVersionError
from .transaction import RefTransaction

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

# Timeout for the synchronous ref-format check (seconds)
_CHECK_REF_FORMAT_TIMEOUT = 10

# `git config --get` exits 1 when the key is unset
_CONFIG_KEY_UNSET = 1

# `update-ref --stdin` gained symref-update and symref-delete in 2.46
SYMREF_UPDATE_VERSION = (2, 46, 0)

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def check_refspec_pattern(pattern: str, *, git_executable: str = "git") -> bool:
    """Return True when git accepts ``pattern`` as a refspec pattern.

    Runs ``git check-ref-format --refspec-pattern``, which rejects names
    such as ``refs/remotes/github.com/acme/.github/*`` whose components
    begin with a dot.

    Raises
    ------
    GitExecutableNotFoundError
        If the git executable cannot be launched.

    """
    try:
        result = subprocess.run(  # noqa: S603 - argv list, no shell
            [git_executable, "check-ref-format", "--refspec-pattern", pattern],
            check=False,
            capture_output=True,
            timeout=_CHECK_REF_FORMAT_TIMEOUT,
        )
    except FileNotFoundError as exc:
        raise GitExecutableNotFoundError(git_executable) from exc
    return result.returncode == 0


@dataclasses.dataclass(frozen=True, slots=True)
class RefRecord:
    """A reference name and, for symbolic references, its target."""

    name: str
    symref: str = ""

    @property
    def is_symbolic(self) -> bool:
        """Return True when the reference is symbolic."""
        return bool(self.symref)


@dataclasses.dataclass(frozen=True, slots=True)
class GitResult:
    """Outcome of a completed git subprocess."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def check(self) -> GitResult:
        """Return self, or raise :class:`GitCommandError` on failure."""
        if self.returncode != 0:
            output = self.stderr or self.stdout
            raise GitCommandError(self.argv, self.returncode, output)
        return self


class GitEngine:
    """Async facade over the git plumbing used by the biome.

    Parameters
    ----------
    git_executable:
        Name or path of the git executable.

    """

    def __init__(self, git_executable: str = "git") -> None:
        """Configure the engine with the git executable to run."""
        self.git_executable = git_executable
        self._version: tuple[int, int, int] | None = None

    async def run(
        self,
        *args: str,
        repo: Path | str | None = None,
        capture: bool = True,
    ) -> GitResult:
        """Run ``git`` with ``args`` and return its result without checking it.

        When ``capture`` is false the subprocess inherits this process's
        standard output and error, which suits long running fetches.
        """
        argv = [self.git_executable]
        if repo is not None:
            argv += ["-C", str(repo)]
        argv += list(args)
        log_debug(logger, "Executing %s", " ".join(argv))
        pipe = asyncio.subprocess.PIPE if capture else None
        try:
            process = await asyncio.create_subprocess_exec(
                *argv, stdout=pipe, stderr=pipe
            )
        except FileNotFoundError as exc:
            raise GitExecutableNotFoundError(self.git_executable) from exc
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        return GitResult(
            argv=tuple(argv),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
        )

    async def version(self) -> tuple[int, int, int]:
        """Return the installed git version, asking git only once."""
        if self._version is None:
            output = (await self.run("version")).check().stdout
            match = _VERSION_PATTERN.search(output)
            if match is None:
                raise GitCommandError((self.git_executable, "version"), 0, output)
            major, minor, patch = match.groups()
            self._version = (int(major), int(minor), int(patch or 0))
        return self._version

    async def require_version(
        self, minimum: tuple[int, int, int], feature: str
    ) -> None:
        """Raise :class:`GitVersionError` unless git is at least ``minimum``."""
        found = await self.version()
        if found < minimum:
            raise GitVersionError(feature, minimum, found)

    async def git_dir(self, path: Path | str) -> Path | None:
        """Return the repository directory for ``path`` or None.

        Only a repository rooted exactly at ``path`` (bare, or with a
        ``.git`` directory) counts; an enclosing repository further up the
        tree does not.
        """
        target = Path(path)
        if not target.is_dir():
            return None
        result = await self.run("rev-parse", "--absolute-git-dir", repo=target)
        if result.returncode != 0:
            return None
        git_dir = Path(result.stdout.strip()).resolve()
        root = target.resolve()
        if git_dir in (root, root / ".git"):
            return git_dir
        return None

    async def init_bare(self, path: Path | str) -> None:
        """Initialise a bare repository at ``path``."""
        (await self.run("init", "--bare", str(path))).check()

    async def get_config(self, repo: Path | str, key: str) -> str | None:
        """Return the local config value for ``key``, or None when unset."""
        result = await self.run("config", "--local", "--get", key, repo=repo)
        if result.returncode == _CONFIG_KEY_UNSET:
            return None
        return result.check().stdout.strip()

    async def query_refs(
        self, repo: Path | str, *patterns: str
    ) -> list[RefRecord]:
        """List references matching ``patterns`` with their symbolic targets.

        Patterns follow ``git for-each-ref``: a pattern matches a reference
        literally or as a prefix ending at a ``/`` boundary.
        """
        result = (
            await self.run(
                "for-each-ref", "--format=%(refname)%09%(symref)", *patterns, repo=repo
            )
        ).check()
        records: list[RefRecord] = []
        for line in result.stdout.splitlines():
            name, _, symref = line.partition("\t")
            if name:
                records.append(RefRecord(name=name, symref=symref))
        return records

    async def read_symref(self, repo: Path | str, ref: str) -> str | None:
        """Return the target of the symbolic reference ``ref``, or None.

        Unlike :meth:`query_refs` this also reports symbolic references
        whose target does not exist yet.
        """
        result = await self.run("symbolic-ref", "--quiet", ref, repo=repo)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    async def fetch(self, repo: Path | str, groups: cabc.Sequence[str] = ()) -> None:
        """Fetch every remote, or only the remotes in the named ``groups``."""
        args = ["fetch", "--multiple", *groups] if groups else ["fetch", "--all"]
        (await self.run(*args, repo=repo, capture=False)).check()

    async def start_maintenance(self, repo: Path | str) -> None:
        """Register ``repo`` for scheduled background maintenance."""
        (await self.run("maintenance", "start", repo=repo)).check()

    async def open_ref_transaction(self, repo: Path | str) -> RefTransaction:
        """Open a reference transaction in ``repo``."""
        return await RefTransaction.open(repo, git_executable=self.git_executable)
