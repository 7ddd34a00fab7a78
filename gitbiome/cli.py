"""Command line interface for managing a biome.

Usage::

    gitbiome init acme.git
    gitbiome add --repo acme.git acme github.com/cli
    gitbiome remotes --repo acme.git --archived
    gitbiome heads --repo acme.git | xargs git -C acme.git grep -i "needle"

GitHub tokens come from ``GITBIOME_GITHUB_TOKEN``, ``GH_TOKEN`` or
``GITHUB_TOKEN`` (``GH_ENTERPRISE_TOKEN`` for other hosts). The log level
comes from ``--log-level`` or ``GITBIOME_LOG_LEVEL``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import sys
import typing as typ
from importlib.metadata import version
from pathlib import Path

from cyclopts import App, Parameter

from gitbiome.biome import (
    Biome,
    BiomeError,
    BiomeOptions,
    Owner,
    RemoteCategory,
    parse_owners,
)
from gitbiome.config import ConfigEditorError, helper
from gitbiome.git import GitError
from gitbiome.github import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubDirectoryClient,
    GitHubDirectoryConfig,
    GitHubResponseShapeError,
)
from gitbiome.logging import configure_logging, get_logger, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

app = App(
    name="gitbiome",
    help="Store many GitHub repositories in a single local git repository.",
    version=version("gitbiome"),
)

RepoOption = typ.Annotated[
    Path, Parameter(name="--repo", env_var="GITBIOME_REPO", help="Biome path.")
]
LogLevelOption = typ.Annotated[
    str | None,
    Parameter(name="--log-level", env_var="GITBIOME_LOG_LEVEL", help="Log level."),
]

_REPORTED_ERRORS = (
    BiomeError,
    ConfigEditorError,
    GitError,
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    ExceptionGroup,
    ValueError,
)


def _configure(log_level: str | None) -> None:
    normalized, invalid = configure_logging(log_level)
    if log_level and invalid:
        log_warning(
            logger, "Invalid log level %r, falling back to %s", log_level, normalized
        )


def _report(exc: BaseException, indent: str = "") -> None:
    print(f"{indent}{exc}", file=sys.stderr)
    for note in getattr(exc, "__notes__", ()):
        print(f"{indent}  {note}", file=sys.stderr)
    if isinstance(exc, BaseExceptionGroup):
        for child in exc.exceptions:
            _report(child, indent=f"{indent}  - ")
    elif isinstance(exc.__cause__, BaseExceptionGroup):
        _report(exc.__cause__, indent=f"{indent}  ")


def _run(operation: cabc.Coroutine[typ.Any, typ.Any, None]) -> int:
    try:
        asyncio.run(operation)
    except _REPORTED_ERRORS as exc:
        print("gitbiome: error:", file=sys.stderr)
        _report(exc, indent="  ")
        return EXIT_FAILED
    return EXIT_OK


def _parse_owner_args(references: cabc.Sequence[str]) -> list[Owner] | None:
    owners, error = parse_owners(references)
    if error is not None:
        print("gitbiome: error:", file=sys.stderr)
        _report(error, indent="  ")
        return None
    return sorted(set(owners))


def _options() -> BiomeOptions:
    return BiomeOptions.from_env()


def _directory() -> GitHubDirectoryClient:
    return GitHubDirectoryClient(GitHubDirectoryConfig.from_env())


def _selected_categories(
    flags: cabc.Mapping[RemoteCategory, bool], *, select_all: bool
) -> list[RemoteCategory]:
    if select_all:
        return list(flags)
    chosen = [category for category, on in flags.items() if on]
    return chosen or [RemoteCategory.ACTIVE]


@app.command
def init(
    path: Path = Path("."),
    *,
    maintenance: bool = True,
    log_level: LogLevelOption = None,
) -> int:
    """Initialise a new biome, a bare git repository, at PATH.

    Running it again on an existing biome changes nothing.

    Args:
        path: Directory to initialise.
        maintenance: Register the repository for background git maintenance.
        log_level: Log level.

    """
    _configure(log_level)

    async def operation() -> None:
        options = dataclasses.replace(_options(), start_maintenance=maintenance)
        await Biome.init(path, options)
        print(f"Initialised biome in {path}")

    return _run(operation())


@app.command
def add(
    *owners: str,
    repo: RepoOption = Path("."),
    skip_fetch: bool = False,
    log_level: LogLevelOption = None,
) -> int:
    """Add every repository of the given GitHub owners to the biome.

    Owners are written as ``[https://][<host>/]<name>``; the host defaults
    to github.com. Each repository becomes a remote whose references are
    fetched into ``refs/remotes/<host>/<owner>/<repo>/``.

    Args:
        owners: Users or organisations to add.
        repo: Biome path.
        skip_fetch: Configure remotes without fetching them.
        log_level: Log level.

    """
    _configure(log_level)
    if not owners:
        print("gitbiome: add requires at least one owner", file=sys.stderr)
        return EXIT_USAGE
    parsed = _parse_owner_args(owners)
    if parsed is None:
        return EXIT_FAILED

    async def operation() -> None:
        async with _directory() as directory:
            biome = await Biome.load(repo, _options(), directory=directory)
            await biome.add_owners(parsed)
            print("Updating git remote configurations...", file=sys.stderr)
            await biome.update_remotes()
            if not skip_fetch:
                await biome.fetch(parsed)

    return _run(operation())


@app.command(name=["remove", "rm"])
def remove(
    *owners: str,
    repo: RepoOption = Path("."),
    log_level: LogLevelOption = None,
) -> int:
    """Remove GitHub owners and all of their remotes from the biome.

    Args:
        owners: Users or organisations to remove.
        repo: Biome path.
        log_level: Log level.

    """
    _configure(log_level)
    if not owners:
        print("gitbiome: remove requires at least one owner", file=sys.stderr)
        return EXIT_USAGE
    parsed = _parse_owner_args(owners)
    if parsed is None:
        return EXIT_FAILED

    async def operation() -> None:
        async with _directory() as directory:
            biome = await Biome.load(repo, _options(), directory=directory)
            for owner in parsed:
                print(f"Removing {owner}...", file=sys.stderr)
            await biome.remove_owners(parsed)
            await biome.update_remotes()

    return _run(operation())


@app.command(name=["list", "ls"])
def list_owners(
    *,
    repo: RepoOption = Path("."),
    log_level: LogLevelOption = None,
) -> int:
    """List the owners added to the biome."""
    _configure(log_level)

    async def operation() -> None:
        biome = await Biome.load(repo, _options())
        for owner in await biome.owners():
            print(owner)

    return _run(operation())


@app.command
def fetch(
    *owners: str,
    repo: RepoOption = Path("."),
    log_level: LogLevelOption = None,
) -> int:
    """Refresh remote configurations and fetch them.

    With no owners every remote is fetched; otherwise only the remotes of
    the named owners, which must already be in the biome.

    Args:
        owners: Users or organisations to fetch.
        repo: Biome path.
        log_level: Log level.

    """
    _configure(log_level)
    parsed = _parse_owner_args(owners)
    if parsed is None:
        return EXIT_FAILED

    async def operation() -> None:
        async with _directory() as directory:
            biome = await Biome.load(repo, _options(), directory=directory)
            print("Updating git remote configurations...", file=sys.stderr)
            await biome.update_remotes()
            await biome.fetch(parsed)

    return _run(operation())


@app.command
def remotes(
    *,
    repo: RepoOption = Path("."),
    active: bool = False,
    archived: bool = False,
    disabled: bool = False,
    locked: bool = False,
    unsupported: bool = False,
    select_all: typ.Annotated[bool, Parameter(name="--all")] = False,
    log_level: LogLevelOption = None,
) -> int:
    """List the biome's remotes, by default only the active ones.

    Args:
        repo: Biome path.
        active: Include repositories that are not archived, disabled or
            locked and whose names are supported.
        archived: Include archived repositories.
        disabled: Include disabled repositories, which are never fetched.
        locked: Include locked repositories, which are never fetched.
        unsupported: Include repositories whose names cannot be used as
            reference namespaces, such as ``.github``.
        select_all: Include every category.
        log_level: Log level.

    """
    _configure(log_level)
    categories = _selected_categories(
        {
            RemoteCategory.ACTIVE: active,
            RemoteCategory.ARCHIVED: archived,
            RemoteCategory.DISABLED: disabled,
            RemoteCategory.LOCKED: locked,
            RemoteCategory.UNSUPPORTED: unsupported,
        },
        select_all=select_all,
    )

    async def operation() -> None:
        biome = await Biome.load(repo, _options())
        for remote in await biome.remotes(*categories):
            print(remote)

    return _run(operation())


@app.command
def heads(
    *,
    repo: RepoOption = Path("."),
    active: bool = False,
    archived: bool = False,
    select_all: typ.Annotated[bool, Parameter(name="--all")] = False,
    log_level: LogLevelOption = None,
) -> int:
    """Print the HEAD reference of each fetchable remote.

    The output suits any command taking references, for example
    ``gitbiome heads | xargs git grep -i "search term"``.

    Args:
        repo: Biome path.
        active: Include active remotes.
        archived: Include archived remotes.
        select_all: Include every fetchable category.
        log_level: Log level.

    """
    _configure(log_level)
    categories = _selected_categories(
        {RemoteCategory.ACTIVE: active, RemoteCategory.ARCHIVED: archived},
        select_all=select_all,
    )

    async def operation() -> None:
        biome = await Biome.load(repo, _options())
        for remote in await biome.remotes(*categories):
            print(remote.head)

    return _run(operation())


@app.command(name="config-edit-helper", show=False)
def config_edit_helper(socket_path: str, file_path: str) -> int:
    """Act as GIT_EDITOR for a config edit session."""
    return helper.run(socket_path, file_path)


def main(argv: cabc.Sequence[str] | None = None) -> int:
    """Entry point for the ``gitbiome`` command."""
    result = app(list(argv) if argv is not None else None)
    return result if isinstance(result, int) else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
