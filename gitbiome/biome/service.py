"""Biome lifecycle and remote reconciliation.

A biome is a bare git repository that aggregates the references and objects
of every repository belonging to a set of GitHub owners. All persistent
state lives in the repository's local git config:

- ``biome.version`` records the schema version.
- ``biome.owners`` lists owners, sorted and deduplicated.
- ``[biome "remotes"]`` records each discovered remote under its category.
- ``[remote "<name>"]`` declares every fetchable remote.
- ``remotes.<group>`` groups an owner's remotes for ``git fetch --multiple``.

Config changes go through :class:`~gitbiome.config.ConfigEditor` sessions and
reference changes through :class:`~gitbiome.git.RefTransaction`, so every
operation either applies as a whole or not at all.

Usage
-----
Initialise a biome and mirror an organisation::

    async with GitHubDirectoryClient(GitHubDirectoryConfig.from_env()) as gh:
        biome = await Biome.init("acme.git", directory=gh)
        await biome.add_owners([parse_owner("acme")])
        result = await biome.update_remotes()
        await biome.fetch()

"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import os
import typing as typ
from pathlib import Path

import httpx

from gitbiome.config import ConfigEditor, EditorOptions, GitConfig
from gitbiome.git import SYMREF_UPDATE_VERSION, GitCommandError, GitEngine
from gitbiome.github.errors import (
    GitHubAPIError,
    GitHubOwnerNotFoundError,
    GitHubResponseShapeError,
)
from gitbiome.logging import get_logger, log_debug, log_info, log_warning

from .errors import (
    BiomeError,
    EmptyCategorySelectorError,
    NotARepositoryError,
    OwnerNotAddedError,
    OwnerParseError,
    OwnerValidationError,
    RemoteClassificationError,
    RemoteDescriptorError,
    RepositoryInitError,
    SchemaVersionMismatchError,
    SchemaVersionMissingError,
)
from .owner import Owner, parse_owner, parse_owners
from .remote import (
    ALL_REMOTE_CATEGORIES,
    FETCHABLE_REMOTE_CATEGORIES,
    Remote,
    RemoteCategory,
    RemoteConfig,
    remote_config_from_descriptor,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gitbiome.github.client import RepositoryDirectory

logger = get_logger(__name__)

SCHEMA_VERSION = "1"

_BIOME = "biome"
_VERSION_KEY = "biome.version"
_OWNERS = "owners"
_OWNERS_KEY = "biome.owners"
_CATEGORIES = "remotes"
_REMOTE = "remote"
_GROUPS = "remotes"
_BASELINE_SETTINGS = (
    (_VERSION_KEY, SCHEMA_VERSION),
    # 0 lets git pick a reasonable number of parallel fetches.
    ("fetch.parallel", "0"),
)

_VALIDATION_ERRORS = (
    GitHubOwnerNotFoundError,
    GitHubAPIError,
    GitHubResponseShapeError,
    httpx.HTTPError,
)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclasses.dataclass(frozen=True, slots=True)
class BiomeOptions:
    """Settings shared by every operation on a biome.

    Attributes
    ----------
    editor
        Options for config edit sessions. Their ``git_executable`` is
        replaced by :attr:`git_executable`.
    git_executable
        Name or path of the git executable.
    start_maintenance
        Register the repository for ``git maintenance`` after init.

    """

    editor: EditorOptions = dataclasses.field(default_factory=EditorOptions)
    git_executable: str = "git"
    start_maintenance: bool = False

    @classmethod
    def from_env(cls) -> BiomeOptions:
        """Build options from ``GITBIOME_*`` environment variables."""
        return cls(
            editor=EditorOptions.from_env(),
            git_executable=os.environ.get("GITBIOME_GIT", "").strip() or "git",
            start_maintenance=_env_flag("GITBIOME_START_MAINTENANCE"),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class UpdateResult:
    """Summary of one :meth:`Biome.update_remotes` pass."""

    configured: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    categories: cabc.Mapping[RemoteCategory, tuple[str, ...]] = dataclasses.field(
        default_factory=dict
    )
    heads_set: int = 0
    heads_cleared: int = 0
    refs_deleted: int = 0


@dataclasses.dataclass(slots=True)
class _Reconciliation:
    """What a reconciliation edit session decided, for the ref passes."""

    configured: list[RemoteConfig] = dataclasses.field(default_factory=list)
    stale: set[str] = dataclasses.field(default_factory=set)
    categories: dict[RemoteCategory, list[str]] = dataclasses.field(
        default_factory=lambda: collections.defaultdict(list)
    )


class Biome:
    """A validated biome repository.

    Obtain instances through :meth:`init` or :meth:`load`; both validate the
    repository first.

    Parameters
    ----------
    path:
        Path of the biome repository.
    options:
        Git executable, editor and maintenance settings.
    directory:
        Directory service used to validate owners and list repositories.
        Required by :meth:`add_owners` and :meth:`update_remotes`.

    """

    def __init__(
        self,
        path: Path | str,
        options: BiomeOptions | None = None,
        *,
        directory: RepositoryDirectory | None = None,
    ) -> None:
        """Bind the biome to ``path`` without touching the repository."""
        self.path = Path(path)
        self.options = options or BiomeOptions()
        self._directory = directory
        self._git = GitEngine(self.options.git_executable)
        self._editor = ConfigEditor(
            self.path,
            dataclasses.replace(
                self.options.editor, git_executable=self.options.git_executable
            ),
        )

    @classmethod
    async def init(
        cls,
        path: Path | str,
        options: BiomeOptions | None = None,
        *,
        directory: RepositoryDirectory | None = None,
    ) -> Biome:
        """Initialise a biome at ``path``, or return the one already there.

        A missing repository is created with ``git init --bare``. A
        repository without a schema version gets the baseline settings.
        A repository with a different schema version is never upgraded.

        Raises
        ------
        SchemaVersionMismatchError
            If the repository records an unsupported schema version.
        RepositoryInitError
            If the repository cannot be created.

        """
        biome = cls(path, options, directory=directory)
        try:
            await biome.validate()
        except NotARepositoryError:
            await biome._create_repository()
        except SchemaVersionMissingError:
            log_info(logger, "Initialising existing repository %s as a biome", path)
        else:
            log_debug(logger, "Biome already initialised at %s", path)
            return biome

        await biome._editor.edit(_write_baseline)
        if biome.options.start_maintenance:
            await biome._git.start_maintenance(biome.path)
        await biome.validate()
        return biome

    @classmethod
    async def load(
        cls,
        path: Path | str,
        options: BiomeOptions | None = None,
        *,
        directory: RepositoryDirectory | None = None,
    ) -> Biome:
        """Return the existing biome at ``path`` after validating it."""
        biome = cls(path, options, directory=directory)
        await biome.validate()
        return biome

    async def validate(self) -> None:
        """Check that the path is a repository with the supported schema.

        Raises
        ------
        NotARepositoryError
            If the path is not the root of a git repository.
        SchemaVersionMissingError
            If ``biome.version`` is unset.
        SchemaVersionMismatchError
            If ``biome.version`` is not the supported version.

        """
        if await self._git.git_dir(self.path) is None:
            raise NotARepositoryError(self.path)
        version = await self._git.get_config(self.path, _VERSION_KEY)
        if not version:
            raise SchemaVersionMissingError(self.path)
        if version != SCHEMA_VERSION:
            raise SchemaVersionMismatchError(self.path, SCHEMA_VERSION, version)

    async def _create_repository(self) -> None:
        if self.path.exists() and not self.path.is_dir():
            raise RepositoryInitError(self.path, "path exists and is not a directory")
        log_info(logger, "Creating bare repository %s", self.path)
        try:
            await self._git.init_bare(self.path)
        except GitCommandError as exc:
            raise RepositoryInitError(self.path, str(exc)) from exc

    def _require_directory(self) -> RepositoryDirectory:
        if self._directory is None:
            msg = "a repository directory service is required for this operation"
            raise BiomeError(msg)
        return self._directory

    async def add_owners(self, owners: cabc.Iterable[Owner]) -> None:
        """Add ``owners`` to the biome after confirming each one exists.

        Raises
        ------
        OwnerValidationError
            If any owner could not be confirmed; nothing is written.

        """
        directory = self._require_directory()
        owners = list(owners)
        errors: list[Exception] = []
        for owner in owners:
            try:
                await directory.validate_owner(owner)
            except _VALIDATION_ERRORS as exc:
                exc.add_note(f"could not validate owner: {owner}")
                errors.append(exc)
        if errors:
            raise OwnerValidationError.of(errors)

        added = {str(owner) for owner in owners}

        async def merge(cfg: GitConfig) -> bool:
            section = cfg.section(_BIOME)
            refs = sorted({*section.option_all(_OWNERS), *added})
            section.remove_option(_OWNERS)
            for ref in refs:
                section.add_option(_OWNERS, ref)
            return True

        await self._editor.edit(merge)
        log_info(logger, "Added owners: %s", ", ".join(sorted(added)))

    async def remove_owners(self, owners: cabc.Iterable[Owner]) -> None:
        """Remove ``owners`` from the biome; absent owners are ignored."""
        removed = set(owners)

        async def subtract(cfg: GitConfig) -> bool:
            section = cfg.section(_BIOME)
            kept = sorted(
                {ref for ref in section.option_all(_OWNERS) if not _names(ref, removed)}
            )
            section.remove_option(_OWNERS)
            for ref in kept:
                section.add_option(_OWNERS, ref)
            return True

        await self._editor.edit(subtract)

    async def owners(self) -> list[Owner]:
        """Return the biome's owners, sorted and deduplicated.

        Raises
        ------
        OwnerParseErrorGroup
            If stored entries fail to parse. The owners that did parse are
            available on the group's ``parsed`` attribute.

        """
        refs: list[str] = []

        async def read(cfg: GitConfig) -> bool:
            refs.extend(cfg.get_all(_OWNERS_KEY))
            return False

        await self._editor.edit(read)
        parsed, error = parse_owners(refs)
        owners = sorted(set(parsed))
        if error is not None:
            error.parsed = tuple(owners)
            raise error
        return owners

    async def remotes(self, *categories: RemoteCategory) -> list[Remote]:
        """Return remotes recorded under any of ``categories``, sorted by name.

        Raises
        ------
        EmptyCategorySelectorError
            If no category is given.

        """
        if not categories:
            raise EmptyCategorySelectorError
        memberships: dict[str, set[RemoteCategory]] = collections.defaultdict(set)
        wanted = set(categories)

        async def read(cfg: GitConfig) -> bool:
            if not cfg.has_section(_BIOME):
                return False
            recorded = cfg.section(_BIOME).subsection(_CATEGORIES)
            for category in ALL_REMOTE_CATEGORIES:
                for name in recorded.option_all(category.value):
                    memberships[name].add(category)
            return False

        await self._editor.edit(read)
        return [
            Remote(
                name=name,
                archived=RemoteCategory.ARCHIVED in found,
                disabled=RemoteCategory.DISABLED in found,
                locked=RemoteCategory.LOCKED in found,
            )
            for name, found in sorted(memberships.items())
            if found & wanted
        ]

    async def update_remotes(self) -> UpdateResult:
        """Recompute remotes from the directory service and apply the difference.

        One config session rewrites every remote declaration, category
        membership and owner group. Then one reference transaction points
        each remote's HEAD at its default branch, and another deletes every
        reference of remotes that are no longer wanted. Re-running with no
        upstream change leaves the repository unchanged.

        Raises
        ------
        ConfigTransformError
            If listing repositories fails or a repository cannot be
            classified (the cause is a :class:`RemoteClassificationError`);
            nothing is written.
        RefTransactionError
            If a reference transaction is rejected.
        GitVersionError
            If a HEAD must be set and git is older than 2.46.

        """
        directory = self._require_directory()
        git_executable = self.options.git_executable
        plan = _Reconciliation()

        async def reconcile(cfg: GitConfig) -> bool:
            plan.configured.clear()
            plan.categories.clear()
            plan.stale = _clear_remote_state(cfg)

            owners, error = parse_owners(cfg.get_all(_OWNERS_KEY))
            if error is not None:
                raise error

            failures: list[Exception] = []
            groups: dict[str, list[str]] = collections.defaultdict(list)
            seen: set[str] = set()
            for owner in sorted(set(owners)):
                async for descriptor in directory.iter_repositories(owner):
                    try:
                        remote_config = remote_config_from_descriptor(descriptor)
                    except RemoteDescriptorError as exc:
                        exc.add_note(f"owner: {owner}")
                        failures.append(exc)
                        continue
                    remote = remote_config.remote
                    # one remote may be listed under several owner spellings
                    if remote.name in seen:
                        log_debug(logger, "Skipping repeated listing of %s", remote)
                        continue
                    seen.add(remote.name)
                    supported = await asyncio.to_thread(
                        remote.supported, git_executable=git_executable
                    )
                    category = remote.categories(supported=supported)[0]
                    plan.categories[category].append(remote.name)
                    if category not in FETCHABLE_REMOTE_CATEGORIES:
                        log_debug(logger, "Skipping %s remote %s", category, remote)
                        continue
                    declaration = cfg.section(_REMOTE).subsection(remote.name)
                    declaration.set_option("url", remote.fetch_url)
                    declaration.set_option("fetch", remote.mirror_refspec)
                    declaration.set_option("tagOpt", "--no-tags")
                    groups[owner.remote_group].append(remote.name)
                    plan.configured.append(remote_config)
                    plan.stale.discard(remote.name)
            if failures:
                raise RemoteClassificationError.of(failures)

            for group, names in groups.items():
                for name in sorted(names):
                    cfg.section(_GROUPS).add_option(group, name)

            recorded = cfg.section(_BIOME).subsection(_CATEGORIES)
            for category in ALL_REMOTE_CATEGORIES:
                for name in sorted(set(plan.categories.get(category, ()))):
                    recorded.add_option(category.value, name)
            return True

        await self._editor.edit(reconcile)
        heads_set, heads_cleared = await self._apply_heads(plan.configured)
        refs_deleted = await self._delete_stale(sorted(plan.stale))

        result = UpdateResult(
            configured=tuple(sorted(rc.remote.name for rc in plan.configured)),
            removed=tuple(sorted(plan.stale)),
            categories={
                category: tuple(sorted(set(plan.categories.get(category, ()))))
                for category in ALL_REMOTE_CATEGORIES
            },
            heads_set=heads_set,
            heads_cleared=heads_cleared,
            refs_deleted=refs_deleted,
        )
        log_info(
            logger,
            "Reconciled %d remotes (%d removed, %d heads set, %d heads cleared)",
            len(result.configured),
            len(result.removed),
            heads_set,
            heads_cleared,
        )
        return result

    async def _apply_heads(self, configured: list[RemoteConfig]) -> tuple[int, int]:
        """Point each remote's HEAD at its default branch in one transaction."""
        current = {
            record.name: record.symref
            for record in await self._git.query_refs(self.path, "refs/remotes")
            if record.is_symbolic
        }
        updates: list[tuple[str, str]] = []
        deletions: list[str] = []
        for remote_config in configured:
            ref = remote_config.remote.head
            actual = current.get(ref)
            if actual is None:
                # for-each-ref omits symbolic refs whose target is unfetched
                actual = await self._git.read_symref(self.path, ref)
            if remote_config.head and actual != remote_config.head:
                updates.append((ref, remote_config.head))
            elif not remote_config.head and actual is not None:
                deletions.append(ref)

        if updates:
            await self._git.require_version(
                SYMREF_UPDATE_VERSION, "pointing remote HEADs at default branches"
            )
        if updates or deletions:
            async with await self._git.open_ref_transaction(self.path) as tx:
                for ref, target in updates:
                    await tx.symref_update(ref, target, no_deref=True)
                for ref in deletions:
                    await tx.delete(ref, no_deref=True)
        return len(updates), len(deletions)

    async def _delete_stale(self, names: list[str]) -> int:
        """Delete every reference under each stale remote's namespace."""
        doomed: list[tuple[str, bool]] = []
        for name in names:
            records = await self._git.query_refs(self.path, f"refs/remotes/{name}")
            doomed.extend((record.name, record.is_symbolic) for record in records)
            head = f"refs/remotes/{name}/HEAD"
            listed = {record.name for record in records}
            if head not in listed and await self._git.read_symref(self.path, head):
                doomed.append((head, True))

        if not doomed:
            return 0
        async with await self._git.open_ref_transaction(self.path) as tx:
            for ref, symbolic in doomed:
                await tx.delete(ref, no_deref=symbolic)
        log_info(
            logger,
            "Deleted %d references of %d removed remotes",
            len(doomed),
            len(names),
        )
        return len(doomed)

    async def fetch(self, owners: cabc.Iterable[Owner] = ()) -> None:
        """Fetch every remote, or only the remotes of ``owners``.

        Raises
        ------
        OwnerNotAddedError
            If any of ``owners`` is not part of the biome.

        """
        selected = sorted(set(owners))
        if selected:
            present = set(await self.owners())
            missing = [str(owner) for owner in selected if owner not in present]
            if missing:
                raise OwnerNotAddedError(missing)
        groups = [owner.remote_group for owner in selected]
        log_info(
            logger,
            "Fetching %s",
            ", ".join(str(owner) for owner in selected) or "all remotes",
        )
        await self._git.fetch(self.path, groups)


async def _write_baseline(cfg: GitConfig) -> bool:
    for key, value in _BASELINE_SETTINGS:
        cfg.set(key, value)
    return True


def _names(ref: str, owners: set[Owner]) -> bool:
    """Return True when the stored reference ``ref`` names one of ``owners``."""
    try:
        return parse_owner(ref) in owners
    except OwnerParseError:
        log_warning(logger, "Keeping unparseable owner entry %r", ref)
        return False


def _clear_remote_state(cfg: GitConfig) -> set[str]:
    """Drop remote declarations, groups and categories; return prior remote names."""
    previous: set[str] = set()
    if cfg.has_section(_REMOTE):
        previous = {sub.name for sub in cfg.section(_REMOTE).subsections}
    cfg.remove_section(_REMOTE)
    cfg.remove_section(_GROUPS)
    if cfg.has_section(_BIOME):
        cfg.section(_BIOME).remove_subsection(_CATEGORIES)
    return previous
