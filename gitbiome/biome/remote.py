"""Remote repositories tracked by a biome and their categories.

Each remote is named ``host/owner/repo`` after its repository URL. The name
doubles as the reference namespace ``refs/remotes/<name>/`` that fetches
write into, so it must be a legal refspec pattern component; names such as
``github.com/acme/.github`` are not, and such remotes are categorised as
unsupported rather than configured.
"""

from __future__ import annotations

import dataclasses
import enum
import posixpath
import typing as typ

from gitbiome.git import check_refspec_pattern

from .errors import InvalidRefspecError, RemoteDescriptorError
from .owner import Owner

if typ.TYPE_CHECKING:
    from gitbiome.github.models import RepositoryDescriptor

_URL_SCHEME = "https://"


class RemoteCategory(enum.StrEnum):
    """Classification of a discovered remote."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DISABLED = "disabled"
    LOCKED = "locked"
    UNSUPPORTED = "unsupported"


ALL_REMOTE_CATEGORIES: tuple[RemoteCategory, ...] = tuple(RemoteCategory)

# Categories whose remotes are configured as real git remotes.
FETCHABLE_REMOTE_CATEGORIES: tuple[RemoteCategory, ...] = (
    RemoteCategory.ACTIVE,
    RemoteCategory.ARCHIVED,
)


@dataclasses.dataclass(frozen=True, slots=True)
class Remote:
    """A tracked repository and the GitHub state flags it was listed with."""

    name: str
    archived: bool = False
    disabled: bool = False
    locked: bool = False

    def __str__(self) -> str:
        """Return the remote name."""
        return self.name

    @property
    def fetch_url(self) -> str:
        """URL that objects and references are fetched from."""
        return f"{_URL_SCHEME}{self.name}.git"

    @property
    def head(self) -> str:
        """Symbolic reference naming the remote's default branch."""
        return f"refs/remotes/{self.name}/HEAD"

    @property
    def owner(self) -> Owner:
        """The owner this remote belongs to."""
        host, _, rest = self.name.partition("/")
        owner_name, _, _ = rest.partition("/")
        return Owner(host=host.lower(), name=owner_name)

    @property
    def refspec_pattern(self) -> str:
        """Local destination pattern every remote reference is mirrored to."""
        return f"refs/remotes/{self.name}/*"

    @property
    def mirror_refspec(self) -> str:
        """Fetch refspec for the remote, without validating its name."""
        return f"+refs/*:{self.refspec_pattern}"

    def fetch_refspec(self, *, git_executable: str = "git") -> str:
        """Return the refspec mirroring every remote reference locally.

        Raises
        ------
        InvalidRefspecError
            If git rejects ``refs/remotes/<name>/*`` as a refspec pattern.

        """
        pattern = self.refspec_pattern
        if not check_refspec_pattern(pattern, git_executable=git_executable):
            raise InvalidRefspecError(pattern)
        return self.mirror_refspec

    def supported(self, *, git_executable: str = "git") -> bool:
        """Return True when the remote can be configured for fetching."""
        try:
            self.fetch_refspec(git_executable=git_executable)
        except InvalidRefspecError:
            return False
        return True

    def categories(
        self, *, git_executable: str = "git", supported: bool | None = None
    ) -> tuple[RemoteCategory, ...]:
        """Return every category that applies, highest priority first.

        Priority is disabled, locked, unsupported, archived, then active;
        active applies only when nothing else does. The first element is
        the remote's classification. Pass ``supported`` when the result of
        :meth:`supported` is already known, so git is not asked again.
        """
        if supported is None:
            supported = self.supported(git_executable=git_executable)
        found: list[RemoteCategory] = []
        if self.disabled:
            found.append(RemoteCategory.DISABLED)
        if self.locked:
            found.append(RemoteCategory.LOCKED)
        if not supported:
            found.append(RemoteCategory.UNSUPPORTED)
        if self.archived:
            found.append(RemoteCategory.ARCHIVED)
        if not found:
            found.append(RemoteCategory.ACTIVE)
        return tuple(found)


@dataclasses.dataclass(frozen=True, slots=True)
class RemoteConfig:
    """A remote and the reference its symbolic HEAD should point at.

    ``head`` is empty when the repository has no default branch.
    """

    remote: Remote
    head: str = ""


def remote_config_from_descriptor(descriptor: RepositoryDescriptor) -> RemoteConfig:
    """Map a repository listing entry to the remote it should become.

    Raises
    ------
    RemoteDescriptorError
        If the repository URL is not an ``https://host/owner/repo`` URL.

    """
    url = descriptor.url
    if not url.startswith(_URL_SCHEME):
        raise RemoteDescriptorError(url, f"expected an {_URL_SCHEME} URL")
    name = url.removeprefix(_URL_SCHEME).rstrip("/")
    if len([part for part in name.split("/") if part]) != 3:  # noqa: PLR2004
        raise RemoteDescriptorError(url, "expected <host>/<owner>/<repo>")

    remote = Remote(
        name=name,
        archived=descriptor.is_archived,
        disabled=descriptor.is_disabled,
        locked=descriptor.is_locked,
    )
    branch = descriptor.default_branch_ref
    head = ""
    if branch is not None:
        head = posixpath.join(
            "refs/remotes", name, branch.prefix.removeprefix("refs/"), branch.name
        )
    return RemoteConfig(remote=remote, head=head)
