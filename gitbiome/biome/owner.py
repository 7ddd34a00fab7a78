"""GitHub owners (users or organisations) tracked by a biome."""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import typing as typ

from .errors import OwnerParseError, OwnerParseErrorGroup

if typ.TYPE_CHECKING:
    import collections.abc as cabc

DEFAULT_HOST = "github.com"
_SCHEMES = ("https://", "http://")


@functools.total_ordering
@dataclasses.dataclass(frozen=True, slots=True)
class Owner:
    """A repository owner on a GitHub host.

    Owners compare, hash and sort by their canonical ``host/name`` form.

    Examples
    --------
    >>> owner = parse_owner("https://GitHub.com/acme")
    >>> str(owner)
    'github.com/acme'
    >>> owner.remote_group
    'g-5bf9bb17127a0bf99fe720b1f0c142b2e73a2c0c'

    """

    host: str
    name: str

    def __str__(self) -> str:
        """Return the canonical ``host/name`` reference."""
        return f"{self.host}/{self.name}"

    def __lt__(self, other: object) -> bool:
        """Order owners by canonical reference."""
        if not isinstance(other, Owner):
            return NotImplemented
        return str(self) < str(other)

    @property
    def remote_group(self) -> str:
        """Name of the git remote group holding this owner's remotes."""
        digest = hashlib.sha1(str(self).encode("utf-8"), usedforsecurity=False)
        return f"g-{digest.hexdigest()}"


def parse_owner(reference: str) -> Owner:
    """Parse ``[http(s)://][host/]name`` into an :class:`Owner`.

    The host is lower-cased and defaults to ``github.com``.

    Raises
    ------
    OwnerParseError
        If the name is empty, there is more than one ``/`` after the
        scheme, or a scheme is given without a host.

    """
    text = reference.strip()
    with_scheme = False
    for scheme in _SCHEMES:
        if text.lower().startswith(scheme):
            text = text[len(scheme) :]
            with_scheme = True
            break

    parts = text.split("/")
    match parts:
        case [host, name] if host and name:
            return Owner(host=host.lower(), name=name)
        case [name] if name and not with_scheme:
            return Owner(host=DEFAULT_HOST, name=name)
        case _:
            raise OwnerParseError(reference)


def parse_owners(
    references: cabc.Iterable[str],
) -> tuple[list[Owner], OwnerParseErrorGroup | None]:
    """Parse every reference, collecting failures instead of stopping.

    Returns the owners that parsed, in input order, and an
    :class:`OwnerParseErrorGroup` holding every failure (or None).
    """
    owners: list[Owner] = []
    errors: list[OwnerParseError] = []
    for reference in references:
        try:
            owners.append(parse_owner(reference))
        except OwnerParseError as exc:
            errors.append(exc)
    return owners, OwnerParseErrorGroup.of(errors) if errors else None
