"""Errors raised while managing a biome repository."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from .owner import Owner

OWNER_REFERENCE_FORMAT = "[https://][<host>/]<name>"


class BiomeError(RuntimeError):
    """Base class for biome repository failures."""


class NotARepositoryError(BiomeError):
    """Raised when a path is not the root of a git repository."""

    def __init__(self, path: Path | str) -> None:
        """Initialise with the offending path."""
        self.path = str(path)
        super().__init__(f"{self.path} is not a git repository")


class SchemaVersionMissingError(BiomeError):
    """Raised when a git repository has not been initialised as a biome."""

    def __init__(self, path: Path | str) -> None:
        """Initialise with the repository path."""
        self.path = str(path)
        super().__init__(f"biome config version not set in {self.path}")


class SchemaVersionMismatchError(BiomeError):
    """Raised when a repository records an unsupported biome schema version."""

    def __init__(self, path: Path | str, expected: str, found: str) -> None:
        """Initialise with the repository path and both versions."""
        self.path = str(path)
        self.expected = expected
        self.found = found
        super().__init__(
            f"unexpected biome config version in {self.path}, "
            f"expected: {expected!r} was: {found!r}"
        )


class RepositoryInitError(BiomeError):
    """Raised when the biome repository cannot be created or configured."""

    def __init__(self, path: Path | str, reason: str) -> None:
        """Initialise with the repository path and failure reason."""
        self.path = str(path)
        super().__init__(f"could not initialise biome at {self.path}: {reason}")


class OwnerParseError(ValueError):
    """Raised when an owner reference does not match the accepted format."""

    def __init__(self, reference: str) -> None:
        """Initialise with the rejected reference."""
        self.reference = reference
        super().__init__(
            f"owner reference {reference!r} invalid, "
            f"valid format is {OWNER_REFERENCE_FORMAT}"
        )


class OwnerParseErrorGroup(ExceptionGroup):  # noqa: N818
    """Every owner reference of a batch that failed to parse.

    ``parsed`` holds the owners of the same batch that did parse, when the
    raiser has them.
    """

    parsed: tuple[Owner, ...] = ()

    @classmethod
    def of(cls, errors: cabc.Sequence[OwnerParseError]) -> OwnerParseErrorGroup:
        """Group ``errors`` under a summary message."""
        return cls(f"{len(errors)} owner reference(s) invalid", list(errors))


class OwnerValidationError(ExceptionGroup):
    """Every owner of a batch the directory service could not confirm."""

    @classmethod
    def of(cls, errors: cabc.Sequence[Exception]) -> OwnerValidationError:
        """Group per-owner validation ``errors`` under a summary message."""
        return cls(f"could not validate {len(errors)} owner(s)", list(errors))


class OwnerNotAddedError(BiomeError):
    """Raised when an operation names owners that are not in the biome."""

    def __init__(self, owners: cabc.Sequence[str]) -> None:
        """Initialise with the canonical references of the missing owners."""
        self.owners = tuple(owners)
        super().__init__(
            f"owner(s) not added to the biome: {', '.join(self.owners)}"
        )


class InvalidRefspecError(ValueError):
    """Raised when a remote name cannot be embedded in a refspec pattern."""

    def __init__(self, pattern: str) -> None:
        """Initialise with the rejected destination pattern."""
        self.pattern = pattern
        super().__init__(f"refspec pattern invalid: {pattern!r}")


class RemoteDescriptorError(ValueError):
    """Raised when a repository listing entry cannot be mapped to a remote."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialise with the repository URL and the reason it was rejected."""
        self.url = url
        super().__init__(f"cannot map repository {url!r} to a remote: {reason}")


class RemoteClassificationError(ExceptionGroup):
    """Every repository of a reconciliation pass that could not be classified."""

    @classmethod
    def of(cls, errors: cabc.Sequence[Exception]) -> RemoteClassificationError:
        """Group per-repository ``errors`` under a summary message."""
        return cls(f"could not classify {len(errors)} repositories", list(errors))


class EmptyCategorySelectorError(ValueError):
    """Raised when a remote query names no categories."""

    def __init__(self) -> None:
        """Initialise with a fixed message."""
        super().__init__("at least one remote category must be selected")
