"""Biome repositories: owners, remotes and reconciliation."""

from __future__ import annotations

from .errors import (
    BiomeError,
    EmptyCategorySelectorError,
    InvalidRefspecError,
    NotARepositoryError,
    OwnerNotAddedError,
    OwnerParseError,
    OwnerParseErrorGroup,
    OwnerValidationError,
    RemoteClassificationError,
    RemoteDescriptorError,
    RepositoryInitError,
    SchemaVersionMismatchError,
    SchemaVersionMissingError,
)
from .owner import DEFAULT_HOST, Owner, parse_owner, parse_owners
from .remote import (
    ALL_REMOTE_CATEGORIES,
    FETCHABLE_REMOTE_CATEGORIES,
    Remote,
    RemoteCategory,
    RemoteConfig,
    remote_config_from_descriptor,
)
from .service import SCHEMA_VERSION, Biome, BiomeOptions, UpdateResult

__all__ = [
    "ALL_REMOTE_CATEGORIES",
    "DEFAULT_HOST",
    "FETCHABLE_REMOTE_CATEGORIES",
    "SCHEMA_VERSION",
    "Biome",
    "BiomeError",
    "BiomeOptions",
    "EmptyCategorySelectorError",
    "InvalidRefspecError",
    "NotARepositoryError",
    "Owner",
    "OwnerNotAddedError",
    "OwnerParseError",
    "OwnerParseErrorGroup",
    "OwnerValidationError",
    "Remote",
    "RemoteCategory",
    "RemoteClassificationError",
    "RemoteConfig",
    "RemoteDescriptorError",
    "RepositoryInitError",
    "SchemaVersionMismatchError",
    "SchemaVersionMissingError",
    "UpdateResult",
    "parse_owner",
    "parse_owners",
    "remote_config_from_descriptor",
]
