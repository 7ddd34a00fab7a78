"""GitHub directory service: owner validation and repository listing."""

from __future__ import annotations

from .client import (
    DEFAULT_HOST,
    GitHubDirectoryClient,
    GitHubDirectoryConfig,
    RepositoryDirectory,
    graphql_endpoint,
)
from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubOwnerNotFoundError,
    GitHubResponseShapeError,
)
from .models import DefaultBranchRef, RepositoryDescriptor

__all__ = [
    "DEFAULT_HOST",
    "DefaultBranchRef",
    "GitHubAPIError",
    "GitHubConfigError",
    "GitHubDirectoryClient",
    "GitHubDirectoryConfig",
    "GitHubOwnerNotFoundError",
    "GitHubResponseShapeError",
    "RepositoryDescriptor",
    "RepositoryDirectory",
    "graphql_endpoint",
]
