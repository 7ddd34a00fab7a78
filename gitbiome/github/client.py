"""GitHub directory client used to validate owners and list their repositories."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import os
import typing as typ

import httpx
import msgspec

from gitbiome.logging import get_logger, log_debug

from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubOwnerNotFoundError,
    GitHubResponseShapeError,
)
from .models import RepositoryDescriptor, RepositoryPage

if typ.TYPE_CHECKING:
    from gitbiome.biome.owner import Owner

logger = get_logger(__name__)

DEFAULT_HOST = "github.com"
_PUBLIC_ENDPOINT = "https://api.github.com/graphql"
_TOKEN_ENV_VARS = ("GITBIOME_GITHUB_TOKEN", "GH_TOKEN", "GITHUB_TOKEN")
_ENTERPRISE_TOKEN_ENV_VARS = ("GH_ENTERPRISE_TOKEN", "GITHUB_ENTERPRISE_TOKEN")
_MAX_PAGE_SIZE = 100


class RepositoryDirectory(typ.Protocol):
    """Interface for looking up owners and their repositories."""

    async def validate_owner(self, owner: Owner) -> None:
        """Raise :class:`GitHubOwnerNotFoundError` if ``owner`` does not exist."""
        ...

    def iter_repositories(
        self, owner: Owner
    ) -> cabc.AsyncIterator[RepositoryDescriptor]:
        """Yield every repository owned by ``owner``."""
        ...


def graphql_endpoint(host: str) -> str:
    """Return the GraphQL endpoint serving ``host``.

    Examples
    --------
    >>> graphql_endpoint("github.com")
    'https://api.github.com/graphql'
    >>> graphql_endpoint("git.example.com")
    'https://git.example.com/api/graphql'

    """
    if host == DEFAULT_HOST:
        return _PUBLIC_ENDPOINT
    return f"https://{host}/api/graphql"


def _first_env(names: cabc.Iterable[str]) -> str | None:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubDirectoryConfig:
    """Configuration for the GitHub directory client.

    Attributes
    ----------
    token
        Token for ``github.com``.
    enterprise_token
        Fallback token for any other host.
    host_tokens
        Tokens for specific hosts, taking precedence over the fallbacks.
    timeout_s
        Per-request timeout.
    user_agent
        ``User-Agent`` header sent with every request.
    page_size
        Repositories requested per page, at most 100.

    """

    token: str | None = None
    enterprise_token: str | None = None
    host_tokens: cabc.Mapping[str, str] = dataclasses.field(default_factory=dict)
    timeout_s: float = 20.0
    user_agent: str = "gitbiome/0.1"
    page_size: int = _MAX_PAGE_SIZE

    def __post_init__(self) -> None:
        """Reject page sizes GitHub would refuse."""
        if not 1 <= self.page_size <= _MAX_PAGE_SIZE:
            msg = f"page_size must be between 1 and {_MAX_PAGE_SIZE}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> GitHubDirectoryConfig:
        """Build configuration from the environment.

        The github.com token is the first non-empty value of
        ``GITBIOME_GITHUB_TOKEN``, ``GH_TOKEN`` and ``GITHUB_TOKEN``. Other
        hosts use ``GH_ENTERPRISE_TOKEN`` (or ``GITHUB_ENTERPRISE_TOKEN``).
        ``GITBIOME_GITHUB_TIMEOUT_S`` overrides the request timeout.
        """
        timeout_raw = os.environ.get("GITBIOME_GITHUB_TIMEOUT_S", "").strip()
        timeout_s = 20.0
        if timeout_raw:
            try:
                timeout_s = float(timeout_raw)
            except ValueError as exc:
                raise GitHubConfigError.invalid_number(
                    "GITBIOME_GITHUB_TIMEOUT_S", timeout_raw
                ) from exc
            if timeout_s <= 0:
                raise GitHubConfigError.invalid_number(
                    "GITBIOME_GITHUB_TIMEOUT_S", timeout_raw
                )
        return cls(
            token=_first_env(_TOKEN_ENV_VARS),
            enterprise_token=_first_env(_ENTERPRISE_TOKEN_ENV_VARS),
            timeout_s=timeout_s,
        )

    def token_for(self, host: str) -> str:
        """Return the token to present to ``host``.

        Raises
        ------
        GitHubConfigError
            If no token is configured for ``host``.

        """
        token = self.host_tokens.get(host)
        if token is None:
            token = self.token if host == DEFAULT_HOST else self.enterprise_token
        if not token or not token.strip():
            raise GitHubConfigError.missing_token(host)
        return token.strip()


_OWNER_QUERY = """
query($owner: String!) {
  repositoryOwner(login: $owner) {
    id
  }
}
"""

_REPOSITORIES_QUERY = """
query($owner: String!, $first: Int!, $endCursor: String) {
  repositoryOwner(login: $owner) {
    repositories(first: $first, after: $endCursor) {
      nodes {
        isDisabled
        isArchived
        isLocked
        url
        defaultBranchRef {
          name
          prefix
        }
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

_HTTP_ERROR_STATUS_THRESHOLD = 400


def _validate_string_keyed_dict(value: object, *, field: str) -> dict[str, typ.Any]:
    if not isinstance(value, dict) or not all(isinstance(key, str) for key in value):
        raise GitHubResponseShapeError.missing(field)
    return dict(value)


def _parse_graphql_payload(payload_raw: object) -> dict[str, typ.Any]:
    """Parse and validate a GraphQL response payload, extracting data field."""
    payload = _validate_string_keyed_dict(payload_raw, field="response")

    errors = payload.get("errors")
    if errors:
        raise GitHubAPIError.graphql_errors(errors)

    return _validate_string_keyed_dict(payload.get("data"), field="data")


def _owner_node(data: dict[str, typ.Any], owner: Owner) -> dict[str, typ.Any]:
    node = data.get("repositoryOwner")
    if node is None:
        raise GitHubOwnerNotFoundError(str(owner))
    return _validate_string_keyed_dict(node, field="repositoryOwner")


def _repository_page(owner_node: dict[str, typ.Any]) -> RepositoryPage:
    connection = owner_node.get("repositories")
    if connection is None:
        raise GitHubResponseShapeError.missing("repositoryOwner.repositories")
    try:
        return msgspec.convert(connection, RepositoryPage)
    except msgspec.ValidationError as exc:
        raise GitHubResponseShapeError.invalid(
            "repositoryOwner.repositories", str(exc)
        ) from exc


class GitHubDirectoryClient:
    """GitHub GraphQL implementation of :class:`RepositoryDirectory`."""

    def __init__(
        self,
        config: GitHubDirectoryConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> typ.Self:
        """Return the client for use in ``async with``."""
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Close owned HTTP resources on exit."""
        await self.aclose()

    async def validate_owner(self, owner: Owner) -> None:
        """Raise :class:`GitHubOwnerNotFoundError` if ``owner`` does not exist."""
        data = await self._graphql(owner.host, _OWNER_QUERY, {"owner": owner.name})
        _owner_node(data, owner)
        log_debug(logger, "Validated owner %s", owner)

    async def iter_repositories(
        self, owner: Owner
    ) -> cabc.AsyncIterator[RepositoryDescriptor]:
        """Yield every repository of ``owner``, following pagination cursors."""
        end_cursor: str | None = None
        page_number = 0
        while True:
            data = await self._graphql(
                owner.host,
                _REPOSITORIES_QUERY,
                {
                    "owner": owner.name,
                    "first": self._config.page_size,
                    "endCursor": end_cursor,
                },
            )
            page = _repository_page(_owner_node(data, owner))
            page_number += 1
            log_debug(
                logger,
                "Fetched repository page %d for %s (%d nodes)",
                page_number,
                owner,
                len(page.nodes),
            )
            for node in page.nodes:
                if node is not None:
                    yield node

            if not page.page_info.has_next_page or page.page_info.end_cursor is None:
                return
            end_cursor = page.page_info.end_cursor

    async def _graphql(
        self, host: str, query: str, variables: dict[str, typ.Any]
    ) -> dict[str, typ.Any]:
        """Execute a GraphQL query against ``host`` and return the data field."""
        endpoint = graphql_endpoint(host)
        response = await self._client.post(
            endpoint,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {self._config.token_for(host)}"},
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, endpoint)
        try:
            payload = response.json()
        except ValueError as exc:
            raise GitHubResponseShapeError.invalid("response", str(exc)) from exc
        return _parse_graphql_payload(payload)
