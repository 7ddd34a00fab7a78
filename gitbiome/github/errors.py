"""GitHub directory errors."""

from __future__ import annotations


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, endpoint: str) -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(
            f"GitHub GraphQL HTTP {status_code} from {endpoint}",
            status_code=status_code,
        )

    @classmethod
    def graphql_errors(cls, errors: object) -> GitHubAPIError:
        """Return an error for GraphQL `errors` payloads."""
        return cls(f"GitHub GraphQL errors: {errors}")


class GitHubResponseShapeError(RuntimeError):
    """Raised when GitHub GraphQL responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing GraphQL response field."""
        return cls(f"GitHub GraphQL response missing expected field: {field}")

    @classmethod
    def invalid(cls, field: str, reason: str) -> GitHubResponseShapeError:
        """Return an error for a GraphQL field that failed to decode."""
        return cls(f"GitHub GraphQL response field {field} is invalid: {reason}")


class GitHubConfigError(RuntimeError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls, host: str) -> GitHubConfigError:
        """Return an error when no token is configured for ``host``."""
        if host == "github.com":
            return cls(
                "GITBIOME_GITHUB_TOKEN, GH_TOKEN or GITHUB_TOKEN is required "
                "for github.com"
            )
        return cls(f"GH_ENTERPRISE_TOKEN is required for {host}")

    @classmethod
    def invalid_number(cls, name: str, raw: str) -> GitHubConfigError:
        """Return an error for a numeric setting that does not parse."""
        return cls(f"{name} must be a positive number, got: {raw!r}")


class GitHubOwnerNotFoundError(LookupError):
    """Raised when a GitHub user or organisation does not exist."""

    def __init__(self, owner: str) -> None:
        """Initialise with the canonical owner reference."""
        self.owner = owner
        super().__init__(f"owner {owner} not found")
