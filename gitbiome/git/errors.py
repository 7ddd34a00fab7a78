"""Errors raised while driving the git executable."""

from __future__ import annotations

import shlex
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class GitError(RuntimeError):
    """Base class for repository engine failures."""


class GitCommandError(GitError):
    """Raised when a git subprocess exits unsuccessfully."""

    def __init__(
        self,
        argv: cabc.Sequence[str],
        returncode: int | None,
        output: str = "",
    ) -> None:
        """Initialise with the command line, exit status and captured output."""
        self.argv = tuple(argv)
        self.returncode = returncode
        self.output = output
        message = f"could not {shlex.join(self.argv)!r}: exit status {returncode}"
        if output.strip():
            message = f"{message}\n\n{output.strip()}"
        super().__init__(message)


class GitExecutableNotFoundError(GitError):
    """Raised when the configured git executable cannot be launched."""

    def __init__(self, executable: str) -> None:
        """Initialise with the executable that could not be found."""
        self.executable = executable
        super().__init__(f"Required executable {executable!r} not found in PATH")


class RefTransactionError(GitError):
    """Raised when a reference transaction is rejected or aborted."""

    def __init__(self, reason: str, output: str = "") -> None:
        """Initialise with a reason and the transaction's combined output."""
        self.reason = reason
        self.output = output
        message = f"reference transaction failed: {reason}"
        if output.strip():
            message = f"{message}\n\n{output.strip()}"
        super().__init__(message)

    @classmethod
    def exited(cls, returncode: int, output: str) -> RefTransactionError:
        """Return an error for a transaction subprocess that exited non-zero."""
        return cls(f"exit status {returncode}", output)

    @classmethod
    def terminated_early(cls, output: str) -> RefTransactionError:
        """Return an error for a subprocess that stopped reading its input."""
        return cls("update-ref ended before the transaction was committed", output)

    @classmethod
    def closed(cls) -> RefTransactionError:
        """Return an error for writes against a finished transaction."""
        return cls("transaction is already closed")


class GitVersionError(GitError):
    """Raised when the git executable is too old for a required feature."""

    def __init__(
        self,
        feature: str,
        required: tuple[int, ...],
        found: tuple[int, ...],
    ) -> None:
        """Initialise with the feature and the required and installed versions."""
        self.feature = feature
        self.required = required
        self.found = found
        super().__init__(
            f"{feature} needs git {'.'.join(map(str, required))} or newer, "
            f"found {'.'.join(map(str, found))}"
        )
