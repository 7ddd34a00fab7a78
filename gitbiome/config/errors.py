"""Errors raised by the git config model and the config editor."""

from __future__ import annotations


class ConfigSyntaxError(ValueError):
    """Raised when git config text cannot be parsed."""

    def __init__(self, line: int, reason: str) -> None:
        """Initialise with the 1-based line number and the parse failure."""
        self.line = line
        self.reason = reason
        super().__init__(f"bad config line {line}: {reason}")


class ConfigEditorError(RuntimeError):
    """Base class for failures of a config edit session."""


class HelperDidNotConnectError(ConfigEditorError):
    """Raised when the edit workflow exits before the helper calls back."""

    def __init__(self, command: str, returncode: int | None, output: str) -> None:
        """Initialise with the workflow command, exit status and output."""
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"{command!r} ended before callback (exit status {returncode})"
        if output.strip():
            message = f"{message}\n{output.strip()}"
        super().__init__(message)


class ConfigLoadError(ConfigEditorError):
    """Raised when the config file handed to the helper cannot be read."""

    def __init__(self, path: str, reason: str) -> None:
        """Initialise with the file path and failure reason."""
        self.path = path
        super().__init__(f"could not load config file {path}: {reason}")


class ConfigTransformError(ConfigEditorError):
    """Raised when the edit callback fails; the original error is the cause."""

    def __init__(self, error: BaseException) -> None:
        """Initialise with the error raised by the callback."""
        self.error = error
        super().__init__(f"editor callback failed: {error}")


class ConfigSaveError(ConfigEditorError):
    """Raised when the edited config cannot be written back."""

    def __init__(self, path: str, reason: str) -> None:
        """Initialise with the file path and failure reason."""
        self.path = path
        super().__init__(f"could not save config file {path}: {reason}")


class EditCancelledError(ConfigEditorError):
    """Raised when an edit session exceeds its deadline."""

    @classmethod
    def deadline(cls, timeout_s: float) -> EditCancelledError:
        """Return an error for a session that ran past ``timeout_s``."""
        return cls(f"config edit cancelled after {timeout_s:g}s deadline")


class EditCommitError(ConfigEditorError):
    """Raised when the edit workflow fails after the callback succeeded."""

    def __init__(self, command: str, returncode: int | None, output: str) -> None:
        """Initialise with the workflow command, exit status and output."""
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"{command!r} failed to commit the edit (exit status {returncode})"
        if output.strip():
            message = f"{message}\n{output.strip()}"
        super().__init__(message)


class ConfigLockedError(ConfigEditorError):
    """Raised when another writer holds the config lock for too long."""

    def __init__(self, lock_path: str, waited_s: float) -> None:
        """Initialise with the lock file and how long the session waited."""
        self.lock_path = lock_path
        self.waited_s = waited_s
        super().__init__(
            f"config is locked by another writer: {lock_path} "
            f"(waited {waited_s:g}s; remove the file if no git process is running)"
        )
