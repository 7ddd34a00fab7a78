"""Git config model and the exclusive config editor."""

from __future__ import annotations

from .editor import (
    CallbackReceived,
    ConfigEditor,
    EditCallback,
    EditorOptions,
    RendezvousOutcome,
    SessionEnded,
    default_helper_command,
)
from .errors import (
    ConfigEditorError,
    ConfigLoadError,
    ConfigLockedError,
    ConfigSaveError,
    ConfigSyntaxError,
    ConfigTransformError,
    EditCancelledError,
    EditCommitError,
    HelperDidNotConnectError,
)
from .model import GitConfig, Option, Section, Subsection, dumps, loads, split_key

__all__ = [
    "CallbackReceived",
    "ConfigEditor",
    "ConfigEditorError",
    "ConfigLoadError",
    "ConfigLockedError",
    "ConfigSaveError",
    "ConfigSyntaxError",
    "ConfigTransformError",
    "EditCallback",
    "EditCancelledError",
    "EditCommitError",
    "EditorOptions",
    "GitConfig",
    "HelperDidNotConnectError",
    "Option",
    "RendezvousOutcome",
    "Section",
    "SessionEnded",
    "Subsection",
    "default_helper_command",
    "dumps",
    "loads",
    "split_key",
]
