"""Repository engine: git plumbing and reference transactions."""

from __future__ import annotations

from .engine import (
    SYMREF_UPDATE_VERSION,
    GitEngine,
    GitResult,
    RefRecord,
    check_refspec_pattern,
)
from .errors import (
    GitCommandError,
    GitError,
    GitExecutableNotFoundError,
    GitVersionError,
    RefTransactionError,
)
from .transaction import RefTransaction

__all__ = [
    "SYMREF_UPDATE_VERSION",
    "GitCommandError",
    "GitEngine",
    "GitError",
    "GitExecutableNotFoundError",
    "GitResult",
    "GitVersionError",
    "RefRecord",
    "RefTransaction",
    "RefTransactionError",
    "check_refspec_pattern",
]
