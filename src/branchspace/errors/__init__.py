"""Error taxonomy and translation to user-friendly messages."""

from .exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    GitError,
    GitErrorKind,
    OperationTimeoutError,
    StepFailure,
    ValidationError,
    WorkspaceCleanupError,
    WorkspaceError,
    WorkspaceSetupError,
    WorktreeConflictError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "ErrorTranslator",
    "FileSystemError",
    "FileSystemErrorKind",
    "GitError",
    "GitErrorKind",
    "OperationTimeoutError",
    "StepFailure",
    "UserFriendlyError",
    "ValidationError",
    "WorkspaceCleanupError",
    "WorkspaceError",
    "WorkspaceSetupError",
    "WorktreeConflictError",
]
