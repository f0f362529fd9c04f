"""Shared utility functions for branchspace."""

from .error_handling import log_and_ignore, safe_call
from .subprocess_utils import (
    CommandResult,
    SubprocessError,
    run_command,
    run_git_command,
    run_with_retry,
)
from .validators import sanitize_workspace_name, validate_branch_name, validate_project_key

__all__ = [
    # Error handling
    "log_and_ignore",
    "safe_call",
    # Subprocess utilities
    "CommandResult",
    "SubprocessError",
    "run_command",
    "run_git_command",
    "run_with_retry",
    # Validators
    "sanitize_workspace_name",
    "validate_branch_name",
    "validate_project_key",
]
