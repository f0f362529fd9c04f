"""Workspace components: validation, branch resolution, worktrees, lifecycle."""

from .branch_naming import DerivedBranchNamer, derive_branch_name
from .branch_resolver import BranchResolver
from .lifecycle import CleanupResult, SetupAttempt, WorkspaceLifecycleController
from .paths import list_workspaces, project_base_dir, resolve_repo_path, resolve_workspace_paths
from .repository_validator import RepositoryValidator
from .worktree_manager import WorktreeEntry, WorktreeManager

__all__ = [
    "BranchResolver",
    "CleanupResult",
    "DerivedBranchNamer",
    "RepositoryValidator",
    "SetupAttempt",
    "WorkspaceLifecycleController",
    "WorktreeEntry",
    "WorktreeManager",
    "derive_branch_name",
    "list_workspaces",
    "project_base_dir",
    "resolve_repo_path",
    "resolve_workspace_paths",
]
