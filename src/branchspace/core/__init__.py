"""Core models and configuration."""

from .config import (
    EngineContext,
    EngineSettings,
    GlobalSettings,
    ProgressCallbacks,
    ProjectConfig,
    SpaceConfig,
    load_config,
)
from .models import (
    BranchResolution,
    BranchStrategy,
    RepoLocation,
    RepoRef,
    WorkspacePaths,
    WorkspaceState,
    WorktreePlan,
)

__all__ = [
    "EngineContext",
    "EngineSettings",
    "GlobalSettings",
    "ProgressCallbacks",
    "ProjectConfig",
    "SpaceConfig",
    "load_config",
    "BranchResolution",
    "BranchStrategy",
    "RepoLocation",
    "RepoRef",
    "WorkspacePaths",
    "WorkspaceState",
    "WorktreePlan",
]
