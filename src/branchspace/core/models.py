"""Data model shared by the workspace engine components."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, Optional, Tuple


@dataclass(frozen=True)
class RepoRef:
    """A repository that passed validation."""
    path: Path
    remote_url: str
    default_branch: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def default_base(self) -> str:
        """Ref new branches are created from."""
        return f"origin/{self.default_branch}"


class BranchStrategy(str, Enum):
    """How the worktree branch gets onto disk."""
    USE_EXISTING = "use_existing"
    CREATE_TRACKING_FROM_REMOTE = "create_tracking_from_remote"
    CREATE_FROM_DEFAULT = "create_from_default"


@dataclass(frozen=True)
class BranchResolution:
    """Where a branch exists, and the strategy chosen because of it."""
    branch_name: str
    exists_locally: bool
    exists_remotely: bool
    strategy: BranchStrategy

    @property
    def creates_branch(self) -> bool:
        return self.strategy != BranchStrategy.USE_EXISTING


@dataclass(frozen=True)
class WorktreePlan:
    """One repository's worktree in the workspace being built."""
    repo_key: str
    repo_ref: RepoRef
    worktree_path: Path
    resolution: BranchResolution

    @property
    def branch_name(self) -> str:
        return self.resolution.branch_name

    @property
    def base_ref(self) -> str:
        """Commit-ish the worktree is created from."""
        strategy = self.resolution.strategy
        if strategy == BranchStrategy.CREATE_FROM_DEFAULT:
            return self.repo_ref.default_base
        if strategy == BranchStrategy.CREATE_TRACKING_FROM_REMOTE:
            return f"origin/{self.branch_name}"
        return self.branch_name


class WorkspaceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    REPOSITORIES_VALIDATED = "repositories_validated"
    BRANCHES_RESOLVED = "branches_resolved"
    WORKTREES_CREATED = "worktrees_created"
    READY = "ready"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


# Every transition the lifecycle controller is allowed to make
ALLOWED_TRANSITIONS: Dict[WorkspaceState, FrozenSet[WorkspaceState]] = {
    WorkspaceState.UNINITIALIZED: frozenset(
        {WorkspaceState.REPOSITORIES_VALIDATED, WorkspaceState.FAILED}
    ),
    WorkspaceState.REPOSITORIES_VALIDATED: frozenset(
        {WorkspaceState.BRANCHES_RESOLVED, WorkspaceState.FAILED}
    ),
    WorkspaceState.BRANCHES_RESOLVED: frozenset(
        {WorkspaceState.WORKTREES_CREATED, WorkspaceState.FAILED}
    ),
    WorkspaceState.WORKTREES_CREATED: frozenset(
        {WorkspaceState.READY, WorkspaceState.FAILED}
    ),
    WorkspaceState.READY: frozenset(),
    WorkspaceState.FAILED: frozenset({WorkspaceState.ROLLED_BACK}),
    WorkspaceState.ROLLED_BACK: frozenset(),
}


def can_transition(current: WorkspaceState, target: WorkspaceState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class RepoLocation:
    """Where a configured repository lives and where its worktree goes."""
    repo_key: str
    repo_path: Path
    worktree_path: Path
    remote_url: Optional[str] = None
    default_branch: Optional[str] = None


@dataclass(frozen=True)
class WorkspacePaths:
    """Filesystem layout of one branch workspace."""
    src_dir: Path
    base_dir: Path
    workspace_dir: Path
    primary_repo_path: Path
    primary_worktree_path: Path
    branch_name: str
    secondary_repo_path: Optional[Path] = None
    secondary_worktree_path: Optional[Path] = None
    derived_branch_name: Optional[str] = None

    @property
    def has_secondary(self) -> bool:
        return self.secondary_repo_path is not None

    def worktrees(self) -> Iterator[Tuple[str, Path, Path, str]]:
        """Yield (repo_key, repo_path, worktree_path, branch) for each repository."""
        yield "primary", self.primary_repo_path, self.primary_worktree_path, self.branch_name
        if self.secondary_repo_path is not None and self.secondary_worktree_path is not None:
            yield (
                "secondary",
                self.secondary_repo_path,
                self.secondary_worktree_path,
                self.derived_branch_name or self.branch_name,
            )
