"""
Workspace lifecycle: setup with rollback, and cleanup.

Setup runs four batches in order (validate, resolve, prune, create). The
batches are built up front from a per-attempt plan so their scheduling can be
inspected before anything touches git. A failed batch moves the workspace to
FAILED, rolls back whatever this attempt created, and raises one aggregated
WorkspaceSetupError.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..core.config import EngineContext, ProjectConfig
from ..core.models import (
    BranchResolution,
    RepoLocation,
    RepoRef,
    WorkspacePaths,
    WorkspaceState,
    WorktreePlan,
    can_transition,
)
from ..errors.exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    StepFailure,
    WorkspaceCleanupError,
    WorkspaceError,
    WorkspaceSetupError,
)
from ..workflow.executor import ParallelOperationExecutor
from ..workflow.operations import BatchResult, Operation, OperationBatch, OperationKind
from .branch_naming import DerivedBranchNamer
from .branch_resolver import BranchResolver
from .paths import repo_locations, resolve_workspace_paths
from .repository_validator import RepositoryValidator
from .worktree_manager import WorktreeManager

logger = logging.getLogger(__name__)

# State reached when the named setup batch settles without failures
BATCH_STATES = {
    "validate": WorkspaceState.REPOSITORIES_VALIDATED,
    "resolve": WorkspaceState.BRANCHES_RESOLVED,
    "create": WorkspaceState.WORKTREES_CREATED,
}


@dataclass
class SetupAttempt:
    """Everything one setup call learns and creates. Discarded on return.

    ``attempted_worktrees`` holds every plan whose ``worktree add`` ran against
    a path that did not exist beforehand. Git can register a worktree and then
    fail (a hook exits non-zero, the process is killed at its timeout), so
    rollback covers these plans whether or not the add returned.
    """
    project: ProjectConfig
    paths: WorkspacePaths
    locations: List[RepoLocation]
    branches: Dict[str, str]
    repo_refs: Dict[str, RepoRef] = field(default_factory=dict)
    resolutions: Dict[str, BranchResolution] = field(default_factory=dict)
    plans: Dict[str, WorktreePlan] = field(default_factory=dict)
    attempted_worktrees: List[WorktreePlan] = field(default_factory=list)
    created_dirs: List[Path] = field(default_factory=list)
    state: WorkspaceState = WorkspaceState.UNINITIALIZED

    def transition(self, target: WorkspaceState) -> None:
        if not can_transition(self.state, target):
            raise WorkspaceError(
                f"Invalid workspace state transition: {self.state.value} -> {target.value}"
            )
        logger.debug(f"Workspace state: {self.state.value} -> {target.value}")
        self.state = target


@dataclass
class CleanupResult:
    """What a cleanup removed."""
    removed_worktrees: List[Path] = field(default_factory=list)
    deleted_branches: List[str] = field(default_factory=list)
    removed_workspace_dir: bool = False


def _missing_dirs(path: Path) -> List[Path]:
    """``path`` and each missing ancestor, deepest first."""
    missing = []
    current = path
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent
    return missing


class WorkspaceLifecycleController:
    """Drives setup and cleanup of one branch workspace.

    Collaborators default to instances built from the context's engine
    settings and may be injected for tests.
    """

    def __init__(
        self,
        context: EngineContext,
        validator: Optional[RepositoryValidator] = None,
        resolver: Optional[BranchResolver] = None,
        worktrees: Optional[WorktreeManager] = None,
        namer: Optional[DerivedBranchNamer] = None,
        executor: Optional[ParallelOperationExecutor] = None,
    ):
        self.context = context
        settings = context.settings
        self.validator = validator or RepositoryValidator(settings)
        self.resolver = resolver or BranchResolver(settings)
        self.worktrees = worktrees or WorktreeManager(settings)
        self.namer = namer or DerivedBranchNamer(settings.derived_branch_suffix)
        self.executor = executor or ParallelOperationExecutor(
            concurrency_limit=settings.effective_concurrency,
            on_step_start=context.progress.on_step_start,
            on_step_complete=context.progress.on_step_complete,
        )
        self._last_attempt: Optional[SetupAttempt] = None

    @property
    def state(self) -> WorkspaceState:
        """State of the most recently started setup."""
        if self._last_attempt is None:
            return WorkspaceState.UNINITIALIZED
        return self._last_attempt.state

    def plan(self, project: ProjectConfig, branch_name: str) -> SetupAttempt:
        """Compute paths and per-repo branches for a setup attempt."""
        paths = resolve_workspace_paths(
            self.context.global_settings, project, branch_name, self.namer
        )
        branches = {"primary": paths.branch_name}
        if paths.derived_branch_name:
            branches["secondary"] = paths.derived_branch_name
        return SetupAttempt(
            project=project,
            paths=paths,
            locations=repo_locations(paths, project),
            branches=branches,
        )

    def build_setup_batches(self, attempt: SetupAttempt) -> List[OperationBatch]:
        """The ordered validate, resolve, prune, and create batches for ``attempt``."""
        settings = self.context.settings
        validate_ops: List[Operation] = []
        resolve_ops: List[Operation] = []
        prune_ops: List[Operation] = []
        create_ops: List[Operation] = []

        for location in attempt.locations:
            key = location.repo_key
            if settings.auto_clone and location.remote_url:
                validate_ops.append(Operation(
                    id=f"clone:{key}",
                    repo_key=key,
                    kind=OperationKind.CLONE,
                    run=self._clone_step(location),
                    description=f"clone {location.repo_path.name}",
                ))
            validate_ops.append(Operation(
                id=f"validate:{key}",
                repo_key=key,
                kind=OperationKind.VALIDATE,
                run=self._validate_step(attempt, location),
                description=f"validate {location.repo_path.name}",
            ))
            if settings.ensure_freshness:
                validate_ops.append(Operation(
                    id=f"fetch:{key}",
                    repo_key=key,
                    kind=OperationKind.FETCH,
                    run=self._fetch_step(attempt, key),
                    description=f"refresh {location.repo_path.name}",
                ))

            resolve_ops.append(Operation(
                id=f"resolve:{key}",
                repo_key=key,
                kind=OperationKind.RESOLVE_BRANCH,
                run=self._resolve_step(attempt, location),
                description=f"resolve '{attempt.branches[key]}' in {location.repo_path.name}",
            ))
            prune_ops.append(Operation(
                id=f"prune:{key}",
                repo_key=key,
                kind=OperationKind.PRUNE,
                run=self._prune_step(attempt, key),
                description=f"prune worktrees of {location.repo_path.name}",
            ))
            create_ops.append(Operation(
                id=f"create:{key}",
                repo_key=key,
                kind=OperationKind.CREATE_WORKTREE,
                run=self._create_step(attempt, key),
                description=f"create worktree {location.worktree_path.name}",
            ))

        return [
            OperationBatch("validate", validate_ops),
            OperationBatch("resolve", resolve_ops),
            OperationBatch("prune", prune_ops),
            OperationBatch("create", create_ops),
        ]

    def _clone_step(self, location: RepoLocation):
        async def run():
            return await self.validator.ensure_cloned(location.remote_url, location.repo_path)
        return run

    def _validate_step(self, attempt: SetupAttempt, location: RepoLocation):
        async def run():
            repo_ref = await self.validator.validate(location.repo_path, location.default_branch)
            attempt.repo_refs[location.repo_key] = repo_ref
            return repo_ref
        return run

    def _fetch_step(self, attempt: SetupAttempt, key: str):
        async def run():
            return await self.validator.ensure_fresh(attempt.repo_refs[key])
        return run

    def _resolve_step(self, attempt: SetupAttempt, location: RepoLocation):
        async def run():
            key = location.repo_key
            if key in attempt.resolutions:
                raise WorkspaceError(f"Branch for '{key}' was already resolved in this attempt")
            repo_ref = attempt.repo_refs[key]
            resolution = await self.resolver.resolve(repo_ref, attempt.branches[key])
            attempt.resolutions[key] = resolution
            attempt.plans[key] = WorktreePlan(
                repo_key=key,
                repo_ref=repo_ref,
                worktree_path=location.worktree_path,
                resolution=resolution,
            )
            return resolution
        return run

    def _prune_step(self, attempt: SetupAttempt, key: str):
        async def run():
            await self.worktrees.prune_stale(attempt.repo_refs[key].path)
        return run

    def _create_step(self, attempt: SetupAttempt, key: str):
        async def run():
            plan = attempt.plans[key]
            # A path that already exists may be the user's own worktree
            if not plan.worktree_path.exists():
                attempt.created_dirs.extend(_missing_dirs(plan.worktree_path))
                attempt.attempted_worktrees.append(plan)
            return await self.worktrees.add_worktree(plan)
        return run

    async def setup(self, project: ProjectConfig, branch_name: str) -> WorkspacePaths:
        """
        Provision the workspace for ``branch_name``.

        Returns:
            WorkspacePaths of the ready workspace

        Raises:
            ValidationError: Invalid branch name or project layout
            WorkspaceSetupError: Any step failed; this attempt's artifacts
                have been rolled back
        """
        attempt = self.plan(project, branch_name)
        self._last_attempt = attempt
        batches = self.build_setup_batches(attempt)

        logger.info(
            f"Setting up workspace '{attempt.paths.workspace_dir.name}' for "
            f"{project.display_name} ({len(attempt.locations)} repo(s))"
        )

        def on_batch_settled(batch_result: BatchResult) -> None:
            target = BATCH_STATES.get(batch_result.name)
            if target is not None and not batch_result.failed:
                attempt.transition(target)

        results = await self.executor.execute_batches(batches, on_batch_settled=on_batch_settled)

        if results.failed:
            failures = [
                StepFailure(repo_key=r.repo_key, step=r.kind.value, error=r.error)
                for r in results.failures
            ]
            attempt.transition(WorkspaceState.FAILED)
            failures.extend(await self._rollback(attempt))
            attempt.transition(WorkspaceState.ROLLED_BACK)
            raise WorkspaceSetupError(failures, state=attempt.state.value)

        attempt.transition(WorkspaceState.READY)
        stats = results.calculate_performance_stats()
        logger.info(
            f"Workspace ready at {attempt.paths.workspace_dir} "
            f"({stats['operation_count']} operations, {stats['total_duration']:.2f}s git time)"
        )
        return attempt.paths

    async def _rollback(self, attempt: SetupAttempt) -> List[StepFailure]:
        """Undo what this attempt created. Returns problems instead of raising."""
        failures: List[StepFailure] = []
        logger.warning("Rolling back partially created workspace")

        # Worktrees go first; git refuses to delete a branch a worktree holds
        for plan in reversed(attempt.attempted_worktrees):
            try:
                await self.worktrees.remove_worktree(
                    plan.repo_ref.path, plan.worktree_path, include_locked=True
                )
            except WorkspaceError as e:
                failures.append(StepFailure(plan.repo_key, "rollback_remove_worktree", e))

        if self.context.settings.delete_created_branches:
            for plan in attempt.plans.values():
                try:
                    await self._rollback_branch(plan)
                except WorkspaceError as e:
                    failures.append(StepFailure(plan.repo_key, "rollback_delete_branch", e))

        # Deepest first so parents are empty by the time they are checked
        for directory in sorted(set(attempt.created_dirs), key=lambda p: len(p.parts), reverse=True):
            try:
                if directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
            except OSError as e:
                failures.append(StepFailure(
                    "workspace",
                    "rollback_remove_directory",
                    FileSystemError(
                        f"Could not remove {directory}: {e}",
                        FileSystemErrorKind.PERMISSION_DENIED,
                        directory,
                    ),
                ))

        return failures

    async def _rollback_branch(self, plan: WorktreePlan) -> None:
        resolution = plan.resolution
        if resolution.exists_locally or not resolution.creates_branch:
            return

        repo_path = plan.repo_ref.path
        if not await self.worktrees.branch_exists(repo_path, plan.branch_name):
            return

        ahead = await self.worktrees.commits_beyond(repo_path, plan.branch_name, plan.base_ref)
        if ahead:
            logger.warning(
                f"Keeping branch '{plan.branch_name}' in {repo_path.name}: "
                f"{ahead} commit(s) beyond {plan.base_ref}"
            )
            return
        await self.worktrees.delete_branch(repo_path, plan.branch_name)

    async def describe_cleanup(
        self, paths: WorkspacePaths, delete_branches: bool = False
    ) -> List[str]:
        """What cleanup would remove, without removing anything."""
        actions = []
        for _key, repo_path, worktree_path, branch in paths.worktrees():
            entry = None
            if repo_path.exists():
                entry = await self.worktrees.find_worktree(repo_path, worktree_path)
            if entry is not None and entry.locked:
                actions.append(f"locked worktree {worktree_path} blocks cleanup; unlock it first")
            elif entry is not None:
                actions.append(f"remove worktree {worktree_path} ({entry.branch or 'detached'})")
            if delete_branches and repo_path.exists():
                if await self.worktrees.branch_exists(repo_path, branch):
                    actions.append(f"delete branch '{branch}' in {repo_path.name}")
        if paths.workspace_dir.exists():
            actions.append(f"remove directory {paths.workspace_dir}")
        return actions

    async def cleanup(self, paths: WorkspacePaths, delete_branches: bool = False) -> CleanupResult:
        """
        Tear down a workspace. Safe to repeat.

        Raises:
            WorkspaceCleanupError: One or more repositories could not be cleaned
        """
        result = CleanupResult()
        operations = []

        for key, repo_path, worktree_path, branch in paths.worktrees():
            operations.append(Operation(
                id=f"remove:{key}",
                repo_key=key,
                kind=OperationKind.REMOVE_WORKTREE,
                run=self._remove_step(result, repo_path, worktree_path, branch, delete_branches),
                description=f"remove worktree {worktree_path.name}",
            ))

        batch_result = await self.executor.execute_batch(OperationBatch("cleanup", operations))
        failures = [
            StepFailure(repo_key=r.repo_key, step=r.kind.value, error=r.error)
            for r in batch_result.failures
        ]

        # A worktree that could not be removed keeps its directory
        if not failures and paths.workspace_dir.exists():
            try:
                shutil.rmtree(paths.workspace_dir)
                result.removed_workspace_dir = True
            except OSError as e:
                failures.append(StepFailure(
                    "workspace",
                    "remove_directory",
                    FileSystemError(
                        f"Could not remove {paths.workspace_dir}: {e}",
                        FileSystemErrorKind.PERMISSION_DENIED,
                        paths.workspace_dir,
                    ),
                ))

        if failures:
            raise WorkspaceCleanupError(failures)

        logger.info(f"Cleaned up workspace {paths.workspace_dir}")
        return result

    def _remove_step(
        self,
        result: CleanupResult,
        repo_path: Path,
        worktree_path: Path,
        branch: str,
        delete_branches: bool,
    ):
        async def run():
            if not repo_path.exists():
                logger.warning(f"Repository {repo_path} is missing, skipping git cleanup")
                return
            if await self.worktrees.remove_worktree(repo_path, worktree_path):
                result.removed_worktrees.append(worktree_path)
            if delete_branches and await self.worktrees.delete_branch(repo_path, branch):
                result.deleted_branches.append(branch)
            await self.worktrees.prune_stale(repo_path)
        return run
