"""
Git worktree management for branch workspaces.

Creates, removes, and prunes worktrees on behalf of the lifecycle controller.
Conflicts with stale worktree metadata are handled by one prune and one retry;
anything still conflicting after that is reported, never forced.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.config import EngineSettings
from ..core.models import BranchStrategy, WorktreePlan
from ..errors.exceptions import GitError, GitErrorKind, WorktreeConflictError
from ..utils.subprocess_utils import SubprocessError, run_git_command, run_with_retry
from .git_signatures import (
    is_branch_already_exists,
    is_network_failure,
    is_worktree_conflict,
    parse_conflict_path,
)

logger = logging.getLogger(__name__)


@dataclass
class WorktreeEntry:
    """One record from ``git worktree list --porcelain``."""
    path: Path
    branch: Optional[str] = None  # Short name; None when detached
    locked: bool = False
    prunable: bool = False


def parse_worktree_list(output: str) -> List[WorktreeEntry]:
    """Parse porcelain output into entries. Records are separated by blank lines."""
    entries: List[WorktreeEntry] = []
    current: Optional[WorktreeEntry] = None

    for line in output.splitlines():
        if not line.strip():
            current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            current = WorktreeEntry(path=Path(value))
            entries.append(current)
        elif current is None:
            continue
        elif key == "branch":
            current.branch = value[len("refs/heads/"):] if value.startswith("refs/heads/") else value
        elif key == "locked":
            current.locked = True
        elif key == "prunable":
            current.prunable = True

    return entries


def _same_path(a: Path, b: Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


class WorktreeManager:
    """Adds and removes worktrees in a repository and answers branch queries."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    async def add_worktree(self, plan: WorktreePlan) -> Path:
        """
        Create the worktree described by ``plan``.

        Returns:
            Path to the created worktree

        Raises:
            WorktreeConflictError: Branch or path still held by another worktree
                after one prune and retry
            GitError: Any other git failure
        """
        repo_path = plan.repo_ref.path
        worktree_path = plan.worktree_path
        worktree_path.parent.mkdir(parents=True, exist_ok=True)

        if plan.resolution.strategy == BranchStrategy.CREATE_TRACKING_FROM_REMOTE:
            await self._fetch_branch(repo_path, plan.branch_name)

        args = self._add_args(plan)
        try:
            await self._git(args, repo_path, timeout=self.settings.network_timeout)
        except SubprocessError as e:
            if is_branch_already_exists(e.stderr):
                raise GitError.from_subprocess(
                    e,
                    repo_path=repo_path,
                    message=(
                        f"Branch '{plan.branch_name}' was created in {repo_path.name} "
                        f"after it was resolved; run setup again to use it"
                    ),
                ) from e
            if not is_worktree_conflict(e.stderr):
                raise GitError.from_subprocess(e, repo_path=repo_path) from e

            logger.info(
                f"Worktree conflict for '{plan.branch_name}' in {repo_path.name}, "
                f"pruning stale entries and retrying once"
            )
            await self.prune_stale(repo_path)
            try:
                await self._git(args, repo_path, timeout=self.settings.network_timeout)
            except SubprocessError as retry_err:
                if is_worktree_conflict(retry_err.stderr):
                    conflicting = parse_conflict_path(retry_err.stderr) or worktree_path
                    raise WorktreeConflictError(
                        f"Branch '{plan.branch_name}' is already checked out at {conflicting}",
                        conflicting_path=conflicting,
                        branch=plan.branch_name,
                        repo_path=repo_path,
                        stderr=retry_err.stderr.strip(),
                    ) from retry_err
                raise GitError.from_subprocess(retry_err, repo_path=repo_path) from retry_err
            logger.info(f"Created worktree after pruning stale entries: {worktree_path}")
            return worktree_path

        logger.info(f"Created worktree: {worktree_path} (branch: {plan.branch_name})")
        return worktree_path

    def _add_args(self, plan: WorktreePlan) -> List[str]:
        path = str(plan.worktree_path)
        strategy = plan.resolution.strategy
        if strategy == BranchStrategy.USE_EXISTING:
            return ["worktree", "add", path, plan.branch_name]
        if strategy == BranchStrategy.CREATE_TRACKING_FROM_REMOTE:
            return ["worktree", "add", "--track", "-b", plan.branch_name, path, plan.base_ref]
        return ["worktree", "add", "-b", plan.branch_name, path, plan.base_ref]

    async def _fetch_branch(self, repo_path: Path, branch: str) -> None:
        try:
            await run_with_retry(
                ["fetch", "origin", branch],
                cwd=repo_path,
                timeout=self.settings.network_timeout,
                backoff=self.settings.retry_backoff,
                retry_on=is_network_failure,
            )
        except SubprocessError as e:
            kind = GitErrorKind.NETWORK_FAILURE if is_network_failure(e) else None
            raise GitError.from_subprocess(e, repo_path=repo_path, kind=kind) from e

    async def remove_worktree(
        self, repo_path: Path, worktree_path: Path, include_locked: bool = False
    ) -> bool:
        """
        Remove a worktree if git knows about it.

        Args:
            repo_path: Repository owning the worktree
            worktree_path: Worktree to remove
            include_locked: Unlock a locked worktree first instead of refusing.
                Only for worktrees this process created, e.g. one git left
                locked after being killed mid-add.

        Returns:
            True if a worktree was removed, False if it was not registered

        Raises:
            GitError: The worktree is locked and include_locked is False, or
                git could not remove it
        """
        entry = await self.find_worktree(repo_path, worktree_path)
        if entry is None:
            logger.debug(f"Not a registered worktree, nothing to remove: {worktree_path}")
            return False

        if entry.locked:
            if not include_locked:
                raise GitError(
                    f"Worktree {worktree_path} is locked; run "
                    f"`git worktree unlock {worktree_path}` if it can be removed",
                    repo_path=repo_path,
                )
            try:
                await self._git(["worktree", "unlock", str(worktree_path)], repo_path)
            except SubprocessError as e:
                raise GitError.from_subprocess(e, repo_path=repo_path) from e

        if entry.prunable or not worktree_path.exists():
            # Directory or its gitdir link is gone; only the metadata remains
            await self.prune_stale(repo_path)
            logger.debug(f"Pruned metadata for missing worktree: {worktree_path}")
            return True

        try:
            await self._git(["worktree", "remove", "--force", str(worktree_path)], repo_path)
        except SubprocessError as e:
            if worktree_path.exists():
                raise GitError.from_subprocess(e, repo_path=repo_path) from e
            await self.prune_stale(repo_path)

        if worktree_path.exists():
            shutil.rmtree(worktree_path)

        logger.info(f"Removed worktree: {worktree_path}")
        return True

    async def prune_stale(self, repo_path: Path) -> None:
        """Drop metadata for worktrees whose directories no longer exist."""
        try:
            await self._git(["worktree", "prune"], repo_path)
        except SubprocessError as e:
            raise GitError.from_subprocess(e, repo_path=repo_path) from e

    async def list_worktrees(self, repo_path: Path) -> List[WorktreeEntry]:
        try:
            result = await self._git(["worktree", "list", "--porcelain"], repo_path)
        except SubprocessError as e:
            raise GitError.from_subprocess(e, repo_path=repo_path) from e
        return parse_worktree_list(result.stdout)

    async def find_worktree(self, repo_path: Path, worktree_path: Path) -> Optional[WorktreeEntry]:
        """The registered entry for ``worktree_path``, or None."""
        for entry in await self.list_worktrees(repo_path):
            if _same_path(entry.path, worktree_path):
                return entry
        return None

    async def is_registered(self, repo_path: Path, worktree_path: Path) -> bool:
        return await self.find_worktree(repo_path, worktree_path) is not None

    async def branch_exists(self, repo_path: Path, branch: str) -> bool:
        result = await run_git_command(
            ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
            cwd=repo_path,
            check=False,
            timeout=self.settings.metadata_timeout,
        )
        return result.returncode == 0

    async def commits_beyond(self, repo_path: Path, branch: str, base: str) -> int:
        """Number of commits on ``branch`` that ``base`` does not have."""
        try:
            result = await self._git(
                ["rev-list", "--count", f"{base}..refs/heads/{branch}"], repo_path
            )
        except SubprocessError as e:
            raise GitError.from_subprocess(e, repo_path=repo_path) from e
        return int(result.stdout.strip() or 0)

    async def delete_branch(self, repo_path: Path, branch: str) -> bool:
        """
        Delete a local branch after confirming it exists.

        Returns:
            True if deleted, False if the branch was absent
        """
        if not await self.branch_exists(repo_path, branch):
            logger.debug(f"Branch '{branch}' not present in {repo_path.name}, skipping delete")
            return False

        try:
            await self._git(["branch", "-D", branch], repo_path)
        except SubprocessError as e:
            raise GitError.from_subprocess(e, repo_path=repo_path) from e
        logger.info(f"Deleted branch '{branch}' in {repo_path.name}")
        return True

    async def _git(self, args: List[str], repo_path: Path, timeout: Optional[float] = None):
        return await run_git_command(
            args,
            cwd=repo_path,
            timeout=timeout if timeout is not None else self.settings.metadata_timeout,
        )
