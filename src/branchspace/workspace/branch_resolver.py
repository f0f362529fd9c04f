"""Decides how a workspace branch gets created in each repository."""

import logging
from typing import Optional

from ..core.config import EngineSettings
from ..core.models import BranchResolution, BranchStrategy, RepoRef
from ..errors.exceptions import GitError, GitErrorKind
from ..utils.subprocess_utils import SubprocessError, run_git_command, run_with_retry
from ..utils.validators import validate_branch_name
from .git_signatures import is_network_failure

logger = logging.getLogger(__name__)


class BranchResolver:
    """Resolves local/remote branch existence into a BranchStrategy.

    Priority: a local branch is reused, a remote-only branch is tracked, and
    anything else is created from the default branch.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    async def resolve(self, repo_ref: RepoRef, branch_name: str) -> BranchResolution:
        branch_name = validate_branch_name(branch_name)

        exists_locally = await self.local_branch_exists(repo_ref, branch_name)
        exists_remotely = False
        if exists_locally:
            strategy = BranchStrategy.USE_EXISTING
        else:
            exists_remotely = await self.remote_branch_exists(repo_ref, branch_name)
            if exists_remotely:
                strategy = BranchStrategy.CREATE_TRACKING_FROM_REMOTE
            else:
                strategy = BranchStrategy.CREATE_FROM_DEFAULT

        logger.debug(f"{repo_ref.name}: '{branch_name}' -> {strategy.value}")
        return BranchResolution(
            branch_name=branch_name,
            exists_locally=exists_locally,
            exists_remotely=exists_remotely,
            strategy=strategy,
        )

    async def local_branch_exists(self, repo_ref: RepoRef, branch_name: str) -> bool:
        result = await run_git_command(
            ["show-ref", "--verify", "--quiet", f"refs/heads/{branch_name}"],
            cwd=repo_ref.path,
            check=False,
            timeout=self.settings.metadata_timeout,
        )
        return result.returncode == 0

    async def remote_branch_exists(self, repo_ref: RepoRef, branch_name: str) -> bool:
        """Ask origin directly. Only an exact ``refs/heads/<branch>`` counts."""
        try:
            result = await run_with_retry(
                ["ls-remote", "--heads", "origin", branch_name],
                cwd=repo_ref.path,
                timeout=self.settings.network_timeout,
                backoff=self.settings.retry_backoff,
                retry_on=is_network_failure,
            )
        except SubprocessError as e:
            kind = GitErrorKind.NETWORK_FAILURE if is_network_failure(e) else None
            raise GitError.from_subprocess(e, repo_path=repo_ref.path, kind=kind) from e

        wanted = f"refs/heads/{branch_name}"
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == wanted:
                return True
        return False
