"""Repository validation and freshness."""

import logging
import os
from pathlib import Path
from typing import Optional

from ..core.config import EngineSettings
from ..core.models import RepoRef
from ..errors.exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    GitError,
    GitErrorKind,
)
from ..utils.subprocess_utils import SubprocessError, run_git_command, run_with_retry
from .git_signatures import is_network_failure

logger = logging.getLogger(__name__)


class RepositoryValidator:
    """Confirms repositories are usable and brings them up to date with origin."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    async def validate(self, path: Path, default_branch: Optional[str] = None) -> RepoRef:
        """
        Check that ``path`` is a git repository with an ``origin`` remote.

        Args:
            path: Repository root
            default_branch: Configured default branch; detected when None

        Returns:
            RepoRef for the repository

        Raises:
            FileSystemError: Path missing, not a directory, or unreadable
            GitError: NOT_A_REPO when .git is absent, NO_REMOTE without origin
        """
        path = Path(path).expanduser()

        if not path.exists():
            raise FileSystemError(
                f"Repository not found: {path}", FileSystemErrorKind.NOT_FOUND, path
            )
        if not path.is_dir():
            raise FileSystemError(
                f"Repository path is not a directory: {path}",
                FileSystemErrorKind.NOT_A_DIRECTORY,
                path,
            )
        if not os.access(path, os.R_OK | os.X_OK):
            raise FileSystemError(
                f"Repository is not readable: {path}",
                FileSystemErrorKind.PERMISSION_DENIED,
                path,
            )
        if not (path / ".git").exists():
            raise GitError(
                f"Not a git repository: {path}", GitErrorKind.NOT_A_REPO, repo_path=path
            )

        result = await run_git_command(
            ["remote", "get-url", "origin"],
            cwd=path,
            check=False,
            timeout=self.settings.metadata_timeout,
        )
        remote_url = result.stdout.strip()
        if result.returncode != 0 or not remote_url:
            raise GitError(
                f"Repository has no 'origin' remote: {path}",
                GitErrorKind.NO_REMOTE,
                repo_path=path,
                args=["remote", "get-url", "origin"],
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )

        if not default_branch:
            default_branch = await self.detect_default_branch(path)

        logger.debug(f"Validated {path} (origin={remote_url}, default={default_branch})")
        return RepoRef(path=path, remote_url=remote_url, default_branch=default_branch)

    async def detect_default_branch(self, repo_path: Path) -> str:
        """Default branch from origin/HEAD, then common names, then 'main'."""
        timeout = self.settings.metadata_timeout

        result = await run_git_command(
            ["symbolic-ref", "refs/remotes/origin/HEAD"],
            cwd=repo_path,
            check=False,
            timeout=timeout,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().replace("refs/remotes/origin/", "", 1)

        # Fallback to common names, remote first
        for ref in ("refs/remotes/origin/main", "refs/remotes/origin/master",
                    "refs/heads/main", "refs/heads/master"):
            verified = await run_git_command(
                ["rev-parse", "--verify", "--quiet", ref],
                cwd=repo_path,
                check=False,
                timeout=timeout,
            )
            if verified.returncode == 0:
                return ref.rsplit("/", 1)[-1]

        logger.warning(f"Could not detect default branch for {repo_path}, assuming 'main'")
        return "main"

    async def ensure_fresh(self, repo_ref: RepoRef) -> RepoRef:
        """
        Fetch the default branch and fast-forward it when that is safe.

        Raises:
            GitError: NETWORK_FAILURE once retries are exhausted, otherwise
                COMMAND_FAILED for the failing git call
        """
        branch = repo_ref.default_branch
        await self._fetch(repo_ref.path, branch)

        verify = await run_git_command(
            ["rev-parse", "--verify", "--quiet", f"refs/remotes/{repo_ref.default_base}"],
            cwd=repo_ref.path,
            check=False,
            timeout=self.settings.metadata_timeout,
        )
        if verify.returncode != 0:
            raise GitError(
                f"{repo_ref.default_base} does not exist in {repo_ref.path}",
                repo_path=repo_ref.path,
                args=["rev-parse", "--verify", repo_ref.default_base],
                returncode=verify.returncode,
            )

        if self.settings.auto_update_default_branch:
            await self._fast_forward_default(repo_ref)
        return repo_ref

    async def ensure_cloned(self, remote_url: str, path: Path) -> bool:
        """
        Clone ``remote_url`` into ``path`` when the path does not exist yet.

        Returns:
            True if a clone was made, False if the path already existed
        """
        path = Path(path).expanduser()
        if path.exists():
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cloning {remote_url} into {path}")
        try:
            await run_with_retry(
                ["clone", remote_url, str(path)],
                cwd=path.parent,
                timeout=self.settings.clone_timeout,
                backoff=self.settings.retry_backoff,
                retry_on=is_network_failure,
            )
        except SubprocessError as e:
            kind = GitErrorKind.NETWORK_FAILURE if is_network_failure(e) else None
            raise GitError.from_subprocess(e, repo_path=path, kind=kind) from e
        return True

    async def _fetch(self, repo_path: Path, branch: str) -> None:
        try:
            await run_with_retry(
                ["fetch", "origin", branch],
                cwd=repo_path,
                timeout=self.settings.network_timeout,
                backoff=self.settings.retry_backoff,
                retry_on=is_network_failure,
            )
        except SubprocessError as e:
            if is_network_failure(e):
                raise GitError.from_subprocess(
                    e,
                    repo_path=repo_path,
                    kind=GitErrorKind.NETWORK_FAILURE,
                    message=f"Could not fetch '{branch}' from origin in {repo_path}",
                ) from e
            raise GitError.from_subprocess(e, repo_path=repo_path) from e

    async def _fast_forward_default(self, repo_ref: RepoRef) -> bool:
        """Move the local default branch to origin only if that is a fast-forward.

        Requires the default branch to be checked out in the repository root
        with a clean tracked tree. Diverged branches are left alone.
        """
        path = repo_ref.path
        branch = repo_ref.default_branch
        timeout = self.settings.metadata_timeout

        head = await run_git_command(
            ["symbolic-ref", "--quiet", "--short", "HEAD"],
            cwd=path, check=False, timeout=timeout,
        )
        if head.returncode != 0 or head.stdout.strip() != branch:
            logger.debug(f"{path}: '{branch}' is not checked out, leaving it as is")
            return False

        status = await run_git_command(
            ["status", "--porcelain", "--untracked-files=no"],
            cwd=path, check=False, timeout=timeout,
        )
        if status.returncode != 0 or status.stdout.strip():
            logger.info(f"{path}: working tree has changes, not updating '{branch}'")
            return False

        ancestor = await run_git_command(
            ["merge-base", "--is-ancestor", f"refs/heads/{branch}", repo_ref.default_base],
            cwd=path, check=False, timeout=timeout,
        )
        if ancestor.returncode != 0:
            logger.warning(
                f"{path}: local '{branch}' has diverged from {repo_ref.default_base}, not updating"
            )
            return False

        try:
            await run_git_command(
                ["reset", "--hard", repo_ref.default_base], cwd=path, timeout=timeout
            )
        except SubprocessError as e:
            raise GitError.from_subprocess(e, repo_path=path) from e
        logger.debug(f"{path}: fast-forwarded '{branch}' to {repo_ref.default_base}")
        return True
