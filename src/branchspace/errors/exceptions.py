"""Exception taxonomy for workspace orchestration."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from ..utils.subprocess_utils import SubprocessError


class WorkspaceError(Exception):
    """Base class for every error the engine raises."""

    code = "WORKSPACE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkspaceError):
    """Malformed branch name, project key, or configuration."""

    code = "VALIDATION_ERROR"


class FileSystemErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    NOT_A_DIRECTORY = "not_a_directory"


class FileSystemError(WorkspaceError):
    """A required path is missing or unusable."""

    code = "FILESYSTEM_ERROR"

    def __init__(self, message: str, kind: FileSystemErrorKind, path: Path):
        super().__init__(message)
        self.kind = kind
        self.path = Path(path)


class GitErrorKind(str, Enum):
    COMMAND_FAILED = "command_failed"
    NOT_A_REPO = "not_a_repo"
    NO_REMOTE = "no_remote"
    NETWORK_FAILURE = "network_failure"
    TIMEOUT = "timeout"


class GitError(WorkspaceError):
    """A git subprocess failed."""

    code = "GIT_ERROR"

    def __init__(
        self,
        message: str,
        kind: GitErrorKind = GitErrorKind.COMMAND_FAILED,
        *,
        repo_path: Optional[Path] = None,
        args: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.repo_path = Path(repo_path) if repo_path else None
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = stderr

    @classmethod
    def from_subprocess(
        cls,
        error: "SubprocessError",
        *,
        repo_path: Optional[Path] = None,
        kind: Optional[GitErrorKind] = None,
        message: Optional[str] = None,
    ) -> "GitError":
        """Wrap a SubprocessError, keeping exit code and stderr."""
        if kind is None:
            kind = GitErrorKind.TIMEOUT if error.timed_out else GitErrorKind.COMMAND_FAILED
        stderr = (error.stderr or "").strip()
        if message is None:
            message = f"`{error.cmd}` failed"
            if error.timed_out:
                message = f"`{error.cmd}` timed out"
            elif stderr:
                message = f"{message}: {stderr.splitlines()[-1]}"
        return cls(
            message,
            kind,
            repo_path=repo_path,
            args=error.cmd.split(),
            returncode=error.returncode,
            stderr=stderr,
        )


class WorktreeConflictError(GitError):
    """The target branch or path is already held by another worktree."""

    code = "WORKTREE_CONFLICT"

    def __init__(
        self,
        message: str,
        *,
        conflicting_path: Path,
        branch: str,
        repo_path: Optional[Path] = None,
        stderr: str = "",
    ):
        super().__init__(
            message, GitErrorKind.COMMAND_FAILED, repo_path=repo_path, stderr=stderr
        )
        self.conflicting_path = Path(conflicting_path)
        self.branch = branch


class OperationTimeoutError(GitError):
    """A scheduled operation exceeded its deadline."""

    code = "OPERATION_TIMEOUT"

    def __init__(self, operation_id: str, timeout: float):
        super().__init__(
            f"Operation '{operation_id}' timed out after {timeout}s", GitErrorKind.TIMEOUT
        )
        self.operation_id = operation_id
        self.timeout = timeout


@dataclass
class StepFailure:
    """One failed step of a setup attempt."""
    repo_key: str
    step: str
    error: BaseException


class WorkspaceSetupError(WorkspaceError):
    """Aggregate of every failure seen during a setup attempt."""

    code = "WORKSPACE_SETUP_ERROR"
    summary = "Workspace setup failed"

    def __init__(self, failures: List[StepFailure], state: Optional[str] = None):
        self.failures = list(failures)
        self.state = state
        super().__init__(self._render())

    def _render(self) -> str:
        # Imported lazily to keep the taxonomy free of presentation code
        from .translator import ErrorTranslator

        translator = ErrorTranslator()
        lines = [f"{self.summary} ({len(self.failures)} problem(s)):"]
        for failure in self.failures:
            friendly = translator.translate(failure.error)
            lines.append(f"  [{failure.repo_key}] {failure.step}: {failure.error}")
            if friendly.actions:
                lines.append(f"      -> {friendly.actions[0]}")
        return "\n".join(lines)

    @property
    def conflicts(self) -> List[WorktreeConflictError]:
        return [f.error for f in self.failures if isinstance(f.error, WorktreeConflictError)]


class WorkspaceCleanupError(WorkspaceSetupError):
    """Aggregate of every failure seen while tearing a workspace down."""

    code = "WORKSPACE_CLEANUP_ERROR"
    summary = "Workspace cleanup failed"
