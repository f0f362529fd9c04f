"""Translate engine errors to user-friendly messages with one remediation each."""

import re
from dataclasses import dataclass
from typing import List, Optional

from rich.markup import escape

from .exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    GitError,
    GitErrorKind,
    OperationTimeoutError,
    ValidationError,
    WorktreeConflictError,
)


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: BaseException
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    # Fallback patterns for errors that arrive without a typed kind
    ERROR_PATTERNS = {
        r"Could not resolve host|unable to access|Connection (refused|timed out)": {
            "title": "Cannot reach the remote",
            "explanation": "git could not talk to origin. This is usually a network or VPN issue.",
            "actions": ["Check network access to origin, then retry"],
        },
        r"Permission denied \(publickey\)|Authentication failed": {
            "title": "Git authentication failed",
            "explanation": "The remote rejected the credentials git offered.",
            "actions": ["Verify your SSH key or credential helper with `git fetch origin`"],
        },
        r"index\.lock|Unable to create .*\.lock": {
            "title": "Repository is locked",
            "explanation": "Another git process holds a lock on this repository.",
            "actions": ["Wait for other git commands to finish, or remove the stale .lock file"],
        },
    }

    def translate(self, error: BaseException) -> UserFriendlyError:
        if isinstance(error, WorktreeConflictError):
            return self._friendly(
                error,
                "Branch already checked out",
                f"'{error.branch}' or its target directory is held by the worktree at "
                f"{error.conflicting_path}.",
                [
                    f"branch {error.branch} already checked out at {error.conflicting_path}; "
                    f"remove it with `git worktree remove {error.conflicting_path}` or reuse it",
                ],
            )

        if isinstance(error, OperationTimeoutError):
            return self._friendly(
                error,
                "Operation timed out",
                str(error),
                ["Retry, or raise the timeouts in the engine settings for slow remotes"],
            )

        if isinstance(error, GitError):
            return self._translate_git(error)

        if isinstance(error, FileSystemError):
            if error.kind == FileSystemErrorKind.NOT_FOUND:
                action = f"Clone the repository to {error.path} or fix the project's repo setting"
            elif error.kind == FileSystemErrorKind.PERMISSION_DENIED:
                action = f"Fix permissions on {error.path}"
            else:
                action = f"Point the project at a directory instead of {error.path}"
            return self._friendly(error, "Filesystem problem", str(error), [action])

        if isinstance(error, ValidationError):
            return self._friendly(
                error, "Invalid input", str(error), ["Correct the value and run the command again"]
            )

        full_error = f"{type(error).__name__}: {error}"
        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=list(translation["actions"]),
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=["Re-run with --verbose and check the log output"],
            show_technical=True,
        )

    def _translate_git(self, error: GitError) -> UserFriendlyError:
        repo = error.repo_path or "the repository"

        if error.kind == GitErrorKind.NOT_A_REPO:
            return self._friendly(
                error, "Not a git repository", str(error),
                [f"Clone the project into {repo} or fix the project's repo setting"],
            )
        if error.kind == GitErrorKind.NO_REMOTE:
            return self._friendly(
                error, "No origin remote", str(error),
                [f"Add one with `git remote add origin <url>` in {repo}"],
            )
        if error.kind == GitErrorKind.NETWORK_FAILURE:
            return self._friendly(
                error, "Cannot reach the remote", str(error),
                [f"Check network access to origin for {repo}, then retry"],
            )
        if error.kind == GitErrorKind.TIMEOUT:
            return self._friendly(
                error, "Git command timed out", str(error),
                ["Retry, or raise the timeouts in the engine settings for slow remotes"],
            )

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, error.stderr or str(error), re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=list(translation["actions"]),
                )

        return self._friendly(
            error, "Git command failed", str(error),
            [f"run `git worktree prune` in {repo} and retry"],
            show_technical=True,
        )

    @staticmethod
    def _friendly(
        error: BaseException,
        title: str,
        explanation: str,
        actions: List[str],
        show_technical: bool = False,
    ) -> UserFriendlyError:
        return UserFriendlyError(
            original_error=error,
            title=title,
            explanation=explanation,
            actions=actions,
            show_technical=show_technical,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format a translated error with rich markup."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{escape(friendly_error.explanation)}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {escape(action)}\n"

        if friendly_error.show_technical:
            stderr: Optional[str] = getattr(friendly_error.original_error, "stderr", None)
            if stderr:
                output += f"\n[dim]Technical details:[/]\n[dim]{escape(stderr)}[/]"

        return output
