"""Known git stderr signatures.

Every substring match against git's stderr lives here so the rest of the
engine branches on named predicates. Subprocesses run with ``LC_ALL=C``, so
these English messages are stable.
"""

import re
from pathlib import Path
from typing import Optional, Union

from ..errors.exceptions import GitError, GitErrorKind
from ..utils.subprocess_utils import SubprocessError

# The target branch or path is held by another (possibly stale) worktree
WORKTREE_CONFLICT_SIGNATURES = (
    "is already checked out at",
    "is already used by worktree at",
    "is a missing but locked worktree",
    "is a missing but already registered worktree",
    "already registered",
    "is a missing linked working tree",
    "already locked",
)

# `git worktree add` refusing a target directory; only this form of
# "already exists" names a path
_PATH_EXISTS = re.compile(r"fatal: '[^']+' already exists")

# Another process created the branch after it was resolved as absent
_BRANCH_EXISTS = re.compile(r"a branch named '([^']+)' already exists")

# Transport-level failures worth retrying
NETWORK_FAILURE_SIGNATURES = (
    "Could not resolve host",
    "unable to access",
    "Connection refused",
    "Connection timed out",
    "Connection reset by peer",
    "Could not read from remote repository",
    "early EOF",
    "The remote end hung up",
    "Operation timed out",
    "Network is unreachable",
)

_CONFLICT_PATH_PATTERNS = (
    re.compile(r"already checked out at '([^']+)'"),
    re.compile(r"already used by worktree at '([^']+)'"),
    re.compile(r"fatal: '([^']+)' already exists"),
    re.compile(r"'([^']+)' is a missing but (?:locked|already registered) worktree"),
)


def is_worktree_conflict(stderr: str) -> bool:
    """True when stderr shows a branch or path already held by a worktree."""
    if not stderr:
        return False
    if _PATH_EXISTS.search(stderr):
        return True
    return any(signature in stderr for signature in WORKTREE_CONFLICT_SIGNATURES)


def is_branch_already_exists(stderr: str) -> bool:
    """True when ``worktree add -b`` found the branch already created."""
    return bool(stderr) and _BRANCH_EXISTS.search(stderr) is not None


def is_network_failure(error: Union[SubprocessError, GitError, str]) -> bool:
    """True for timeouts and transport errors; these are retried."""
    if isinstance(error, SubprocessError):
        if error.timed_out:
            return True
        stderr = error.stderr
    elif isinstance(error, GitError):
        if error.kind in (GitErrorKind.TIMEOUT, GitErrorKind.NETWORK_FAILURE):
            return True
        stderr = error.stderr
    else:
        stderr = error

    if not stderr:
        return False
    return any(signature in stderr for signature in NETWORK_FAILURE_SIGNATURES)


def parse_conflict_path(stderr: str) -> Optional[Path]:
    """Extract the conflicting worktree path from git's error, if present."""
    for pattern in _CONFLICT_PATH_PATTERNS:
        match = pattern.search(stderr or "")
        if match:
            return Path(match.group(1))
    return None
