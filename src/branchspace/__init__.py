"""branchspace: branch-anchored multi-repository workspaces built on git worktrees."""

__version__ = "0.1.0"
