"""Filesystem layout of branch workspaces."""

from pathlib import Path
from typing import List, Optional

from ..core.config import GlobalSettings, ProjectConfig
from ..core.models import RepoLocation, WorkspacePaths
from ..errors.exceptions import ValidationError
from ..utils.validators import sanitize_workspace_name, validate_branch_name
from .branch_naming import DerivedBranchNamer


def is_remote_url(repo: str) -> bool:
    return repo.startswith(("http://", "https://", "git@", "ssh://", "git://"))


def resolve_repo_path(src_dir: Path, repo: str) -> Path:
    """
    Where a configured repository lives on disk.

    URLs map to ``<src_dir>/<name without .git>``, absolute paths are used as
    is, and anything else is taken relative to ``src_dir``.
    """
    if is_remote_url(repo):
        name = repo.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        if name.endswith(".git"):
            name = name[:-len(".git")]
        return Path(src_dir) / name

    path = Path(repo).expanduser()
    if path.is_absolute():
        return path
    return Path(src_dir) / path


def _worktree_dir_name(repo_path: Path) -> str:
    name = repo_path.name
    return name[:-len(".git")] if name.endswith(".git") else name


def project_base_dir(global_settings: GlobalSettings, project: ProjectConfig) -> Path:
    """``<src_dir>/<workspace_base>/<project_key>``, parent of every workspace of a project."""
    return Path(global_settings.src_dir).expanduser() / global_settings.workspace_base / project.key


def list_workspaces(global_settings: GlobalSettings, project: ProjectConfig) -> List[str]:
    """Names of the existing workspace directories of ``project``, sorted."""
    base_dir = project_base_dir(global_settings, project)
    if not base_dir.is_dir():
        return []
    return sorted(entry.name for entry in base_dir.iterdir() if entry.is_dir())


def resolve_workspace_paths(
    global_settings: GlobalSettings,
    project: ProjectConfig,
    branch_name: str,
    namer: Optional[DerivedBranchNamer] = None,
) -> WorkspacePaths:
    """
    Compute every path of the workspace for ``branch_name``.

    Layout: ``<src_dir>/<workspace_base>/<project_key>/<sanitized_branch>/<repo_name>``.

    Raises:
        ValidationError: Invalid branch name, or both repositories would share
            one worktree directory
    """
    branch_name = validate_branch_name(branch_name)
    namer = namer or DerivedBranchNamer()

    src_dir = Path(global_settings.src_dir).expanduser()
    base_dir = project_base_dir(global_settings, project)
    workspace_dir = base_dir / sanitize_workspace_name(branch_name)

    primary_repo_path = resolve_repo_path(src_dir, project.repo)
    primary_worktree_path = workspace_dir / _worktree_dir_name(primary_repo_path)

    if not project.sample_repo:
        return WorkspacePaths(
            src_dir=src_dir,
            base_dir=base_dir,
            workspace_dir=workspace_dir,
            primary_repo_path=primary_repo_path,
            primary_worktree_path=primary_worktree_path,
            branch_name=branch_name,
        )

    secondary_repo_path = resolve_repo_path(src_dir, project.sample_repo)
    secondary_worktree_path = workspace_dir / _worktree_dir_name(secondary_repo_path)
    if secondary_worktree_path == primary_worktree_path:
        raise ValidationError(
            f"Project '{project.key}': repo and sample_repo both map to "
            f"'{primary_worktree_path.name}' inside the workspace"
        )

    return WorkspacePaths(
        src_dir=src_dir,
        base_dir=base_dir,
        workspace_dir=workspace_dir,
        primary_repo_path=primary_repo_path,
        primary_worktree_path=primary_worktree_path,
        branch_name=branch_name,
        secondary_repo_path=secondary_repo_path,
        secondary_worktree_path=secondary_worktree_path,
        derived_branch_name=namer.derive(branch_name),
    )


def repo_locations(paths: WorkspacePaths, project: ProjectConfig) -> List[RepoLocation]:
    """RepoLocation per participating repository, primary first."""
    locations = [
        RepoLocation(
            repo_key="primary",
            repo_path=paths.primary_repo_path,
            worktree_path=paths.primary_worktree_path,
            remote_url=project.repo if is_remote_url(project.repo) else None,
            default_branch=project.default_branch,
        )
    ]
    if paths.has_secondary and project.sample_repo:
        locations.append(
            RepoLocation(
                repo_key="secondary",
                repo_path=paths.secondary_repo_path,
                worktree_path=paths.secondary_worktree_path,
                remote_url=project.sample_repo if is_remote_url(project.sample_repo) else None,
                default_branch=project.sample_default_branch,
            )
        )
    return locations
