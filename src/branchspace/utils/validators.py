"""Validation utilities for branch names, project keys, and workspace names."""

import re

from ..errors.exceptions import ValidationError

MAX_BRANCH_NAME_LENGTH = 100
MAX_PROJECT_KEY_LENGTH = 50
MAX_WORKSPACE_NAME_LENGTH = 50


def validate_branch_name(branch_name: str) -> str:
    """
    Validate git branch name before it reaches any git argument vector.

    Args:
        branch_name: Branch name to validate

    Returns:
        Validated branch name (surrounding whitespace stripped)

    Raises:
        ValidationError: If branch name is invalid
    """
    if not branch_name or not branch_name.strip():
        raise ValidationError("Branch name cannot be empty")

    branch_name = branch_name.strip()

    # Strict whitelist
    if not re.match(r'^[a-zA-Z0-9/_.-]+$', branch_name):
        raise ValidationError(f"Invalid branch name: {branch_name}")

    if branch_name.startswith(('-', '.', '/')) or branch_name.endswith('/'):
        raise ValidationError(
            f"Branch name cannot start with '-', '.' or '/' or end with '/': {branch_name}"
        )

    if '..' in branch_name or '//' in branch_name:
        raise ValidationError(f"Branch name contains invalid sequence: {branch_name}")

    if branch_name.endswith('.lock'):
        raise ValidationError("Branch name cannot end with .lock")

    if len(branch_name) > MAX_BRANCH_NAME_LENGTH:
        raise ValidationError(
            f"Branch name too long (max {MAX_BRANCH_NAME_LENGTH} characters)"
        )

    return branch_name


def validate_project_key(key: str) -> str:
    """Validate a project key used as a directory name."""
    if not key or not key.strip():
        raise ValidationError("Project key cannot be empty")

    key = key.strip()
    if not re.match(r'^[a-zA-Z0-9_-]+$', key) or '..' in key:
        raise ValidationError(f"Project key contains invalid characters: {key}")

    if len(key) > MAX_PROJECT_KEY_LENGTH:
        raise ValidationError(
            f"Project key too long (max {MAX_PROJECT_KEY_LENGTH} characters)"
        )

    return key


def sanitize_workspace_name(branch_name: str) -> str:
    """
    Turn a branch name into the workspace directory name.

    ``feature/My Thing`` becomes ``feature_my-thing``.

    Raises:
        ValidationError: If nothing usable remains
    """
    if not branch_name or not branch_name.strip():
        raise ValidationError("Workspace name is required")

    name = branch_name.strip().replace('/', '_').lower()
    name = re.sub(r'\s+', '-', name)
    name = re.sub(r'[^a-z0-9_-]', '', name)

    if not name:
        raise ValidationError(f"Workspace name contains no valid characters: {branch_name}")

    return name[:MAX_WORKSPACE_NAME_LENGTH]
