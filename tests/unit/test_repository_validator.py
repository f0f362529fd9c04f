"""Tests for RepositoryValidator against real git repositories."""

from unittest.mock import AsyncMock, patch

import pytest

from branchspace.core.config import EngineSettings
from branchspace.errors.exceptions import (
    FileSystemError,
    FileSystemErrorKind,
    GitError,
    GitErrorKind,
)
from branchspace.utils.subprocess_utils import SubprocessError
from branchspace.workspace.repository_validator import RepositoryValidator


@pytest.fixture
def validator(engine_settings):
    return RepositoryValidator(engine_settings)


class TestValidate:

    @pytest.mark.asyncio
    async def test_valid_clone(self, validator, app_repo):
        repo_ref = await validator.validate(app_repo.clone)

        assert repo_ref.path == app_repo.clone
        assert repo_ref.remote_url == str(app_repo.origin)
        assert repo_ref.default_branch == "main"
        assert repo_ref.default_base == "origin/main"

    @pytest.mark.asyncio
    async def test_configured_default_branch_wins(self, validator, app_repo):
        repo_ref = await validator.validate(app_repo.clone, default_branch="develop")
        assert repo_ref.default_branch == "develop"

    @pytest.mark.asyncio
    async def test_missing_path(self, validator, tmp_path):
        with pytest.raises(FileSystemError) as exc_info:
            await validator.validate(tmp_path / "nope")
        assert exc_info.value.kind == FileSystemErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_file_instead_of_directory(self, validator, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(FileSystemError) as exc_info:
            await validator.validate(target)
        assert exc_info.value.kind == FileSystemErrorKind.NOT_A_DIRECTORY

    @pytest.mark.asyncio
    async def test_not_a_repo(self, validator, tmp_path):
        with pytest.raises(GitError) as exc_info:
            await validator.validate(tmp_path)
        assert exc_info.value.kind == GitErrorKind.NOT_A_REPO

    @pytest.mark.asyncio
    async def test_no_origin(self, validator, tmp_path, git):
        repo = tmp_path / "local-only"
        repo.mkdir()
        git("init", cwd=repo)

        with pytest.raises(GitError) as exc_info:
            await validator.validate(repo)
        assert exc_info.value.kind == GitErrorKind.NO_REMOTE


class TestDetectDefaultBranch:

    @pytest.mark.asyncio
    async def test_from_origin_head(self, validator, app_repo):
        assert await validator.detect_default_branch(app_repo.clone) == "main"

    @pytest.mark.asyncio
    async def test_falls_back_to_origin_main(self, validator, app_repo, git):
        git("remote", "set-head", "origin", "--delete", cwd=app_repo.clone)
        assert await validator.detect_default_branch(app_repo.clone) == "main"

    @pytest.mark.asyncio
    async def test_falls_back_to_master(self, validator, tmp_path, git):
        repo = tmp_path / "old"
        repo.mkdir()
        git("init", cwd=repo)
        git("symbolic-ref", "HEAD", "refs/heads/master", cwd=repo)
        (repo / "f").write_text("x")
        git("add", "f", cwd=repo)
        git("commit", "-m", "init", cwd=repo)

        assert await validator.detect_default_branch(repo) == "master"

    @pytest.mark.asyncio
    async def test_last_resort_is_main(self, validator, tmp_path, git):
        repo = tmp_path / "empty"
        repo.mkdir()
        git("init", cwd=repo)
        git("symbolic-ref", "HEAD", "refs/heads/trunk", cwd=repo)

        assert await validator.detect_default_branch(repo) == "main"


class TestEnsureFresh:

    @pytest.mark.asyncio
    async def test_fetches_and_fast_forwards_default_branch(self, validator, app_repo, git):
        new_sha = app_repo.advance_main()
        repo_ref = await validator.validate(app_repo.clone)

        await validator.ensure_fresh(repo_ref)

        assert git("rev-parse", "origin/main", cwd=app_repo.clone) == new_sha
        assert git("rev-parse", "main", cwd=app_repo.clone) == new_sha

    @pytest.mark.asyncio
    async def test_dirty_tree_is_not_reset(self, validator, app_repo, git):
        old_sha = git("rev-parse", "main", cwd=app_repo.clone)
        app_repo.advance_main()
        (app_repo.clone / "README.md").write_text("local edits\n")
        repo_ref = await validator.validate(app_repo.clone)

        await validator.ensure_fresh(repo_ref)

        assert git("rev-parse", "main", cwd=app_repo.clone) == old_sha
        assert (app_repo.clone / "README.md").read_text() == "local edits\n"

    @pytest.mark.asyncio
    async def test_diverged_branch_is_left_alone(self, validator, app_repo, git):
        app_repo.advance_main()
        local_sha = app_repo.commit(app_repo.clone, "local.txt")
        repo_ref = await validator.validate(app_repo.clone)

        await validator.ensure_fresh(repo_ref)

        assert git("rev-parse", "main", cwd=app_repo.clone) == local_sha

    @pytest.mark.asyncio
    async def test_other_branch_checked_out_is_untouched(self, validator, app_repo, git):
        old_sha = git("rev-parse", "main", cwd=app_repo.clone)
        git("checkout", "-b", "work", cwd=app_repo.clone)
        new_sha = app_repo.advance_main()
        repo_ref = await validator.validate(app_repo.clone)

        await validator.ensure_fresh(repo_ref)

        assert git("rev-parse", "main", cwd=app_repo.clone) == old_sha
        assert git("rev-parse", "origin/main", cwd=app_repo.clone) == new_sha

    @pytest.mark.asyncio
    async def test_auto_update_disabled(self, app_repo, git):
        old_sha = git("rev-parse", "main", cwd=app_repo.clone)
        app_repo.advance_main()
        validator = RepositoryValidator(EngineSettings(auto_update_default_branch=False))
        repo_ref = await validator.validate(app_repo.clone)

        await validator.ensure_fresh(repo_ref)

        assert git("rev-parse", "main", cwd=app_repo.clone) == old_sha

    @pytest.mark.asyncio
    async def test_missing_default_branch_on_origin(self, validator, app_repo):
        repo_ref = await validator.validate(app_repo.clone, default_branch="does-not-exist")

        with pytest.raises(GitError) as exc_info:
            await validator.ensure_fresh(repo_ref)
        assert exc_info.value.kind == GitErrorKind.COMMAND_FAILED

    @pytest.mark.asyncio
    async def test_network_failure_after_retries(self, validator, app_repo):
        repo_ref = await validator.validate(app_repo.clone)
        failure = SubprocessError(
            cmd="git fetch origin main", returncode=128,
            stderr="fatal: unable to access 'https://x/': Could not resolve host: x",
        )
        mock = AsyncMock(side_effect=failure)

        with patch("branchspace.utils.subprocess_utils.run_git_command", mock):
            with pytest.raises(GitError) as exc_info:
                await validator.ensure_fresh(repo_ref)

        assert exc_info.value.kind == GitErrorKind.NETWORK_FAILURE
        assert mock.await_count == 3


class TestEnsureCloned:

    @pytest.mark.asyncio
    async def test_clones_missing_repository(self, validator, app_repo, tmp_path):
        target = tmp_path / "elsewhere" / "app"

        cloned = await validator.ensure_cloned(str(app_repo.origin), target)

        assert cloned is True
        assert (target / ".git").exists()

    @pytest.mark.asyncio
    async def test_existing_path_is_left_alone(self, validator, app_repo):
        assert await validator.ensure_cloned(str(app_repo.origin), app_repo.clone) is False

    @pytest.mark.asyncio
    async def test_bad_url_raises_git_error(self, validator, tmp_path):
        with pytest.raises(GitError):
            await validator.ensure_cloned(str(tmp_path / "no-such.git"), tmp_path / "dest")
