"""Shared fixtures: real git repositories with a bare origin, built in tmp_path."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from branchspace.core.config import EngineContext, EngineSettings, GlobalSettings, ProjectConfig, SpaceConfig
from branchspace.utils.rich_logging import ROOT_LOGGER_NAME

GIT_TEST_ENV = {
    **os.environ,
    "LC_ALL": "C",
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_CONFIG_NOSYSTEM": "1",
}

COMMIT_IDENTITY = [
    "-c", "user.name=Test User",
    "-c", "user.email=test@example.com",
    "-c", "commit.gpgsign=false",
]


def run_git(*args, cwd: Path) -> str:
    """Run git synchronously for fixture setup and assertions."""
    result = subprocess.run(
        ["git", *COMMIT_IDENTITY, *args],
        cwd=cwd,
        env=GIT_TEST_ENV,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@dataclass
class RepoFixture:
    """A bare origin, a seed clone used to publish commits, and the working clone."""
    origin: Path
    seed: Path
    clone: Path

    def commit(self, repo: Path, filename: str, content: str = "content\n") -> str:
        (repo / filename).write_text(content)
        run_git("add", filename, cwd=repo)
        run_git("commit", "-m", f"Add {filename}", cwd=repo)
        return run_git("rev-parse", "HEAD", cwd=repo)

    def publish_branch(self, branch: str) -> str:
        """Create ``branch`` with one commit on origin only."""
        run_git("checkout", "-b", branch, "main", cwd=self.seed)
        sha = self.commit(self.seed, f"{branch.replace('/', '_')}.txt")
        run_git("push", "origin", branch, cwd=self.seed)
        run_git("checkout", "main", cwd=self.seed)
        return sha

    def advance_main(self, filename: str = "later.txt") -> str:
        """Push a new commit to origin/main from the seed."""
        sha = self.commit(self.seed, filename)
        run_git("push", "origin", "main", cwd=self.seed)
        return sha


def make_repo(root: Path, name: str, src_dir: Path) -> RepoFixture:
    origin = root / "remotes" / f"{name}.git"
    origin.mkdir(parents=True)
    run_git("init", "--bare", cwd=origin)
    run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=origin)

    seed = root / "seeds" / name
    seed.mkdir(parents=True)
    run_git("init", cwd=seed)
    run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
    fixture = RepoFixture(origin=origin, seed=seed, clone=src_dir / name)
    fixture.commit(seed, "README.md", f"# {name}\n")
    run_git("remote", "add", "origin", str(origin), cwd=seed)
    run_git("push", "origin", "main", cwd=seed)

    src_dir.mkdir(parents=True, exist_ok=True)
    run_git("clone", str(origin), str(fixture.clone), cwd=src_dir)
    return fixture


@pytest.fixture
def git():
    return run_git


@pytest.fixture
def src_dir(tmp_path):
    return tmp_path / "src"


@pytest.fixture
def app_repo(tmp_path, src_dir):
    return make_repo(tmp_path, "app", src_dir)


@pytest.fixture
def samples_repo(tmp_path, src_dir):
    return make_repo(tmp_path, "app-samples", src_dir)


@pytest.fixture
def engine_settings():
    # No sleeping between retries in tests
    return EngineSettings(retry_backoff=[0, 0], metadata_timeout=30, network_timeout=60)


@pytest.fixture
def space_config(src_dir, engine_settings):
    return SpaceConfig(
        global_settings=GlobalSettings(src_dir=src_dir),
        projects={
            "web": ProjectConfig(key="web", name="Web App", repo="app", sample_repo="app-samples"),
            "solo": ProjectConfig(key="solo", repo="app"),
        },
        engine=engine_settings,
    )


@pytest.fixture
def engine_context(space_config):
    return EngineContext(config=space_config)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handlers and propagate=False left behind by setup_rich_logging."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.propagate = True
    root.setLevel(logging.NOTSET)
