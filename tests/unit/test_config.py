"""Tests for configuration loading."""

from pathlib import Path

import pytest

from branchspace.core.config import (
    EngineSettings,
    GlobalSettings,
    ProjectConfig,
    SpaceConfig,
    load_config,
)
from branchspace.errors.exceptions import ValidationError


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "space.yaml"
    path.write_text(
        "global:\n"
        "  src_dir: /work/src\n"
        "  workspace_base: ws\n"
        "projects:\n"
        "  web:\n"
        "    name: Web App\n"
        "    repo: https://github.com/acme/web.git\n"
        "    sample_repo: web-samples\n"
        "    default_branch: develop\n"
        "engine:\n"
        "  concurrency_limit: 2\n"
        "  auto_clone: true\n"
    )
    return path


class TestLoadConfig:

    def test_loads_yaml(self, config_file):
        config = load_config(config_file)

        assert config.global_settings.src_dir == Path("/work/src")
        assert config.global_settings.workspace_base == "ws"
        project = config.get_project("web")
        assert project.key == "web"
        assert project.display_name == "Web App"
        assert project.default_branch == "develop"
        assert config.engine.concurrency_limit == 2
        assert config.engine.auto_clone is True

    def test_reads_fresh_every_call(self, config_file):
        first = load_config(config_file)
        config_file.write_text(config_file.read_text().replace("concurrency_limit: 2", "concurrency_limit: 3"))

        second = load_config(config_file)

        assert first.engine.concurrency_limit == 2
        assert second.engine.concurrency_limit == 3

    def test_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WEB_REPO", "/repos/web")
        path = tmp_path / "c.yaml"
        path.write_text("projects:\n  web:\n    repo: ${WEB_REPO}\n")

        assert load_config(path).get_project("web").repo == "/repos/web"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("projects: [unclosed\n")

        with pytest.raises(ValidationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValidationError):
            load_config(path)

    def test_invalid_values_become_validation_error(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("engine:\n  concurrency_limit: 0\n")

        with pytest.raises(ValidationError, match="Invalid configuration"):
            load_config(path)

    def test_defaults_when_no_file_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        config = load_config()

        assert config.projects == {}
        assert config.engine.concurrency_limit == 4

    def test_env_overrides_engine_settings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPACE_ENGINE__SEQUENTIAL", "true")
        path = tmp_path / "c.yaml"
        path.write_text("projects: {}\n")

        config = load_config(path)

        assert config.engine.sequential is True
        assert config.engine.effective_concurrency == 1


class TestModels:

    def test_unknown_project(self):
        config = SpaceConfig(projects={"web": {"repo": "web"}})

        with pytest.raises(ValidationError, match="Unknown project 'api'"):
            config.get_project("api")

    def test_project_key_filled_from_mapping(self):
        config = SpaceConfig(projects={"web": {"repo": "web"}})
        assert config.projects["web"].key == "web"

    def test_invalid_project_key(self):
        with pytest.raises(ValueError):
            ProjectConfig(key="bad/key", repo="x")

    def test_src_dir_expands_home(self):
        assert "~" not in str(GlobalSettings(src_dir="~/code").src_dir)

    def test_workspace_base_must_be_relative(self):
        with pytest.raises(ValueError):
            GlobalSettings(workspace_base="/abs")
        with pytest.raises(ValueError):
            GlobalSettings(workspace_base="../escape")

    def test_engine_defaults(self):
        settings = EngineSettings()
        assert settings.concurrency_limit == 4
        assert settings.retry_backoff == [0.25, 1.0]
        assert settings.metadata_timeout == 30
        assert settings.network_timeout == 120
        assert settings.clone_timeout == 600
        assert settings.derived_branch_suffix == "-samples"

    def test_suffix_cannot_contain_separator(self):
        with pytest.raises(ValueError):
            EngineSettings(derived_branch_suffix="-a/b")
