"""Configuration loading and validation."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors.exceptions import ValidationError
from ..utils.validators import validate_project_key

logger = logging.getLogger(__name__)

# Searched in order when no explicit config path is given
DEFAULT_CONFIG_PATHS = (
    Path("~/.space-config.yaml"),
    Path("config.yaml"),
)


class GlobalSettings(BaseModel):
    """Where source repositories and workspaces live."""
    src_dir: Path = Field(default=Path("~/src"))
    workspace_base: str = "workspaces"

    @field_validator('src_dir')
    @classmethod
    def expand_src_dir(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @field_validator('workspace_base')
    @classmethod
    def validate_workspace_base(cls, v: str) -> str:
        if not v or '..' in Path(v).parts or Path(v).is_absolute():
            raise ValueError(f"workspace_base must be a relative directory name, got '{v}'")
        return v


class ProjectConfig(BaseModel):
    """A project: one primary repository and an optional sample repository."""
    key: str
    name: Optional[str] = None
    repo: str  # URL, absolute path, or path relative to src_dir
    sample_repo: Optional[str] = None
    default_branch: Optional[str] = None  # Detected from origin/HEAD when unset
    sample_default_branch: Optional[str] = None

    @field_validator('key')
    @classmethod
    def validate_key(cls, v: str) -> str:
        try:
            return validate_project_key(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator('repo')
    @classmethod
    def validate_repo(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("repo cannot be empty")
        return v.strip()

    @property
    def display_name(self) -> str:
        return self.name or self.key


class EngineSettings(BaseModel):
    """Tuning knobs for the orchestration engine."""
    concurrency_limit: int = 4
    sequential: bool = False  # Forces one git operation at a time

    # Subprocess timeouts (seconds)
    metadata_timeout: float = 30
    network_timeout: float = 120  # fetch, ls-remote
    clone_timeout: float = 600

    # Delays between network retries; two entries means three attempts total
    retry_backoff: List[float] = Field(default_factory=lambda: [0.25, 1.0])

    ensure_freshness: bool = True
    auto_update_default_branch: bool = True
    auto_clone: bool = False
    derived_branch_suffix: str = "-samples"
    delete_created_branches: bool = True

    @field_validator('concurrency_limit')
    @classmethod
    def validate_concurrency_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {v}")
        return v

    @field_validator('retry_backoff')
    @classmethod
    def validate_retry_backoff(cls, v: List[float]) -> List[float]:
        if any(delay < 0 for delay in v):
            raise ValueError("retry_backoff delays must be non-negative")
        return v

    @field_validator('derived_branch_suffix')
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if not v or '/' in v or '\\' in v:
            raise ValueError("derived_branch_suffix must be non-empty and contain no path separators")
        return v

    @property
    def effective_concurrency(self) -> int:
        return 1 if self.sequential else self.concurrency_limit


class SpaceConfig(BaseSettings):
    """Main configuration."""
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    projects: Dict[str, ProjectConfig] = Field(default_factory=dict)
    engine: EngineSettings = Field(default_factory=EngineSettings)

    model_config = SettingsConfigDict(
        env_prefix="SPACE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator('projects', mode='before')
    @classmethod
    def fill_project_keys(cls, v: Any) -> Any:
        """The mapping key doubles as the project key."""
        if not isinstance(v, dict):
            return v
        filled = {}
        for key, project in v.items():
            if isinstance(project, dict):
                project = {"key": key, **project}
            filled[key] = project
        return filled

    def get_project(self, key: str) -> ProjectConfig:
        """Look up a project, raising ValidationError for unknown keys."""
        key = validate_project_key(key)
        try:
            return self.projects[key]
        except KeyError:
            available = ", ".join(sorted(self.projects)) or "none configured"
            raise ValidationError(f"Unknown project '{key}' (available: {available})")


@dataclass
class ProgressCallbacks:
    """Side-channel notifications for the UI layer."""
    on_step_start: Optional[Callable[[str], None]] = None
    on_step_complete: Optional[Callable[[str], None]] = None


@dataclass
class EngineContext:
    """Everything one CLI invocation hands to the engine.

    Built once per invocation and passed explicitly; the engine keeps no
    module-level state.
    """
    config: SpaceConfig
    progress: ProgressCallbacks = field(default_factory=ProgressCallbacks)

    @property
    def settings(self) -> EngineSettings:
        return self.config.engine

    @property
    def global_settings(self) -> GlobalSettings:
        return self.config.global_settings


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "projects.web.repo")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data


def _find_config_file() -> Optional[Path]:
    for candidate in DEFAULT_CONFIG_PATHS:
        candidate = candidate.expanduser()
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Optional[Path] = None) -> SpaceConfig:
    """Load configuration from YAML.

    Reads the file fresh on every call. When ``config_path`` is None the
    default locations are searched; with no file at all, defaults are used.

    Raises:
        ValidationError: If the file is unreadable YAML or fails validation
    """
    if config_path is None:
        config_path = _find_config_file()
        if config_path is None:
            logger.warning("No config file found. Using default configuration.")
            return SpaceConfig()
    elif not config_path.exists():
        raise ValidationError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Config root must be a mapping: {config_path}")

    data = _expand_env_vars(data)
    # `global` is a keyword, so the YAML section maps onto global_settings
    if "global" in data:
        data["global_settings"] = data.pop("global")

    try:
        config = SpaceConfig(**data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid configuration in {config_path}: {e}") from e

    logger.debug(f"Loaded {len(config.projects)} project(s) from {config_path}")
    return config
