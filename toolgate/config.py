"""
Configuration management for toolgate.

Loads config.yaml from the toolgate home directory ($TOOLGATE_HOME, default
~/.toolgate). A missing file means defaults; a present file is validated
key by key. A few environment variables override file values so containers
can be configured without mounting a file.
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from toolgate.errors import ConfigError


CONFIG_FILENAME = "config.yaml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "TOOLGATE_WORKSPACE_ROOT": "workspace_root",
    "TOOLGATE_TARGET_BRANCH": "target_branch",
    "TOOLGATE_LOG_LEVEL": "log_level",
}

LOG_FORMATS = ("pretty", "structured")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ToolgateConfig:
    """Settings shared by every tool instance."""

    workspace_root: str = "/workspace"
    remote: str = "origin"
    target_branch: str = "main"
    max_diff_lines: int = 10000
    max_read_bytes: int = 1024 * 1024
    max_read_lines: int = 2000
    max_line_length: int = 2000
    max_list_files: int = 1000
    build_timeout: int = 300
    git_timeout: int = 60
    container_check_timeout: int = 30
    agent_uid: int = 1000
    docker_cmd: str = "docker"
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None

    @property
    def tracking_ref(self) -> str:
        """Remote tracking ref of the target branch, e.g. origin/main."""
        return f"{self.remote}/{self.target_branch}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolgateConfig":
        """Build a config from a parsed YAML mapping, checking keys and types."""
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            values[key] = _coerce(key, value, getattr(cls, key))

        config = cls(**values)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        """Validate cross-field constraints."""
        if not os.path.isabs(self.workspace_root):
            raise ConfigError(f"workspace_root must be absolute: {self.workspace_root}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}, got {self.log_format!r}"
            )
        for name in ("max_diff_lines", "max_read_bytes", "max_read_lines",
                     "max_line_length", "max_list_files", "build_timeout",
                     "git_timeout", "container_check_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")


def _coerce(key: str, value: Any, default: Any) -> Any:
    if value is None or default is None:
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        return value
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return value
    return value


def get_toolgate_home() -> Path:
    """Return the toolgate home directory ($TOOLGATE_HOME or ~/.toolgate)."""
    env_home = os.environ.get("TOOLGATE_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".toolgate"


def get_config_path() -> Path:
    return get_toolgate_home() / CONFIG_FILENAME


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML configuration file."""
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")
    return data


def load_config(config_path: Optional[Path] = None) -> ToolgateConfig:
    """
    Load toolgate configuration.

    Args:
        config_path: Path to config file. Defaults to $TOOLGATE_HOME/config.yaml

    Returns:
        ToolgateConfig instance (defaults when the file does not exist)

    Raises:
        ConfigError: If the file is invalid
    """
    if config_path is None:
        config_path = get_config_path()

    data: Dict[str, Any] = {}
    if config_path.exists():
        data = _load_yaml(config_path)

    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[key] = value

    return ToolgateConfig.from_dict(data)


def save_config(config: ToolgateConfig, config_path: Optional[Path] = None) -> Path:
    """Write configuration to YAML, creating the home directory if needed."""
    if config_path is None:
        config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    return config_path
