"""Tests for toolgate configuration loading."""

from pathlib import Path

import pytest
import yaml

from toolgate.config import (
    ToolgateConfig,
    get_config_path,
    get_toolgate_home,
    load_config,
    save_config,
)
from toolgate.errors import ConfigError


def test_get_toolgate_home_default(monkeypatch):
    monkeypatch.delenv("TOOLGATE_HOME", raising=False)
    assert get_toolgate_home() == Path.home() / ".toolgate"


def test_get_toolgate_home_env_var(isolated_home):
    assert get_toolgate_home() == isolated_home
    assert get_config_path() == isolated_home / "config.yaml"


def test_load_config_missing_file_gives_defaults():
    cfg = load_config()
    assert cfg == ToolgateConfig()
    assert cfg.tracking_ref == "origin/main"


def test_load_config_valid(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({
        "workspace_root": "/srv/work",
        "target_branch": "develop",
        "max_diff_lines": 500,
        "log_level": "debug",
    }))

    cfg = load_config(config_path)
    assert cfg.workspace_root == "/srv/work"
    assert cfg.tracking_ref == "origin/develop"
    assert cfg.max_diff_lines == 500
    assert cfg.log_level == "DEBUG"
    # Untouched fields keep defaults
    assert cfg.agent_uid == 1000


def test_load_config_empty_file(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("")
    assert load_config(config_path) == ToolgateConfig()


def test_load_config_unknown_key(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"workspace_rot": "/x"}))
    with pytest.raises(ConfigError, match="Unknown config key: workspace_rot"):
        load_config(config_path)


def test_load_config_wrong_type(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"max_diff_lines": "many"}))
    with pytest.raises(ConfigError, match="max_diff_lines must be an integer"):
        load_config(config_path)


def test_load_config_bool_is_not_int(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"agent_uid": True}))
    with pytest.raises(ConfigError):
        load_config(config_path)


def test_load_config_invalid_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("workspace_root: [unclosed")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(config_path)


def test_load_config_not_a_mapping(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config(config_path)


@pytest.mark.parametrize("data, match", [
    ({"workspace_root": "relative/path"}, "must be absolute"),
    ({"log_format": "xml"}, "log_format"),
    ({"max_read_lines": 0}, "max_read_lines must be positive"),
    ({"log_level": "chatty"}, "log_level"),
])
def test_validation_errors(data, match):
    with pytest.raises(ConfigError, match=match):
        ToolgateConfig.from_dict(data)


def test_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"workspace_root": "/from/file", "target_branch": "main"}))
    monkeypatch.setenv("TOOLGATE_WORKSPACE_ROOT", "/from/env")
    monkeypatch.setenv("TOOLGATE_TARGET_BRANCH", "trunk")

    cfg = load_config(config_path)
    assert cfg.workspace_root == "/from/env"
    assert cfg.target_branch == "trunk"


def test_save_and_reload(isolated_home):
    cfg = ToolgateConfig(workspace_root="/data/ws", max_list_files=50)
    path = save_config(cfg)

    assert path == isolated_home / "config.yaml"
    assert path.exists()
    assert load_config() == cfg
