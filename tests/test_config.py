"""Tests for configuration loading."""

from __future__ import annotations

import copy

import pytest
import yaml

from atv_bridge.config import DEFAULT_CONFIG, deep_merge, load_config, validate_config


def test_deep_merge() -> None:
    """Test nested sections merge key by key."""
    merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}


def test_load_config_file(tmp_path) -> None:
    """Test a YAML file overrides defaults and records its path."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"server": {"port": 8080}, "timing": {"poll_interval": 5}}))

    config = load_config(str(path), environ={})

    assert config["server"]["port"] == 8080
    assert config["server"]["host"] == DEFAULT_CONFIG["server"]["host"]
    assert config["timing"]["poll_interval"] == 5
    assert config["_config_path"] == str(path)


def test_load_config_does_not_mutate_defaults(tmp_path) -> None:
    """Test loading leaves DEFAULT_CONFIG untouched."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"timing": {"poll_interval": 2}}))
    before = copy.deepcopy(DEFAULT_CONFIG)

    load_config(str(path), environ={"BRIDGE_PORT": "9000"})

    assert DEFAULT_CONFIG == before


def test_load_config_missing_file(tmp_path) -> None:
    """Test an explicit path that does not exist is an error."""
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"), environ={})


def test_env_overrides(tmp_path) -> None:
    """Test environment variables win over the file."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"server": {"port": 8080}}))

    config = load_config(
        str(path),
        environ={"BRIDGE_PORT": "9000", "DATA_DIR": "/data", "MQTT_ENABLED": "true", "LOG_LEVEL": "DEBUG"},
    )

    assert config["server"]["port"] == 9000
    assert config["storage"]["data_dir"] == "/data"
    assert config["mqtt"]["enabled"] is True
    assert config["options"]["log_level"] == "DEBUG"


def test_env_override_bad_type(tmp_path) -> None:
    """Test a non-numeric port in the environment is rejected."""
    path = tmp_path / "config.yaml"
    path.write_text("{}")
    with pytest.raises(ValueError):
        load_config(str(path), environ={"BRIDGE_PORT": "eighty"})


def test_validate_defaults() -> None:
    """Test the default configuration is valid."""
    assert validate_config(copy.deepcopy(DEFAULT_CONFIG)) == []


def test_validate_errors() -> None:
    """Test invalid values are reported."""
    config = deep_merge(DEFAULT_CONFIG, {
        "server": {"port": 70000},
        "timing": {"poll_interval": 0, "key_delay": -1},
        "mqtt": {"enabled": True, "host": ""},
    })

    errors = validate_config(config)

    assert any("server.port" in e for e in errors)
    assert any("timing.poll_interval" in e for e in errors)
    assert any("timing.key_delay" in e for e in errors)
    assert any("mqtt.host" in e for e in errors)
