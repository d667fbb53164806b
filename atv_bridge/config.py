"""Configuration management for atv-bridge."""

import copy
import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG = {
    "server": {
        "host": "0.0.0.0",
        "port": 3000,
    },
    "storage": {
        "data_dir": None,  # None keeps credentials, scenes and groups in memory
    },
    "session": {
        "client_name": "Android TV Bridge",
        "api_port": 6466,
        "pair_port": 6467,
    },
    "timing": {
        "activity_timeout": 300,
        "poll_interval": 10,
        "reconnect_delay": 5,
        "min_reconnect_interval": 30,
        "pairing_display_timeout": 10,
        "pairing_ttl": 300,
        "app_settle_delay": 2.0,
        "volume_step_delay": 0.15,
        "key_delay": 0.3,
    },
    "mqtt": {
        "enabled": False,
        "host": "localhost",
        "port": 1883,
        "username": None,
        "password": None,
        "client_id": "atv-bridge",
        "base_topic": "atv-bridge",
    },
    "options": {
        "auto_connect": True,
        "auto_reconnect": True,
        "log_level": "INFO",
    },
}

# Environment variable -> (section, key, type)
ENV_MAPPINGS = {
    "BRIDGE_HOST": ("server", "host", str),
    "BRIDGE_PORT": ("server", "port", int),
    "DATA_DIR": ("storage", "data_dir", str),
    "CLIENT_NAME": ("session", "client_name", str),
    "ACTIVITY_TIMEOUT": ("timing", "activity_timeout", float),
    "POLL_INTERVAL": ("timing", "poll_interval", float),
    "MQTT_ENABLED": ("mqtt", "enabled", bool),
    "MQTT_HOST": ("mqtt", "host", str),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username", str),
    "MQTT_PASSWORD": ("mqtt", "password", str),
    "MQTT_BASE_TOPIC": ("mqtt", "base_topic", str),
    "LOG_LEVEL": ("options", "log_level", str),
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def default_search_paths() -> list:
    return [
        Path("config.yaml"),
        Path("/app/config.yaml"),
        Path.home() / ".config" / "atv-bridge" / "config.yaml",
        Path("/etc/atv-bridge/config.yaml"),
    ]


def load_config(config_path: Optional[str] = None, environ: Optional[dict] = None) -> dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.
        environ: Environment to read overrides from (default: os.environ)

    Returns:
        Merged configuration dict

    Raises:
        FileNotFoundError: An explicit config_path does not exist
        ValueError: An environment override has the wrong type
    """
    if config_path and not Path(config_path).exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    search_paths = [Path(config_path)] if config_path else default_search_paths()

    config = copy.deepcopy(DEFAULT_CONFIG)

    for path in search_paths:
        if path.exists():
            with open(path) as f:
                user_config = yaml.safe_load(f) or {}
            config = deep_merge(config, user_config)
            config["_config_path"] = str(path)
            break

    # Environment variable overrides
    environ = os.environ if environ is None else environ
    for env_var, (section, key, kind) in ENV_MAPPINGS.items():
        value = environ.get(env_var)
        if value is None:
            continue
        try:
            if kind is bool:
                value = _parse_bool(value)
            else:
                value = kind(value)
        except ValueError as err:
            raise ValueError(f"Invalid value for {env_var}: {value!r}") from err
        config.setdefault(section, {})[key] = value

    return config


def validate_config(config: dict) -> list:
    """Validate configuration and return list of errors."""
    errors = []

    port = config.get("server", {}).get("port")
    if not isinstance(port, int) or not 0 < port < 65536:
        errors.append(f"server.port must be 1-65535, got {port!r}")

    timing = config.get("timing", {})
    for key in ("activity_timeout", "poll_interval", "min_reconnect_interval"):
        value = timing.get(key)
        if not isinstance(value, (int, float)) or value <= 0:
            errors.append(f"timing.{key} must be a positive number")
    for key in ("reconnect_delay", "pairing_display_timeout", "app_settle_delay",
                "volume_step_delay", "key_delay"):
        value = timing.get(key)
        if not isinstance(value, (int, float)) or value < 0:
            errors.append(f"timing.{key} must be zero or more")
    ttl = timing.get("pairing_ttl")
    if ttl is not None and (not isinstance(ttl, (int, float)) or ttl <= 0):
        errors.append("timing.pairing_ttl must be a positive number or null")

    if config.get("mqtt", {}).get("enabled") and not config["mqtt"].get("host"):
        errors.append("mqtt.host is required when mqtt.enabled is true")

    return errors
