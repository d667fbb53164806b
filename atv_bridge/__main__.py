#!/usr/bin/env python3
"""Entry point for atv-bridge."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

import uvicorn

from atv_remote.credentials import CredentialStore

from . import __version__
from .api import create_app
from .bridge import AndroidTVBridge
from .config import load_config, validate_config


def setup_logging(level: str = "INFO"):
    """Set up logging configuration."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Protocol and access logs are too chatty at INFO
    for name in ("paho", "androidtvremote2", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


def paired_devices(config: dict) -> List[dict]:
    """Devices with credentials in the configured data directory."""
    data_dir = config["storage"].get("data_dir")
    if not data_dir:
        return []
    path = Path(data_dir).expanduser()
    return CredentialStore(path / "credentials.json", path / "certs").list_devices()


def config_summary(config: dict) -> List[str]:
    """Human readable lines describing what the bridge will serve."""
    server = config["server"]
    timing = config["timing"]
    mqtt = config["mqtt"]
    options = config["options"]

    lines = [
        f"  HTTP API: http://{server['host']}:{server['port']}",
        f"  Client name: {config['session']['client_name']}",
        f"  Data dir: {config['storage'].get('data_dir') or 'none (pairings are lost on restart)'}",
        f"  Liveness window: {timing['activity_timeout']}s, polling every {timing['poll_interval']}s",
        f"  Reconnect: "
        + (f"after {timing['reconnect_delay']}s, at most every {timing['min_reconnect_interval']}s"
           if options.get("auto_reconnect", True) else "disabled"),
        "  MQTT: "
        + (f"{mqtt['host']}:{mqtt['port']} under '{mqtt['base_topic']}/'" if mqtt.get("enabled") else "disabled"),
    ]

    devices = paired_devices(config)
    lines.append(f"  Paired TVs: {len(devices)}")
    for device in devices:
        lines.append(f"    {device['device_id']} ({device.get('host') or 'no host'})")
    return lines


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="atv-bridge",
        description="Serve an HTTP API that pairs with and controls Android TV / Google TV devices",
    )
    parser.add_argument(
        "-c", "--config",
        help="YAML config file (default: first of ./config.yaml, /app/config.yaml, "
             "~/.config/atv-bridge/config.yaml, /etc/atv-bridge/config.yaml)",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"atv-bridge {__version__}",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="HTTP port to listen on (overrides server.port)",
    )
    parser.add_argument(
        "--data-dir",
        help="Directory for TV credentials, scenes and sync groups (overrides storage.data_dir)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log every session event and command",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Check the config, list paired TVs and exit",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.port is not None:
        config["server"]["port"] = args.port
    if args.data_dir:
        config["storage"]["data_dir"] = args.data_dir

    log_level = "DEBUG" if args.debug else config.get("options", {}).get("log_level", "INFO")
    setup_logging(log_level)

    logger = logging.getLogger(__name__)
    logger.info(f"Loaded config from: {config.get('_config_path', 'defaults')}")

    errors = validate_config(config)
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        if args.validate:
            print("Configuration is INVALID")
        sys.exit(1)

    if args.validate:
        print("Configuration is valid")
        print("\n".join(config_summary(config)))
        sys.exit(0)

    logger.info(f"atv-bridge v{__version__} listening on {config['server']['host']}:{config['server']['port']}")

    app = create_app(AndroidTVBridge(config))

    try:
        uvicorn.run(
            app,
            host=config["server"]["host"],
            port=config["server"]["port"],
            log_config=None,
        )
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
