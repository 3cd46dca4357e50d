"""Configuration module — frozen dataclass loaded from YAML, env vars and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)

DEFAULT_FILTER_PATTERNS = (
    "nw_connection",
    "nw_endpoint",
    "nw_resolver",
    "nw_path_evaluator",
    "tcp_input",
    "tcp_output",
    "boringssl",
    "[connection]",
    "[network]",
    "TIC Read Status",
    "TIC TCP Conn",
    "Task <",
    "NSURLSession",
    "CFNetwork",
    "HTTP load failed",
    "Connection invalid",
)

DEFAULT_FILTER_LEVELS = ("debug", "verbose", "trace")


@dataclass(frozen=True)
class Config:
    host: str = "0.0.0.0"
    port: int = 8080
    capacity: int = 100
    max_buffer_size: int = 16384
    recv_size: int = 65536
    startup_delay: float = 0.5
    structured_tag: str = "EP_LOG"
    filter_patterns: tuple[str, ...] = DEFAULT_FILTER_PATTERNS
    filter_levels: tuple[str, ...] = DEFAULT_FILTER_LEVELS
    network_interface: str = ""
    heartbeat_interval: float = 0.0


def load_yaml_config(path: str | None) -> dict:
    """Load overrides from a YAML file. Returns empty dict if no path or unreadable.

    Expected layout::

        server:
          host: 127.0.0.1
          port: 8080
        store:
          capacity: 200
        filters:
          patterns: [...]        # replaces the default noise set
          extra_patterns: [...]  # appended to whatever set is in effect
          levels: [debug, trace]
    """
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read config file %s (%s), using defaults", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data


def _from_yaml(yaml_data: dict) -> dict:
    """Flatten the YAML layout into Config keyword arguments."""
    kwargs: dict = {}
    server = yaml_data.get("server") or {}
    if "host" in server:
        kwargs["host"] = str(server["host"])
    if "port" in server:
        kwargs["port"] = int(server["port"])
    if "network_interface" in server:
        kwargs["network_interface"] = str(server["network_interface"])

    store = yaml_data.get("store") or {}
    if "capacity" in store:
        kwargs["capacity"] = int(store["capacity"])

    capture = yaml_data.get("capture") or {}
    if "max_buffer_size" in capture:
        kwargs["max_buffer_size"] = int(capture["max_buffer_size"])
    if "startup_delay" in capture:
        kwargs["startup_delay"] = float(capture["startup_delay"])
    if "heartbeat_interval" in capture:
        kwargs["heartbeat_interval"] = float(capture["heartbeat_interval"])

    filters = yaml_data.get("filters") or {}
    patterns = list(filters.get("patterns", DEFAULT_FILTER_PATTERNS))
    patterns.extend(filters.get("extra_patterns", []))
    kwargs["filter_patterns"] = tuple(str(p) for p in patterns)
    if "levels" in filters:
        kwargs["filter_levels"] = tuple(str(level) for level in filters["levels"])
    if "structured_tag" in filters:
        kwargs["structured_tag"] = str(filters["structured_tag"])
    return kwargs


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devlog-capture",
        description="Capture stdout and serve recent lines over HTTP",
    )
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--capacity", type=int, default=None,
                        help="Number of recent log lines kept in memory")
    parser.add_argument("--startup-delay", type=float, default=None)
    parser.add_argument("--heartbeat-interval", type=float, default=None,
                        help="Seconds between heartbeat lines (0 disables)")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to YAML config file")
    parser.add_argument("command", nargs=argparse.REMAINDER,
                        help="Optional command to run with its stdout captured")
    return parser


def load_config(argv: list[str] | None = None) -> tuple[Config, list[str]]:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority).

    Returns the config and the (possibly empty) child command.
    """
    args = build_cli_parser().parse_args(argv)

    config_path = args.config or os.environ.get("FILTER_CONFIG")
    kwargs = _from_yaml(load_yaml_config(config_path))

    env_map = {
        "SERVER_HOST": ("host", str),
        "SERVER_PORT": ("port", int),
        "LOG_CAPACITY": ("capacity", int),
        "MAX_BUFFER_SIZE": ("max_buffer_size", int),
        "STARTUP_DELAY": ("startup_delay", float),
        "STRUCTURED_TAG": ("structured_tag", str),
        "NETWORK_INTERFACE": ("network_interface", str),
        "HEARTBEAT_INTERVAL": ("heartbeat_interval", float),
    }
    for env_name, (key, cast) in env_map.items():
        value = os.environ.get(env_name)
        if value is not None:
            kwargs[key] = cast(value)

    cli_overrides = {
        "host": args.host,
        "port": args.port,
        "capacity": args.capacity,
        "startup_delay": args.startup_delay,
        "heartbeat_interval": args.heartbeat_interval,
    }
    for key, value in cli_overrides.items():
        if value is not None:
            kwargs[key] = value

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    return Config(**kwargs), command
