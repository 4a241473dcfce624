"""Server configuration: CLI flags, environment, and the TOML config file."""

import argparse
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from busyapi.domain.connection_id import ConnectionLoggerAdapter

ENV_PREFIX = "BUSYAPI_"

READ_BUFFER_SIZE = 1024
ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})
MAX_TIMEOUT_CEILING = 255
SHUTDOWN_GRACE_MARGIN = 5

DEFAULT_ADDRESS = "localhost"
DEFAULT_PORT = 7878
DEFAULT_MAX_TIMEOUT = 60
DEFAULT_CONFIG_FILE = "/etc/busyapi.conf"
DEFAULT_SOCKET_TIMEOUT = 10
DEFAULT_MAX_CONNECTIONS = 0
DEFAULT_MAX_CONNECTIONS_PER_IP = 0
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_DESTINATION = "stdout"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
# Keys a config file may carry that never take effect from the file itself.
FILE_ONLY_KEYS = frozenset({"config_file"})

CONFIG_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.config"), {})


class ConfigError(ValueError):
    """Raised when configuration values cannot be loaded or are out of range."""


def _bounded_int(name: str, low: int, high: Optional[int] = None) -> Callable[[Any], int]:
    def coerce(value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name} must be an integer") from exc
        if number < low or (high is not None and number > high):
            if high is None:
                raise ValueError(f"{name} must be at least {low}")
            raise ValueError(f"{name} must be between {low} and {high}")
        return number

    return coerce


def _text(value: Any) -> str:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValueError("expected a string")
    return str(value)


def _log_level(value: Any) -> str:
    level = _text(value).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
    return level


SETTINGS: dict[str, Callable[[Any], Any]] = {
    "address": _text,
    "port": _bounded_int("port", 0, 65535),
    "max_timeout": _bounded_int("max_timeout", 0, MAX_TIMEOUT_CEILING),
    "socket_timeout": _bounded_int("socket_timeout", 1),
    "shutdown_grace_seconds": _bounded_int("shutdown_grace_seconds", 0),
    "max_connections": _bounded_int("max_connections", 0),
    "max_connections_per_ip": _bounded_int("max_connections_per_ip", 0),
    "log_level": _log_level,
    "log_destination": _text,
    "db_user": _text,
    "db_password": _text,
    "db_host": _text,
    "db_name": _text,
    "db_collection": _text,
}

DEFAULTS: dict[str, Any] = {
    "address": DEFAULT_ADDRESS,
    "port": DEFAULT_PORT,
    "max_timeout": DEFAULT_MAX_TIMEOUT,
    "socket_timeout": DEFAULT_SOCKET_TIMEOUT,
    "max_connections": DEFAULT_MAX_CONNECTIONS,
    "max_connections_per_ip": DEFAULT_MAX_CONNECTIONS_PER_IP,
    "log_level": DEFAULT_LOG_LEVEL,
    "log_destination": DEFAULT_LOG_DESTINATION,
}


@dataclass(frozen=True)
class AuditSettings:
    """Credentials and target for the audit document store."""

    user: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    database: Optional[str] = None
    collection: Optional[str] = None

    @property
    def enabled(self) -> bool:
        """Audit logging runs only when every setting is present."""
        return all(
            (self.user, self.password, self.host, self.database, self.collection)
        )


@dataclass(frozen=True)
class BusyConfig:
    """Process-wide settings, built once at startup and never mutated."""

    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    max_timeout: int = DEFAULT_MAX_TIMEOUT
    config_file: str = DEFAULT_CONFIG_FILE
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: int = DEFAULT_MAX_TIMEOUT + SHUTDOWN_GRACE_MARGIN
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    max_connections_per_ip: int = DEFAULT_MAX_CONNECTIONS_PER_IP
    log_level: str = DEFAULT_LOG_LEVEL
    log_destination: str = DEFAULT_LOG_DESTINATION
    audit: AuditSettings = AuditSettings()

    @property
    def audit_enabled(self) -> bool:
        return self.audit.enabled


def _timeout_ceiling(value: str) -> int:
    try:
        return SETTINGS["max_timeout"](value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments; unset flags stay ``None`` for merging."""
    parser = argparse.ArgumentParser(
        prog="busyapi", description="BusyAPI delayed-response server"
    )
    parser.add_argument("-a", "--address", help="Bind address")
    parser.add_argument("-p", "--port", type=int, help="Bind port")
    parser.add_argument(
        "-m",
        "--max-timeout",
        type=_timeout_ceiling,
        help="Maximum allowed timeout in seconds (max. 255 seconds)",
    )
    parser.add_argument(
        "-c",
        "--config-file",
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument("--db-user", help="Audit store user")
    parser.add_argument("--db-password", help="Audit store password")
    parser.add_argument("--db-host", help="Audit store host")
    parser.add_argument("--db-name", help="Audit store database")
    parser.add_argument("--db-collection", help="Audit store collection")
    parser.add_argument(
        "--max-connections",
        type=int,
        help="Maximum concurrent connections (0 for unlimited)",
    )
    parser.add_argument(
        "--max-connections-per-ip",
        type=int,
        help="Maximum concurrent connections per client IP (0 for unlimited)",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        help="Seconds to wait for the request bytes before answering 500",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        help="Grace period for in-flight requests on shutdown "
        "(default: max timeout + 5)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper)
    parser.add_argument("--log-destination", help="stdout or a file path")
    return parser.parse_args(argv)


def load_config_file(path: str) -> dict[str, Any]:
    """Read settings from a TOML file; a missing file yields no settings."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    unknown = sorted(set(data) - set(SETTINGS) - FILE_ONLY_KEYS)
    if unknown:
        CONFIG_LOGGER.warning(
            "Ignoring unknown config file settings",
            extra={
                "event": "config_keys_ignored",
                "config_file": path,
                "ignored_keys": unknown,
            },
        )
    return {key: value for key, value in data.items() if key in SETTINGS}


def _environment() -> dict[str, str]:
    values = {}
    for key in SETTINGS:
        raw = os.getenv(f"{ENV_PREFIX}{key.upper()}")
        if raw is not None:
            values[key] = raw
    return values


def _coerce(key: str, value: Any, source: str) -> Any:
    try:
        return SETTINGS[key](value)
    except ValueError as exc:
        raise ConfigError(f"Invalid {key} from {source}: {exc}") from exc


def resolve_config(args: argparse.Namespace) -> BusyConfig:
    """Merge defaults < environment < config file < CLI flags."""
    config_file = args.config_file or os.getenv(
        f"{ENV_PREFIX}CONFIG_FILE", DEFAULT_CONFIG_FILE
    )
    layers = [
        ("defaults", DEFAULTS),
        ("environment", _environment()),
        (config_file, load_config_file(config_file)),
        ("command line", {k: getattr(args, k, None) for k in SETTINGS}),
    ]

    merged: dict[str, Any] = {}
    for source, values in layers:
        for key, value in values.items():
            if value is not None:
                merged[key] = _coerce(key, value, source)

    merged.setdefault(
        "shutdown_grace_seconds", merged["max_timeout"] + SHUTDOWN_GRACE_MARGIN
    )
    audit = AuditSettings(
        user=merged.pop("db_user", None),
        password=merged.pop("db_password", None),
        host=merged.pop("db_host", None),
        database=merged.pop("db_name", None),
        collection=merged.pop("db_collection", None),
    )
    return BusyConfig(config_file=config_file, audit=audit, **merged)


def load_config(argv: list[str]) -> BusyConfig:
    """Parse ``argv`` and resolve the full configuration."""
    return resolve_config(parse_cli_args(argv))
