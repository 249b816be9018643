"""
Controller configuration.

Settings are built once at startup from defaults, an optional YAML file,
``UPSTREAM_CONTROLLER_*`` environment variables and command line flags (in
increasing order of precedence), and passed into the controller.
"""
import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .controller.policy import FailureAction, OperationKind, build_policy
from .errors import ConfigError

ENV_PREFIX = "UPSTREAM_CONTROLLER_"

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_server": "127.0.0.1:8080",
    "nginx_server": None,
    "namespace": None,
    "use_kubeconfig": False,
    "admin_timeout_seconds": None,
    "dry_run": False,
    "log_level": "INFO",
    "backoff": {
        "decode_seconds": 2.0,
        "status_seconds": 2.0,
        "reconnect_initial_seconds": 1.0,
        "reconnect_max_seconds": 30.0,
        "max_reconnect_attempts": 5,
    },
    "policy": {
        "add": "abort",
        "remove": "skip",
    },
}

# Environment variable suffix -> dotted config key.
ENV_KEYS = {
    "API_SERVER": "api_server",
    "NGINX_SERVER": "nginx_server",
    "NAMESPACE": "namespace",
    "USE_KUBECONFIG": "use_kubeconfig",
    "ADMIN_TIMEOUT_SECONDS": "admin_timeout_seconds",
    "DRY_RUN": "dry_run",
    "LOG_LEVEL": "log_level",
    "DECODE_BACKOFF_SECONDS": "backoff.decode_seconds",
    "STATUS_BACKOFF_SECONDS": "backoff.status_seconds",
    "RECONNECT_INITIAL_SECONDS": "backoff.reconnect_initial_seconds",
    "RECONNECT_MAX_SECONDS": "backoff.reconnect_max_seconds",
    "MAX_RECONNECT_ATTEMPTS": "backoff.max_reconnect_attempts",
    "ADD_FAILURE_POLICY": "policy.add",
    "REMOVE_FAILURE_POLICY": "policy.remove",
}


@dataclass(frozen=True)
class BackoffSettings:
    decode_seconds: float = 2.0
    status_seconds: float = 2.0
    reconnect_initial_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    max_reconnect_attempts: int = 5


@dataclass(frozen=True)
class Settings:
    nginx_server: str
    api_server: Optional[str] = "127.0.0.1:8080"
    namespace: Optional[str] = None
    use_kubeconfig: bool = False
    admin_timeout_seconds: Optional[float] = None
    dry_run: bool = False
    log_level: str = "INFO"
    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    policy: Mapping[OperationKind, FailureAction] = field(default_factory=build_policy)


def deep_merge(source, destination):
    for key, value in source.items():
        if isinstance(value, dict):
            node = destination.setdefault(key, {})
            deep_merge(value, node)
        else:
            destination[key] = value
    return destination


def _set_dotted(config: Dict[str, Any], dotted_key: str, value: Any) -> None:
    node = config
    *parents, leaf = dotted_key.split(".")
    for parent in parents:
        node = node.setdefault(parent, {})
    node[leaf] = value


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for suffix, dotted_key in ENV_KEYS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is not None:
            _set_dotted(overrides, dotted_key, raw)
    return overrides


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off", ""}:
            return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _as_number(name: str, value: Any, kind=float):
    try:
        number = kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {value!r}")
    return number


def _validate_address(name: str, value: Any) -> str:
    address = str(value).strip()
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(f"{name} must be host:port, got {value!r}")
    return address


def _validate_log_level(value: Any) -> str:
    level = str(value or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got {value!r}")
    return level


def load_config(config_path: Optional[Path]) -> Dict[str, Any]:
    """Read the YAML config file (if any) merged over the defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path:
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid configuration file {config_path}: {e}") from e
        if user_config:
            if not isinstance(user_config, dict):
                raise ConfigError(f"Configuration file {config_path} must contain a mapping")
            config = deep_merge(user_config, config)
    return config


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build the Settings value for one process.

    Args:
        config_path: Optional YAML config file
        overrides: Dotted keys from the command line; None values are ignored
        environ: Environment to read (defaults to os.environ)

    Raises:
        ConfigError: If a value is missing or invalid.
    """
    config = load_config(config_path)
    deep_merge(_env_overrides(os.environ if environ is None else environ), config)
    for dotted_key, value in (overrides or {}).items():
        if value is not None:
            _set_dotted(config, dotted_key, value)

    if not config.get("nginx_server"):
        raise ConfigError("nginx_server is required (host:port of the nginx admin interface)")

    use_kubeconfig = _as_bool("use_kubeconfig", config.get("use_kubeconfig"))
    api_server = config.get("api_server")
    if not use_kubeconfig:
        if not api_server:
            raise ConfigError("api_server is required unless use_kubeconfig is set")
        api_server = _validate_address("api_server", api_server)

    timeout = config.get("admin_timeout_seconds")
    backoff = config.get("backoff") or {}
    try:
        policy = build_policy(config.get("policy") or {})
    except ValueError as e:
        raise ConfigError(f"Invalid failure policy: {e}") from e

    return Settings(
        nginx_server=_validate_address("nginx_server", config["nginx_server"]),
        api_server=api_server,
        namespace=config.get("namespace") or None,
        use_kubeconfig=use_kubeconfig,
        admin_timeout_seconds=None if timeout in (None, "") else _as_number("admin_timeout_seconds", timeout),
        dry_run=_as_bool("dry_run", config.get("dry_run")),
        log_level=_validate_log_level(config.get("log_level")),
        backoff=BackoffSettings(
            decode_seconds=_as_number("backoff.decode_seconds", backoff.get("decode_seconds", 2.0)),
            status_seconds=_as_number("backoff.status_seconds", backoff.get("status_seconds", 2.0)),
            reconnect_initial_seconds=_as_number(
                "backoff.reconnect_initial_seconds", backoff.get("reconnect_initial_seconds", 1.0)
            ),
            reconnect_max_seconds=_as_number(
                "backoff.reconnect_max_seconds", backoff.get("reconnect_max_seconds", 30.0)
            ),
            max_reconnect_attempts=_as_number(
                "backoff.max_reconnect_attempts", backoff.get("max_reconnect_attempts", 5), int
            ),
        ),
        policy=policy,
    )
