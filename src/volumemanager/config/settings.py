"""
Global volume manager settings loaded from YAML files in the config directory.
"""
import copy
import logging
import socket
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..errors import ConfigurationError
from ..utils.time import parse_duration

logger = logging.getLogger(__name__)

MIN_LOOP_INTERVAL = timedelta(seconds=10)
SETTINGS_SUFFIXES = (".yaml", ".yml")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "rest": {
        "nodes": [],
        "port": 8443,
        "scheme": "https",
        "verify_tls": True,
        "timeout": 60,
        "username": None,
        "password": None,
        "throttling_interval": 0,
    },
    "auth": {
        "mode": "kerberos",
        "principal": None,
        "keytab": None,
        "ticket_lifetime": "10h",
    },
    "loop": {
        "interval": "60s",
    },
    "fs": {
        "action_attempts": 3,
    },
    "groups": {
        "dir": None,
        "validate_principals": True,
    },
    "alarm": {
        "entity": None,
    },
}


@dataclass(frozen=True)
class CredentialConfig:
    """Credential reference handed to the AuthProvider."""

    mode: str
    principal: Optional[str] = None
    keytab: Optional[str] = None
    ticket_lifetime: timedelta = timedelta(hours=10)


@dataclass(frozen=True)
class ManagerSettings:
    rest_nodes: List[str]
    groups_dir: Path
    credentials: CredentialConfig
    rest_port: int = 8443
    rest_scheme: str = "https"
    verify_tls: bool = True
    rest_timeout: float = 60.0
    rest_username: Optional[str] = None
    rest_password: Optional[str] = field(default=None, repr=False)
    loop_interval: timedelta = timedelta(seconds=60)
    fs_action_attempts: int = 3
    rest_throttling_interval: timedelta = timedelta()
    validate_principals: bool = True
    alarm_entity: str = ""


def deep_merge(source, destination):
    for key, value in source.items():
        if isinstance(value, dict):
            node = destination.get(key)
            if not isinstance(node, dict):
                node = destination[key] = {}
            deep_merge(value, node)
        else:
            destination[key] = value
    return destination


def settings_files(config_dir: Path) -> List[Path]:
    return sorted(p for p in config_dir.iterdir() if p.is_file() and p.suffix in SETTINGS_SUFFIXES)


def load_settings(config_dir: Path) -> ManagerSettings:
    """
    Reads and validates every top-level YAML file in `config_dir`.

    Raises:
        ConfigurationError: if the directory or a required setting is missing or invalid.
    """
    if not config_dir.is_dir():
        raise ConfigurationError(f"Configuration directory {config_dir} does not exist or is not a directory")

    config_data = copy.deepcopy(DEFAULT_SETTINGS)
    for path in settings_files(config_dir):
        try:
            with open(path, "r") as f:
                user_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read {path}: {e}")
        if user_config is None:
            continue
        if not isinstance(user_config, dict):
            raise ConfigurationError(f"{path} must contain a mapping")
        logger.info(f"Loaded settings from {path}")
        config_data = deep_merge(user_config, config_data)

    return parse_settings(config_data, config_dir)


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config_data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{name}' must be a mapping, got {section!r}")
    return section


def _require(section: Dict[str, Any], key: str, qualified: str) -> Any:
    value = section.get(key)
    if value in (None, "", []):
        raise ConfigurationError(f"Could not read '{qualified}' from configuration")
    return value


def _duration(value: Any, qualified: str) -> timedelta:
    try:
        return parse_duration(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise ConfigurationError(f"Invalid value of '{qualified}': {e}")


def _integer(value: Any, qualified: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid value of '{qualified}': {value!r}")
    try:
        return int(value)
    except (ValueError, TypeError, OverflowError):
        raise ConfigurationError(f"Invalid value of '{qualified}': {value!r}")


def _positive_number(value: Any, qualified: str) -> float:
    try:
        number = float(value)
    except (ValueError, TypeError):
        raise ConfigurationError(f"Invalid value of '{qualified}': {value!r}")
    if isinstance(value, bool) or not number > 0:
        raise ConfigurationError(f"Invalid value of '{qualified}': {value!r}")
    return number


def _boolean(value: Any, qualified: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "0"):
        return False
    raise ConfigurationError(f"Invalid value of '{qualified}': {value!r}")


def _optional_string(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _is_negative(value: Any) -> bool:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value < 0
    return isinstance(value, str) and value.strip().startswith("-")


def parse_settings(config_data: Dict[str, Any], config_dir: Path) -> ManagerSettings:
    """
    Validates the merged settings mapping.

    Raises:
        ConfigurationError: on any missing or malformed setting.
    """
    rest = _section(config_data, "rest")
    auth = _section(config_data, "auth")
    loop = _section(config_data, "loop")
    fs = _section(config_data, "fs")
    groups = _section(config_data, "groups")
    alarm = _section(config_data, "alarm")

    nodes = _require(rest, "nodes", "rest.nodes")
    if isinstance(nodes, str):
        nodes = [n.strip() for n in nodes.split(",") if n.strip()]
    if not isinstance(nodes, list) or not nodes:
        raise ConfigurationError(f"Invalid value of 'rest.nodes': {nodes!r}")
    nodes = [str(n) for n in nodes]

    mode = str(auth.get("mode", "kerberos")).lower()
    if mode == "kerberos":
        credentials = CredentialConfig(
            mode=mode,
            principal=str(_require(auth, "principal", "auth.principal")),
            keytab=str(_require(auth, "keytab", "auth.keytab")),
            ticket_lifetime=_duration(auth.get("ticket_lifetime", "10h"), "auth.ticket_lifetime"),
        )
    elif mode == "none":
        credentials = CredentialConfig(mode=mode, principal=_optional_string(rest.get("username")))
    else:
        raise ConfigurationError(f"Invalid value of 'auth.mode': {mode}")

    loop_interval = _duration(loop.get("interval", "60s"), "loop.interval")
    if loop_interval < MIN_LOOP_INTERVAL:
        logger.info(
            f"Loop interval configured too small, setting minimum of {MIN_LOOP_INTERVAL.total_seconds():.0f}s"
        )
        loop_interval = MIN_LOOP_INTERVAL

    attempts = _integer(fs.get("action_attempts", 3), "fs.action_attempts")
    if attempts < 1:
        logger.info("Number of FS action attempts configured too small, setting minimum of 1")
        attempts = 1

    throttling_value = rest.get("throttling_interval", 0)
    if _is_negative(throttling_value):
        logger.warning("rest.throttling_interval can't be negative. Throttling will be disabled.")
        throttling_value = 0
    throttling = _duration(throttling_value, "rest.throttling_interval")

    groups_value = groups.get("dir") or (config_dir / "vg.d")
    if not isinstance(groups_value, (str, Path)):
        raise ConfigurationError(f"Invalid value of 'groups.dir': {groups_value!r}")
    groups_dir = Path(groups_value)
    if not groups_dir.is_absolute():
        groups_dir = config_dir / groups_dir

    entity = _optional_string(alarm.get("entity")) or socket.getfqdn()

    return ManagerSettings(
        rest_nodes=nodes,
        groups_dir=groups_dir,
        credentials=credentials,
        rest_port=_integer(rest.get("port", 8443), "rest.port"),
        rest_scheme=str(rest.get("scheme", "https")),
        verify_tls=_boolean(rest.get("verify_tls", True), "rest.verify_tls"),
        rest_timeout=_positive_number(rest.get("timeout", 60), "rest.timeout"),
        rest_username=_optional_string(rest.get("username")),
        rest_password=_optional_string(rest.get("password")),
        loop_interval=loop_interval,
        fs_action_attempts=attempts,
        rest_throttling_interval=throttling,
        validate_principals=_boolean(groups.get("validate_principals", True), "groups.validate_principals"),
        alarm_entity=entity,
    )
