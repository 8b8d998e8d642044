"""
Loading and validation of volume group specs, one YAML file per group.

Every file yields a GroupLoadResult: either a validated GroupSpec or the
reason it was skipped. A skipped file never aborts the load of the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..models import GroupSpec, Interval
from .directory import DirectoryService

logger = logging.getLogger(__name__)

GROUP_FILE_SUFFIXES = (".yaml", ".yml")
REPLICATION_TYPES = ("high_throughput", "low_latency")


class InvalidGroup(ValueError):
    pass


@dataclass(frozen=True)
class GroupLoadResult:
    path: Path
    spec: Optional[GroupSpec] = None
    reason: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.spec is not None


@dataclass
class GroupCatalog:
    """Loaded group specs keyed by name, plus the files that were skipped."""

    groups: Dict[str, GroupSpec]
    skipped: List[GroupLoadResult]

    def specs(self) -> List[GroupSpec]:
        return list(self.groups.values())


def group_files(groups_dir: Path) -> List[Path]:
    if not groups_dir.is_dir():
        return []
    return sorted(p for p in groups_dir.iterdir() if p.is_file() and p.suffix in GROUP_FILE_SUFFIXES)


def load_groups(groups_dir: Path, directory: Optional[DirectoryService] = None) -> GroupCatalog:
    """
    Loads every group file from `groups_dir`.

    Args:
        groups_dir: Directory containing one YAML file per volume group
        directory: Used to check that owners and groups exist; None skips the check

    Returns:
        The catalog of loaded groups; duplicate names keep the first file.
    """
    logger.info(f"Loading volume groups from directory {groups_dir}")
    if not groups_dir.is_dir():
        logger.warning(f"Volume group directory {groups_dir} doesn't exist")

    catalog = GroupCatalog(groups={}, skipped=[])
    for path in group_files(groups_dir):
        result = load_group_file(path, directory)
        if not result.loaded:
            logger.error(f"Skipping volume group file {path}: {result.reason}")
            catalog.skipped.append(result)
            continue

        spec = result.spec
        if spec.name in catalog.groups:
            logger.warning(f"Duplicate volume group name '{spec.name}' in file {path}, discarding this group")
            catalog.skipped.append(GroupLoadResult(path=path, reason=f"duplicate group name '{spec.name}'"))
            continue

        catalog.groups[spec.name] = spec
        logger.info(f"Loaded volume group '{spec.name}' from file {path}")

    logger.info(f"Loaded {len(catalog.groups)} volume groups from {groups_dir}")
    return catalog


def load_group_file(path: Path, directory: Optional[DirectoryService] = None) -> GroupLoadResult:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        return GroupLoadResult(path=path, reason=f"unable to read file: {e}")

    if not isinstance(data, dict):
        return GroupLoadResult(path=path, reason="file does not contain a mapping")

    try:
        return GroupLoadResult(path=path, spec=parse_group(data, directory))
    except InvalidGroup as e:
        return GroupLoadResult(path=path, reason=str(e))


def _missing(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value):
        raise InvalidGroup(f"missing property: '{key}'")
    return value


def _int(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = data.get(key, default)
    if value is None:
        raise InvalidGroup(f"missing property: '{key}'")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidGroup(f"invalid value of property '{key}': {value}")


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "yes")


def parse_group(data: Dict[str, Any], directory: Optional[DirectoryService] = None) -> GroupSpec:
    """Validates one group mapping. Raises InvalidGroup on the first invalid property."""
    name = str(_missing(data, "name"))

    path_format = str(_missing(data, "pathformat"))
    try:
        datetime.now().strftime(path_format)
    except ValueError as e:
        raise InvalidGroup(f"invalid value of property 'pathformat': {path_format} ({e})")

    min_replication = _int(data, "minreplication", 2)
    if min_replication <= 0:
        raise InvalidGroup(f"invalid value of property 'minreplication': {min_replication}")
    replication = _int(data, "replication", 3)
    if replication <= 0:
        raise InvalidGroup(f"invalid value of property 'replication': {replication}")

    replication_type = str(data.get("replicationtype", "high_throughput"))
    if replication_type not in REPLICATION_TYPES:
        raise InvalidGroup(f"invalid value of property 'replicationtype': {replication_type}")

    owner = str(_missing(data, "owner"))
    if directory is not None and not directory.user_exists(owner):
        raise InvalidGroup(f"unable to retrieve user '{owner}' - does user exist?")
    group = str(_missing(data, "group"))
    if directory is not None and not directory.group_exists(group):
        raise InvalidGroup(f"unable to retrieve group '{group}' - does group exist?")

    permission = str(data.get("permission", "755"))
    try:
        mode = int(permission, 8)
    except ValueError:
        raise InvalidGroup(f"invalid value of property 'permission': {permission}")
    if not 0 <= mode <= 0o7777:
        raise InvalidGroup(f"invalid value of property 'permission': {permission}")

    accounting_entity = str(_missing(data, "ae"))
    accounting_entity_type = _int(data, "aetype", 0)
    if accounting_entity_type not in (0, 1):
        raise InvalidGroup(f"invalid value of property 'aetype': {accounting_entity_type}")

    ace_enabled = _flag(data.get("aceEnabled", False))
    read_ace = str(data.get("readAce", "") or "")
    write_ace = str(data.get("writeAce", "") or "")
    if ace_enabled and not read_ace:
        raise InvalidGroup("invalid value of property 'readAce': empty")
    if ace_enabled and not write_ace:
        raise InvalidGroup("invalid value of property 'writeAce': empty")

    topology = str(_missing(data, "topology"))
    schedule = _int(data, "schedule", 0)
    if schedule < 0:
        raise InvalidGroup(f"invalid value of property 'schedule': {schedule}")

    interval_value = str(_missing(data, "interval")).lower()
    try:
        interval = Interval(interval_value)
    except ValueError:
        raise InvalidGroup(f"invalid value of property 'interval': {interval_value}")

    retention = _int(data, "retention")
    if retention < 0:
        raise InvalidGroup(f"invalid value of property 'retention': {retention}")
    ahead = _int(data, "ahead")
    if ahead < 0:
        raise InvalidGroup(f"invalid value of property 'ahead': {ahead}")

    if interval == Interval.NONE and (retention != 0 or ahead != 0):
        raise InvalidGroup("static volume must have retention and ahead properties set to 0")

    return GroupSpec(
        name=name,
        path_format=path_format,
        owner=owner,
        group=group,
        permission=permission,
        accounting_entity=accounting_entity,
        accounting_entity_type=accounting_entity_type,
        topology=topology,
        schedule=schedule,
        replication=replication,
        min_replication=min_replication,
        replication_type=replication_type,
        ace_enabled=ace_enabled,
        read_ace=read_ace,
        write_ace=write_ace,
        interval=interval,
        retention=retention,
        ahead=ahead,
    )
