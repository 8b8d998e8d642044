"""
Data types shared by the reconciliation engine, executor and control loop.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)

# Fixed-width suffix format used for every interval; period starts are encoded
# as full dates so numeric and lexicographic order coincide.
SUFFIX_DATE_FORMAT = "%Y%m%d"

_SUFFIX_RE = re.compile(r"^(?P<group>.*)_(?P<suffix>\d+)$")


class Interval(str, Enum):
    """Creation interval of a volume group."""

    DAY = "day"
    MONTH = "month"
    YEAR = "year"
    NONE = "none"


@dataclass(frozen=True)
class GroupSpec:
    """Declarative template for a family of time-partitioned volumes."""

    name: str
    path_format: str
    owner: str
    group: str
    accounting_entity: str
    topology: str
    interval: Interval
    retention: int
    ahead: int
    permission: str = "755"
    accounting_entity_type: int = 0
    schedule: int = 0
    replication: int = 3
    min_replication: int = 2
    replication_type: str = "high_throughput"
    ace_enabled: bool = False
    read_ace: str = ""
    write_ace: str = ""


@dataclass(frozen=True)
class VolumeInstance:
    """
    A single volume, either desired (built from a GroupSpec) or observed on
    the cluster (name and mount directory only).

    Desired instances carry a copy of the owning group's creation attributes
    taken at construction time.
    """

    name: str
    path: Optional[str] = None
    group_name: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    permission: Optional[str] = None
    accounting_entity: Optional[str] = None
    accounting_entity_type: int = 0
    topology: Optional[str] = None
    schedule: int = 0
    replication: int = 3
    min_replication: int = 2
    replication_type: Optional[str] = None
    ace_enabled: bool = False
    read_ace: str = ""
    write_ace: str = ""

    @classmethod
    def observed(cls, name: str, mount_dir: Optional[str] = None) -> "VolumeInstance":
        return cls(name=name, path=mount_dir)

    @classmethod
    def for_group(cls, spec: GroupSpec, suffix: str, now: datetime) -> "VolumeInstance":
        """Builds the desired instance of `spec` for the period encoded by `suffix`."""
        name = spec.name if not suffix else f"{spec.name}_{suffix}"
        return cls(
            name=name,
            path=compute_path(spec.path_format, suffix, now),
            group_name=spec.name,
            owner=spec.owner,
            group=spec.group,
            permission=spec.permission,
            accounting_entity=spec.accounting_entity,
            accounting_entity_type=spec.accounting_entity_type,
            topology=spec.topology,
            schedule=spec.schedule,
            replication=spec.replication,
            min_replication=spec.min_replication,
            replication_type=spec.replication_type,
            ace_enabled=spec.ace_enabled,
            read_ace=spec.read_ace,
            write_ace=spec.write_ace,
        )


def compute_path(path_format: str, suffix: str, now: datetime) -> Optional[str]:
    """
    Formats the mount path template for the period encoded by `suffix`.

    An empty suffix formats the template with `now`. A suffix that is not a
    valid date leaves the path unset.
    """
    if not suffix:
        return now.strftime(path_format)
    try:
        period = datetime.strptime(suffix, SUFFIX_DATE_FORMAT)
    except ValueError as e:
        logger.error(f"Date suffix '{suffix}' cannot be parsed: {e}")
        return None
    return period.strftime(path_format)


@dataclass(frozen=True)
class ParsedVolumeName:
    """Outcome of splitting an observed volume name into group name and period suffix."""

    group_name: str
    suffix: str

    @property
    def has_suffix(self) -> bool:
        return bool(self.suffix)


def parse_volume_name(name: str) -> ParsedVolumeName:
    """Strips a trailing `_<digits>` suffix, if any, from a volume name."""
    match = _SUFFIX_RE.match(name)
    if match is None:
        return ParsedVolumeName(group_name=name, suffix="")
    return ParsedVolumeName(group_name=match.group("group"), suffix=match.group("suffix"))


@dataclass
class ActionBatch:
    """Volume actions computed for a single reconciliation cycle."""

    create: List[VolumeInstance] = field(default_factory=list)
    purge: List[VolumeInstance] = field(default_factory=list)
    ace_mod: List[VolumeInstance] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.create) + len(self.purge) + len(self.ace_mod)

    def summary(self) -> str:
        return f"purge={len(self.purge)} create={len(self.create)} aceMod={len(self.ace_mod)}"
