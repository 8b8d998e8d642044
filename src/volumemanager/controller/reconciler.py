"""
Reconciliation of configured volume groups against the cluster inventory.

The target set of volumes is regenerated from the group specs on every call
and compared with the actual volumes to produce create, purge and ACE
modification lists.
"""
from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from ..errors import RestResponseError, TransportError
from ..models import ActionBatch, GroupSpec, VolumeInstance, parse_volume_name
from ..session import Session
from .alarms import raise_alarm
from .scheduler import generate_suffixes, period_suffix

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_ace(expression: str) -> str:
    """The cluster may add or drop spaces in ACE expressions; compare without any."""
    return _WHITESPACE_RE.sub("", expression or "")


def aces_equal(left: str, right: str) -> bool:
    return normalize_ace(left) == normalize_ace(right)


def build_target_set(specs: Iterable[GroupSpec], now: datetime) -> Dict[str, VolumeInstance]:
    """Maps every volume name that should currently exist to its desired instance."""
    targets: Dict[str, VolumeInstance] = {}
    for spec in specs:
        for suffix in generate_suffixes(spec.interval, spec.retention, spec.ahead, now):
            volume = VolumeInstance.for_group(spec, suffix, now)
            targets[volume.name] = volume
    return targets


class ReconciliationEngine:
    """
    Computes the action batch for one reconciliation cycle.

    The only cluster call made here is the ACE read-back used to detect
    access policy drift right after a configuration reload. A dry run never
    raises cluster alarms or counts read-back failures against the session.
    """

    def __init__(
        self,
        cluster,
        session: Session,
        throttle_interval: float = 0.0,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ) -> None:
        self.cluster = cluster
        self.session = session
        self.throttle_interval = throttle_interval
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self.dry_run = dry_run

    def prepare(
        self,
        specs: Iterable[GroupSpec],
        inventory: Iterable[VolumeInstance],
        config_reloaded: bool,
        now: Optional[datetime] = None,
    ) -> ActionBatch:
        """
        Builds the create/purge/ACE modification lists.

        Args:
            specs: Configured group specs; a later spec replaces an earlier one of the same name
            inventory: Volumes currently present on the cluster
            config_reloaded: Whether the configuration was (re)loaded for this cycle
            now: Reference time, defaults to the current local time

        Returns:
            The action batch for this cycle.
        """
        now = now or datetime.now()
        self.logger.info("Preparing volume actions")

        spec_list = list(specs)
        groups: Dict[str, GroupSpec] = {spec.name: spec for spec in spec_list}
        targets = build_target_set(spec_list, now)
        self.logger.info(f"Generated target volume map, size={len(targets)}")

        batch = ActionBatch()
        actual_names = set()

        for actual in inventory:
            actual_names.add(actual.name)
            self._classify(actual, groups, targets, config_reloaded, now, batch)

        for name, volume in targets.items():
            if name not in actual_names:
                batch.create.append(volume)
                self.logger.info(f"Added volume to create list: {name}")

        self.logger.info(f"Finished preparing volume actions: {batch.summary()}")
        return batch

    def _classify(
        self,
        actual: VolumeInstance,
        groups: Dict[str, GroupSpec],
        targets: Dict[str, VolumeInstance],
        config_reloaded: bool,
        now: datetime,
        batch: ActionBatch,
    ) -> None:
        parsed = parse_volume_name(actual.name)
        spec = groups.get(parsed.group_name)
        if spec is None:
            self.logger.debug(f"Volume {actual.name} is not relevant for automation")
            return

        configured = targets.get(actual.name)
        if configured is None and spec.retention == 0:
            # kept forever: the observed period may lie outside the generated window
            configured = VolumeInstance.for_group(spec, parsed.suffix, now)

        if configured is not None:
            if spec.ace_enabled and config_reloaded and self._needs_ace_update(configured):
                batch.ace_mod.append(configured)
                self.logger.info(f"Added volume to ACE modification list: {actual.name}")
            return

        if not parsed.has_suffix:
            self.logger.warning(f"Volume {actual.name} has no date suffix, skipping")
            return

        today = period_suffix(spec.interval, now)
        if not today:
            self.logger.warning(
                f"Group '{spec.name}' has no creation interval but retention {spec.retention}, "
                f"not purging {actual.name}"
            )
            return

        if int(today) > int(parsed.suffix):
            batch.purge.append(actual)
            self.logger.info(f"Added volume to purge list: {actual.name}")
        else:
            self.logger.info(f"Volume {actual.name} is ahead, skipping")

    def _needs_ace_update(self, volume: VolumeInstance) -> bool:
        """Reads the applied ACEs back from the cluster and compares them with the configured ones."""
        if self.throttle_interval > 0:
            self._sleep(self.throttle_interval)

        try:
            read_ace, write_ace = self.cluster.get_volume_access_policy(volume.name)
        except TransportError as e:
            self.logger.error(f"Error retrieving ACEs of volume {volume.name}: {e}")
            if self.dry_run:
                self.session.failover()
                self.logger.info(f"ACE change would be enforced on the volume {volume.name}")
                return True
            if self.session.record_transport_failure():
                raise_alarm(
                    self.cluster,
                    self.session,
                    f"Volume Manager failed to reach REST nodes {self.session.failure_count} times",
                    self.logger,
                )
            raise_alarm(self.cluster, self.session, f"REST error reading ACEs of volume {volume.name}", self.logger)
            self.logger.info(f"ACE change will be enforced on the volume {volume.name}")
            return True
        except RestResponseError as e:
            self.logger.error(f"Error retrieving ACEs of volume {volume.name}: {e}")
            self.logger.info(f"ACE change will be enforced on the volume {volume.name}")
            return True

        self.logger.info(f"readAce on volume {volume.name}: [{read_ace}]")
        self.logger.info(f"writeAce on volume {volume.name}: [{write_ace}]")

        changed = False
        if not aces_equal(read_ace, volume.read_ace):
            self.logger.info(
                f"Read ACE changed on volume {volume.name} "
                f"[current='{normalize_ace(read_ace)}' configured='{normalize_ace(volume.read_ace)}']"
            )
            changed = True
        if not aces_equal(write_ace, volume.write_ace):
            self.logger.info(
                f"Write ACE changed on volume {volume.name} "
                f"[current='{normalize_ace(write_ace)}' configured='{normalize_ace(volume.write_ace)}']"
            )
            changed = True
        return changed
