"""
Best-effort execution of a volume action batch.

Purges run first so that mount paths are free, then creates, then ACE
modifications. A failing item is logged and alarmed; the remaining items of
the batch are always processed. Only filesystem operations are retried.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..errors import FileSystemError, PartialActionFailure, RestResponseError, TransportError
from ..models import ActionBatch, VolumeInstance
from ..session import Session
from .alarms import raise_alarm

FS_ACTION_RETRY_DELAY = 5.0


@dataclass
class ExecutionResult:
    purged: int = 0
    created: int = 0
    ace_modified: int = 0
    failed: int = 0


class ActionExecutor:
    """Applies an ActionBatch to the cluster through its collaborators."""

    def __init__(
        self,
        cluster,
        filesystem,
        acl_service,
        session: Session,
        fs_action_attempts: int = 3,
        logger: Optional[logging.Logger] = None,
        retry_delay: float = FS_ACTION_RETRY_DELAY,
    ) -> None:
        self.cluster = cluster
        self.filesystem = filesystem
        self.acl_service = acl_service
        self.session = session
        self.fs_action_attempts = max(1, fs_action_attempts)
        self.logger = logger or logging.getLogger(__name__)
        self.retry_delay = retry_delay

    async def execute(self, batch: ActionBatch) -> ExecutionResult:
        result = ExecutionResult()
        if not len(batch):
            self.logger.info("No pending volume actions")
            return result

        self.logger.info(f"Executing volume actions: {batch.summary()}")

        for volume in batch.purge:
            if await self._run_item(self.purge, volume):
                result.purged += 1
            else:
                result.failed += 1

        for volume in batch.create:
            if await self._run_item(self.create, volume):
                result.created += 1
            else:
                result.failed += 1

        for volume in batch.ace_mod:
            if await self._run_item(self.modify_aces, volume):
                result.ace_modified += 1
            else:
                result.failed += 1

        self.logger.info(
            f"Finished executing volume actions: purged={result.purged} created={result.created} "
            f"aceMod={result.ace_modified} failed={result.failed}"
        )
        return result

    async def _run_item(self, action: Callable[[VolumeInstance], Any], volume: VolumeInstance) -> bool:
        try:
            await action(volume)
            return True
        except PartialActionFailure as e:
            self.logger.error(str(e))
            return False

    async def purge(self, volume: VolumeInstance) -> None:
        self.logger.info(f"Purging volume {volume.name}")
        await self._call_cluster(volume.name, "purge", self.cluster.remove_volume, volume.name)
        self.logger.info(f"Purged volume {volume.name}")

    async def create(self, volume: VolumeInstance) -> None:
        """
        Creates one volume: ensures the mount parent directory, creates the
        volume, then sets ownership, permission and ACEs.
        """
        self.logger.info(f"Creating volume {volume.name} on path {volume.path}")
        if not volume.path:
            raise PartialActionFailure(volume.name, "create", ValueError("volume has no mount path"))

        parent = volume.path.rstrip("/").rsplit("/", 1)[0] or "/"
        await self._retry_fs(volume.name, volume.path, "ensure parent directory", self.filesystem.ensure_directory, parent)

        await self._call_cluster(volume.name, "create", self.cluster.create_volume, volume)
        self.logger.info(f"Created volume {volume.name}")

        await self._retry_fs(volume.name, volume.path, "set ownership and permission", self._set_ownership_and_permission, volume)

        if volume.ace_enabled:
            await self._call_cluster(
                volume.name,
                "set ACEs",
                self.cluster.set_volume_access_policy,
                volume.name,
                volume.read_ace,
                volume.write_ace,
            )
            try:
                await asyncio.to_thread(self.acl_service.set_path_public_grants, volume.path)
            except FileSystemError as e:
                raise_alarm(self.cluster, self.session, f"FS ACE setting failure on {volume.path}", self.logger)
                raise PartialActionFailure(volume.name, "set public ACEs", e)
            self.logger.info(f"Setting public ACEs on {volume.path} successful")

    async def modify_aces(self, volume: VolumeInstance) -> None:
        self.logger.info(
            f"Setting ACEs on {volume.name} [readAce='{volume.read_ace}' writeAce='{volume.write_ace}']"
        )
        await self._call_cluster(
            volume.name,
            "modify ACEs",
            self.cluster.set_volume_access_policy,
            volume.name,
            volume.read_ace,
            volume.write_ace,
        )

    def _set_ownership_and_permission(self, volume: VolumeInstance) -> None:
        self.filesystem.set_owner(volume.path, volume.owner, volume.group)
        self.logger.info(f"Changed ownership of {volume.path} to {volume.owner}:{volume.group}")
        self.filesystem.set_permission(volume.path, volume.permission)
        self.logger.info(f"Changed permission of {volume.path} to {volume.permission}")

    async def _call_cluster(self, volume_name: str, step: str, func: Callable[..., Any], *args: Any) -> Any:
        """Runs one cluster API call; failures are alarmed and turned into PartialActionFailure."""
        try:
            return await asyncio.to_thread(func, *args)
        except TransportError as e:
            self.logger.error(f"REST call to {self.session.endpoint} failed during {step} of {volume_name}: {e}")
            if self.session.record_transport_failure():
                raise_alarm(
                    self.cluster,
                    self.session,
                    f"Volume Manager failed to reach REST nodes {self.session.failure_count} times",
                    self.logger,
                )
            raise_alarm(self.cluster, self.session, f"REST error during {step} of volume {volume_name}", self.logger)
            raise PartialActionFailure(volume_name, step, e)
        except RestResponseError as e:
            raise_alarm(self.cluster, self.session, f"REST error response during {step} of volume {volume_name}", self.logger)
            raise PartialActionFailure(volume_name, step, e)

    async def _retry_fs(
        self, volume_name: str, path: str, step: str, func: Callable[..., Any], *args: Any
    ) -> None:
        """Retries a filesystem operation with a fixed delay; alarms once all attempts are exhausted."""
        errors: List[Exception] = []
        for attempt in range(1, self.fs_action_attempts + 1):
            self.logger.info(f"{step} on {path}: attempt {attempt} of {self.fs_action_attempts}")
            try:
                await asyncio.to_thread(func, *args)
                return
            except FileSystemError as e:
                errors.append(e)
                self.logger.error(f"Failure performing filesystem operation: {e}")
                if attempt < self.fs_action_attempts:
                    self.logger.info(f"Sleeping {self.retry_delay} sec before next attempt ...")
                    await asyncio.sleep(self.retry_delay)

        raise_alarm(self.cluster, self.session, f"FS operation failure on {path}", self.logger)
        raise PartialActionFailure(volume_name, step, errors[-1])
