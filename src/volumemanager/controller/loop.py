"""
The control loop driving reconciliation cycles.

Logic flow:
(1) acquire a credential, sleeping and retrying until it succeeds
(2) reload the configuration if it changed since the last load
(3) retrieve the current volume list from the cluster
(4) compute the volume actions for the configured groups
(5) execute the actions one by one
(6) sleep for the rest of the loop interval; go to (1) once the credential
    has expired, otherwise to (2)
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..cluster.auth import auth_provider_for
from ..cluster.filesystem import HadoopFileSystem, PublicAclService
from ..cluster.rest import MaprRestClient
from ..config.store import ConfigStore, VolumeManagerConfiguration
from ..errors import AuthenticationError, ConfigurationError, RestResponseError, TransportError
from ..models import ActionBatch
from ..session import Session
from .alarms import raise_alarm
from .executor import FS_ACTION_RETRY_DELAY, ActionExecutor, ExecutionResult
from .reconciler import ReconciliationEngine


class LoopState(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED = "Authenticated"
    SLEEPING = "Sleeping"
    SHUTTING_DOWN = "ShuttingDown"


@dataclass
class CycleOutcome:
    reconciled: bool
    batch: Optional[ActionBatch] = None
    result: Optional[ExecutionResult] = None


class ControlLoop:
    """
    Runs reconciliation cycles until a shutdown is requested.

    Exactly one cycle runs at a time. Shutdown and credential expiry are
    checked between cycles; an external call in flight is never interrupted.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        config: VolumeManagerConfiguration,
        auth_provider=None,
        cluster_factory: Callable[..., Any] = MaprRestClient,
        filesystem=None,
        acl_service=None,
        logger: Optional[logging.Logger] = None,
        now: Callable[[], datetime] = datetime.now,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        retry_delay: float = FS_ACTION_RETRY_DELAY,
    ) -> None:
        self.config_store = config_store
        self.config = config
        self.auth_provider = auth_provider or auth_provider_for(config.settings.credentials)
        self.cluster_factory = cluster_factory
        self.filesystem = filesystem or HadoopFileSystem()
        self.acl_service = acl_service or PublicAclService()
        self.logger = logger or logging.getLogger(__name__)
        self._now = now
        self._clock = clock
        self._sleep = sleep or self._interruptible_sleep
        self.retry_delay = retry_delay

        self.session = Session(
            endpoints=list(config.settings.rest_nodes),
            last_loaded=config.loaded_at,
            config_reloaded=True,
        )
        self.cluster = cluster_factory(config.settings, self.session)
        self.state = LoopState.UNAUTHENTICATED
        self._shutdown = asyncio.Event()

    @property
    def loop_interval(self) -> float:
        return self.config.settings.loop_interval.total_seconds()

    def request_shutdown(self) -> None:
        self.logger.info("Shutdown requested, stopping after the current cycle")
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    async def run(self) -> None:
        self.logger.info("Running main application loop")

        while not self.shutdown_requested:
            self.state = LoopState.UNAUTHENTICATED
            try:
                credential = await asyncio.to_thread(self.auth_provider.login, self.config.settings.credentials)
            except AuthenticationError as e:
                self.logger.error(f"Authentication failed: {e}")
                self.state = LoopState.SLEEPING
                await self._sleep(self.loop_interval)
                continue

            self.session.credential = credential
            self.state = LoopState.AUTHENTICATED

            while not self.shutdown_requested:
                if self.auth_provider.is_expired(credential, self._now()):
                    self.logger.info("Credential expired, logging in again")
                    break

                started = self._clock()
                await self.run_cycle()
                elapsed = self._clock() - started

                self.state = LoopState.SLEEPING
                await self._sleep(max(0.0, self.loop_interval - elapsed))
                self.state = LoopState.AUTHENTICATED

        self.state = LoopState.SHUTTING_DOWN
        self.logger.info("Control loop stopped")

    async def run_cycle(self) -> CycleOutcome:
        """
        One reconciliation pass: reload check, inventory fetch, prepare, execute.

        The reload flag applies to this cycle only and is cleared whether or not
        the cycle got as far as reconciling.
        """
        self.reload_if_changed()
        try:
            return await self._reconcile()
        finally:
            self.session.config_reloaded = False

    async def _reconcile(self) -> CycleOutcome:
        try:
            inventory = await asyncio.to_thread(self.cluster.list_volumes)
        except TransportError as e:
            self.logger.error(f"Error while retrieving cluster volume data: {e}")
            if self.session.record_transport_failure():
                raise_alarm(
                    self.cluster,
                    self.session,
                    f"Volume Manager failed to retrieve volume list {self.session.failure_count} times",
                    self.logger,
                )
            return CycleOutcome(reconciled=False)
        except RestResponseError as e:
            self.logger.error(f"Cluster returned an invalid volume list: {e}")
            return CycleOutcome(reconciled=False)

        self.session.reset_failures()
        self.logger.info(f"Retrieved {len(inventory)} volumes from {self.session.endpoint}")

        settings = self.config.settings
        engine = ReconciliationEngine(
            self.cluster,
            self.session,
            throttle_interval=settings.rest_throttling_interval.total_seconds(),
            logger=self.logger,
        )
        batch = await asyncio.to_thread(
            engine.prepare, self.config.specs, inventory, self.session.config_reloaded, self._now()
        )

        executor = ActionExecutor(
            self.cluster,
            self.filesystem,
            self.acl_service,
            self.session,
            fs_action_attempts=settings.fs_action_attempts,
            logger=self.logger,
            retry_delay=self.retry_delay,
        )
        result = await executor.execute(batch)
        return CycleOutcome(reconciled=True, batch=batch, result=result)

    def reload_if_changed(self) -> bool:
        """
        Reloads the configuration if a file changed since the last load.

        An invalid configuration is logged and the previous one stays in effect.
        """
        if not self.config_store.has_changed(self.session.last_loaded):
            return False

        self.logger.info("Configuration will be reloaded")
        try:
            config = self.config_store.load()
        except ConfigurationError as e:
            self.logger.error(f"Configuration reload failed, keeping previous configuration: {e}")
            self.session.last_loaded = time.time()
            return False

        self.config = config
        self.session.update_endpoints(config.settings.rest_nodes)
        self.session.last_loaded = config.loaded_at
        self.session.config_reloaded = True
        self.cluster = self.cluster_factory(config.settings, self.session)
        return True

    async def _interruptible_sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        self.logger.info(f"Sleeping {seconds:.0f} sec ...")
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
