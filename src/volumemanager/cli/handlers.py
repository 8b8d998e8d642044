import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List

from rich.console import Console
from rich.table import Table

from ..cluster.auth import auth_provider_for
from ..cluster.rest import MaprRestClient
from ..config.store import ConfigStore, VolumeManagerConfiguration
from ..controller.loop import ControlLoop
from ..controller.reconciler import ReconciliationEngine
from ..errors import AuthenticationError, ConfigurationError, RestResponseError, TransportError
from ..models import ActionBatch, VolumeInstance
from ..session import Session

logger = logging.getLogger("volumemanager")


def _load_or_exit(store: ConfigStore, console: Console) -> VolumeManagerConfiguration:
    try:
        return store.load()
    except ConfigurationError as e:
        console.print(f"[red]Configuration is invalid: {e}[/red]")
        sys.exit(1)


def run_manager(config_dir: Path) -> None:
    """Runs the control loop until SIGINT or SIGTERM."""
    console = Console()
    store = ConfigStore(config_dir)
    config = _load_or_exit(store, console)

    logger.info("Starting Volume Manager")
    control_loop = ControlLoop(store, config)

    async def _main() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, control_loop.request_shutdown)
        await control_loop.run()

    asyncio.run(_main())
    logger.info("Volume Manager stopped")


def validate_config(config_dir: Path) -> None:
    """Loads the configuration and prints the groups it defines."""
    console = Console()
    config = _load_or_exit(ConfigStore(config_dir), console)
    settings = config.settings

    console.print(f"REST nodes: [cyan]{', '.join(settings.rest_nodes)}[/cyan] (port {settings.rest_port})")
    console.print(f"Loop interval: [cyan]{settings.loop_interval.total_seconds():.0f}s[/cyan]")
    console.print(f"Volume groups directory: [cyan]{settings.groups_dir}[/cyan]")

    if not config.catalog.groups:
        console.print("[yellow]No volume groups loaded.[/yellow]")
    else:
        table = Table(title="Volume groups")
        table.add_column("Name", style="cyan")
        table.add_column("Interval", style="green")
        table.add_column("Retention", justify="right")
        table.add_column("Ahead", justify="right")
        table.add_column("Path format", style="magenta")
        table.add_column("Owner", style="yellow")
        table.add_column("ACE", style="red")
        for spec in config.catalog.groups.values():
            table.add_row(
                spec.name,
                spec.interval.value,
                "forever" if spec.retention == 0 else str(spec.retention),
                str(spec.ahead),
                spec.path_format,
                f"{spec.owner}:{spec.group}",
                "yes" if spec.ace_enabled else "no",
            )
        console.print(table)

    if config.catalog.skipped:
        skipped = Table(title="Skipped group files")
        skipped.add_column("File", style="cyan")
        skipped.add_column("Reason", style="red")
        for result in config.catalog.skipped:
            skipped.add_row(result.path.name, result.reason or "")
        console.print(skipped)


def _volume_table(title: str, volumes: List[VolumeInstance]) -> Table:
    table = Table(title=title)
    table.add_column("Volume", style="cyan")
    table.add_column("Path", style="magenta")
    for volume in volumes:
        table.add_row(volume.name, volume.path or "")
    return table


def print_batch(batch: ActionBatch, console: Console) -> None:
    if not len(batch):
        console.print("[green]No pending volume actions.[/green]")
        return
    for title, volumes in (("Purge", batch.purge), ("Create", batch.create), ("ACE modification", batch.ace_mod)):
        if volumes:
            console.print(_volume_table(title, volumes))


def plan_actions(config_dir: Path) -> None:
    """Computes the actions of one cycle against the live cluster without executing them."""
    console = Console()
    config = _load_or_exit(ConfigStore(config_dir), console)
    settings = config.settings

    try:
        auth_provider_for(settings.credentials).login(settings.credentials)
    except AuthenticationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    session = Session(endpoints=list(settings.rest_nodes))
    cluster = MaprRestClient(settings, session)

    inventory = None
    for _ in settings.rest_nodes:
        try:
            inventory = cluster.list_volumes()
            break
        except TransportError as e:
            console.print(f"[yellow]{e}[/yellow]")
            session.failover()
        except RestResponseError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
    if inventory is None:
        console.print("[red]Could not retrieve the volume list from any REST node.[/red]")
        sys.exit(1)

    engine = ReconciliationEngine(
        cluster,
        session,
        throttle_interval=settings.rest_throttling_interval.total_seconds(),
        dry_run=True,
    )
    batch = engine.prepare(config.specs, inventory, config_reloaded=True)
    print_batch(batch, console)
