import click
from pathlib import Path

from ..utils.log import setup_logging
from . import handlers

config_dir_option = click.option(
    "-c",
    "--config-dir",
    "config_dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False),
    required=True,
    help="Directory containing the volume manager configuration.",
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level.",
)
def main(log_level: str) -> None:
    """Keeps time-partitioned cluster volumes in line with their group configuration."""
    setup_logging(log_level)


@main.command(help="Run the reconciliation loop until interrupted.")
@config_dir_option
def run(config_dir: Path) -> None:
    handlers.run_manager(config_dir)


@main.command(help="Load the configuration and show the volume groups.")
@config_dir_option
def validate(config_dir: Path) -> None:
    handlers.validate_config(config_dir)


@main.command(help="Show the volume actions of the next cycle without executing them.")
@config_dir_option
def plan(config_dir: Path) -> None:
    handlers.plan_actions(config_dir)


if __name__ == "__main__":
    main()
