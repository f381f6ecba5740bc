"""CLI interface for fs-db."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from . import __version__
from .config import load_config
from .constants import LOG_DATE_FORMAT, LOG_FORMAT
from .display import display_detected, display_plan
from .error_guidance import guidance_for
from .migrations import MigrationError, MigrationRunner, latest_introduced_in_version
from .version import Version, VersionParseError

console = Console()


class VersionParamType(click.ParamType):
    """Click parameter type for release versions."""

    name = "version"

    def convert(self, value, param, ctx) -> Version:
        if isinstance(value, Version):
            return value
        try:
            return Version.parse(value)
        except VersionParseError as e:
            self.fail(str(e), param, ctx)


VERSION = VersionParamType()


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def _resolve_store_dir(ctx: click.Context, store_dir: Path | None) -> Path:
    return store_dir if store_dir is not None else ctx.obj["config"].store_dir


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom config file path",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """fs-db: detect and migrate the on-disk layout of an application store."""
    ctx.ensure_object(dict)

    try:
        ctx.obj["config"] = load_config(config)
    except (FileNotFoundError, ValueError, OSError) as e:
        console.print(f"[red]Error:[/red] Configuration: {e}")
        sys.exit(1)

    _configure_logging("DEBUG" if verbose else ctx.obj["config"].log_level)


@cli.command()
@click.argument("store-dir", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def detect(ctx: click.Context, store_dir: Path | None) -> None:
    """
    Show which layout a store directory holds.

    Examples:

        \b
        fs-db detect ~/.local/share/app/store
    """
    store_dir = _resolve_store_dir(ctx, store_dir)
    display_detected(store_dir, MigrationRunner(store_dir).detect(), console)


@cli.command()
@click.argument("store-dir", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("--to", "target", required=True, type=VERSION, help="Target application version")
@click.pass_context
def plan(ctx: click.Context, store_dir: Path | None, target: Version) -> None:
    """
    List the migrations a run to a version would apply.

    Examples:

        \b
        fs-db plan --to 1.0.7
    """
    store_dir = _resolve_store_dir(ctx, store_dir)
    runner = MigrationRunner(store_dir)
    display_detected(store_dir, runner.detect(), console)
    display_plan(runner.pending(target), target, console)


@cli.command()
@click.argument("store-dir", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option("--to", "target", required=True, type=VERSION, help="Target application version")
@click.option(
    "--backup/--no-backup",
    default=None,
    help="Copy the store aside before migrating (default: from config)",
)
@click.pass_context
def migrate(ctx: click.Context, store_dir: Path | None, target: Version, backup: bool | None) -> None:
    """
    Migrate a store to a version.

    Detects the current layout, applies every pending migration in order and
    records the version after each one. A failed run can be repeated: it
    resumes after the last completed migration.

    Examples:

        \b
        # Migrate the configured store
        fs-db migrate --to 1.0.7

        \b
        # Migrate a specific directory without a backup
        fs-db migrate /path/to/store --to 1.0.7 --no-backup
    """
    config = ctx.obj["config"]
    store_dir = _resolve_store_dir(ctx, store_dir)
    use_backup = config.backup if backup is None else backup

    runner = MigrationRunner(store_dir, backup=use_backup)
    try:
        applied = runner.run(target)
    except (MigrationError, OSError) as e:
        console.print(guidance_for(e, store_dir).render())
        sys.exit(1)

    if applied:
        console.print(f"[green]✓[/green] Applied {len(applied)} migration(s); store is at {target}")
    else:
        console.print(f"No migrations were needed for {target}.")


@cli.command()
def latest() -> None:
    """Print the newest version any migration was introduced in."""
    console.print(str(latest_introduced_in_version()))


if __name__ == "__main__":
    cli()
