"""Display functions for fs-db CLI output."""

from pathlib import Path

from rich.console import Console
from rich.table import Table

from .migrations import Migration
from .version import DetectedVersion, Explicit, Fresh, Inferred, Version, baseline_for


def display_detected(store_dir: Path, detected: DetectedVersion, console: Console) -> None:
    """
    Print the detected state of a store.

    Args:
        store_dir: Store directory
        detected: Detection result
        console: Rich console instance for output
    """
    if isinstance(detected, Fresh):
        console.print(f"{store_dir}: [green]fresh[/green] (no prior data)")
    elif isinstance(detected, Explicit):
        console.print(f"{store_dir}: version [cyan]{detected.version}[/cyan]")
    elif isinstance(detected, Inferred):
        console.print(
            f"{store_dir}: legacy layout [magenta]{detected.marker.value}[/magenta] "
            f"(treated as {baseline_for(detected.marker)})"
        )


def display_plan(migrations: list[Migration], target: Version, console: Console) -> None:
    """
    Print the migrations a run would apply, in order.

    Args:
        migrations: Selected migrations
        target: Target version
        console: Rich console instance for output
    """
    if not migrations:
        console.print(f"No migrations needed to reach {target}.")
        return

    table = Table(title=f"Migrations to {target}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Version", style="cyan")
    table.add_column("Description")

    for index, migration in enumerate(migrations, start=1):
        table.add_row(str(index), str(migration.introduced_in), migration.description())

    console.print(table)
