"""Migration runner for store layout updates."""

import logging
import shutil
from datetime import datetime
from pathlib import Path

from rich.console import Console

from ..constants import BACKUP_TIMESTAMP_FORMAT
from ..detect import detect_version, write_version
from ..version import DetectedVersion, Fresh, Version, parse_version
from .base import Migration
from .registry import MIGRATIONS
from .selector import baseline_version, select_migrations

console = Console()
logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    Runs store migrations.

    Assumes exclusive access to the store directory for the duration of a run;
    nothing is locked.
    """

    def __init__(
        self,
        store_dir: Path,
        migrations: list[Migration] | None = None,
        backup: bool = False,
    ) -> None:
        """
        Initialize migration runner.

        Args:
            store_dir: Store directory
            migrations: Migrations to choose from (defaults to MIGRATIONS)
            backup: Copy the store aside before applying migrations
        """
        self.store_dir = store_dir
        self.migrations = MIGRATIONS if migrations is None else migrations
        self.backup = backup

    def detect(self) -> DetectedVersion:
        """Detect the current store state."""
        return detect_version(self.store_dir)

    def pending(self, target: Version | str) -> list[Migration]:
        """
        List migrations a run to ``target`` would apply, in order.

        Args:
            target: Target version

        Returns:
            Selected migrations
        """
        return select_migrations(self.detect(), parse_version(target), self.migrations)

    def needs_migration(self, target: Version | str) -> bool:
        """
        Check if any migrations need to be run.

        Returns:
            True if migrations are pending
        """
        return bool(self.pending(target))

    def backup_store(self) -> Path | None:
        """
        Copy the store directory next to itself before migrating.

        Returns:
            Path to the backup directory, or None if backup failed
        """
        try:
            store_dir = self.store_dir.resolve()
            timestamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
            backup_path = store_dir.parent / f"{store_dir.name}_backup_{timestamp}"
            shutil.copytree(store_dir, backup_path, symlinks=True)
            console.print(f"  Created backup: {backup_path}")
            return backup_path
        except OSError as e:
            console.print(f"[yellow]Warning:[/yellow] Failed to create backup: {e}")
            return None

    def run(self, target: Version | str) -> list[Migration]:
        """
        Bring the store up to ``target``.

        A fresh store only gets the version marker. Otherwise every selected
        migration runs in order and the marker is advanced to its version as
        soon as it completes, so an interrupted run resumes after the last
        completed migration. On failure the error propagates and later
        migrations are not attempted.

        Args:
            target: Version the store should end up at

        Returns:
            Migrations that were applied

        Raises:
            MigrationError: If a migration fails
            OSError: On I/O failure, including failure to write the marker
        """
        target = parse_version(target)
        detected = self.detect()
        logger.debug(f"Detected store state for {self.store_dir}: {detected}")

        if isinstance(detected, Fresh):
            write_version(self.store_dir, target)
            return []

        baseline = baseline_version(detected)
        if baseline is not None and baseline > target:
            # Nothing runs backwards; the marker still ends at the target
            logger.warning(f"Store at {baseline} is newer than {target}; no migrations will run")

        selected = select_migrations(detected, target, self.migrations)
        backup_path = None

        if selected:
            console.print(f"Running store migrations ({detected} -> v{target})...")
            if self.backup:
                backup_path = self.backup_store()

        for migration in selected:
            try:
                console.print(f"  Applying migration {migration.introduced_in}: {migration.description()}")
                migration.run(self.store_dir)
            except Exception as e:
                console.print(f"[red]Error:[/red] Migration {migration.introduced_in} failed: {e}")
                if backup_path:
                    console.print(f"[yellow]Hint:[/yellow] Restore backup from: {backup_path}")
                raise

            try:
                write_version(self.store_dir, migration.introduced_in)
            except OSError as e:
                console.print(f"[red]Error:[/red] Could not record version {migration.introduced_in}: {e}")
                raise

        write_version(self.store_dir, target)

        if selected:
            console.print("Store migrations completed.")
        return selected


def run(store_dir: Path, app_version: Version | str, backup: bool = False) -> list[Migration]:
    """
    Migrate the store at ``store_dir`` to ``app_version``.

    Args:
        store_dir: Store directory
        app_version: Version of the running application
        backup: Copy the store aside before applying migrations

    Returns:
        Migrations that were applied
    """
    return MigrationRunner(store_dir, backup=backup).run(app_version)
