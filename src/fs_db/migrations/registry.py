"""Registry of all store migrations."""

from ..version import Version
from .base import Migration
from .migration_1_0_2_nightly_6_session_layout import MigrationSessionLayout
from .migration_1_0_2_nightly_14_extract_from_db import MigrationExtractFromDb
from .migration_1_0_2_nightly_15_from_v0 import MigrationFromV0
from .migration_1_0_4_nightly_2_repair_transcripts import MigrationRepairTranscripts
from .migration_1_0_7_nightly_1_events_sync import MigrationEventsSync


class DuplicateMigrationError(ValueError):
    """Raised when two migrations are registered for the same version."""

    pass


def build_registry(migrations: list[Migration]) -> list[Migration]:
    """
    Validate a list of migrations.

    Args:
        migrations: Migration instances, in any order

    Returns:
        The same migrations as a new list

    Raises:
        DuplicateMigrationError: If two migrations share an introduced_in version
    """
    seen: dict[Version, Migration] = {}
    for migration in migrations:
        other = seen.get(migration.introduced_in)
        if other is not None:
            raise DuplicateMigrationError(
                f"Migrations {type(other).__name__} and {type(migration).__name__} "
                f"are both introduced in {migration.introduced_in}"
            )
        seen[migration.introduced_in] = migration
    return list(migrations)


# Registry of all migrations; declaration order does not matter
MIGRATIONS: list[Migration] = build_registry(
    [
        MigrationSessionLayout(),
        MigrationExtractFromDb(),
        MigrationFromV0(),
        MigrationRepairTranscripts(),
        MigrationEventsSync(),
    ]
)


def latest_introduced_in_version(migrations: list[Migration] | None = None) -> Version:
    """
    Return the newest version any migration was introduced in.

    Args:
        migrations: Migrations to inspect (defaults to MIGRATIONS)

    Returns:
        Maximum introduced_in version

    Raises:
        ValueError: If there are no migrations
    """
    if migrations is None:
        migrations = MIGRATIONS
    if not migrations:
        raise ValueError("At least one migration must be registered")
    return max(migration.introduced_in for migration in migrations)
