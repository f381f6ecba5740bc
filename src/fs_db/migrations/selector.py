"""Selection of the migrations a store needs to reach a target version."""

from ..version import DetectedVersion, Explicit, Inferred, Version, baseline_for
from .base import Migration
from .registry import MIGRATIONS


def baseline_version(detected: DetectedVersion) -> Version | None:
    """
    Resolve the version a detected store is equivalent to.

    Args:
        detected: Detected store state

    Returns:
        Marker version, the legacy baseline, or None for a fresh store
    """
    if isinstance(detected, Explicit):
        return detected.version
    if isinstance(detected, Inferred):
        return baseline_for(detected.marker)
    return None


def select_migrations(
    detected: DetectedVersion,
    target: Version,
    migrations: list[Migration] | None = None,
) -> list[Migration]:
    """
    Compute the ordered migrations to run, without touching the filesystem.

    A migration is selected when it accepts the detected state and was
    introduced after the baseline and no later than the target. Fresh stores
    never need migrations.

    Args:
        detected: Detected store state
        target: Version the store should end up at
        migrations: Registered migrations, in any order (defaults to MIGRATIONS)

    Returns:
        Selected migrations sorted by introduced_in
    """
    baseline = baseline_version(detected)
    if baseline is None:
        return []
    if migrations is None:
        migrations = MIGRATIONS

    # sorted() is stable, so ties keep declaration order
    ordered = sorted(migrations, key=lambda m: m.introduced_in)

    return [
        migration
        for migration in ordered
        if migration.applies_to(detected) and baseline < migration.introduced_in <= target
    ]
