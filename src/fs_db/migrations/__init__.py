"""Store migration system."""

from .base import Migration, MigrationError
from .migration_1_0_2_nightly_6_session_layout import MigrationSessionLayout
from .migration_1_0_2_nightly_14_extract_from_db import MigrationExtractFromDb
from .migration_1_0_2_nightly_15_from_v0 import MigrationFromV0
from .migration_1_0_4_nightly_2_repair_transcripts import MigrationRepairTranscripts
from .migration_1_0_7_nightly_1_events_sync import MigrationEventsSync
from .ops import MutationBatch, RemoveFile, RenameFile, WriteFile, apply_ops
from .registry import MIGRATIONS, DuplicateMigrationError, build_registry, latest_introduced_in_version
from .runner import MigrationRunner, run
from .selector import baseline_version, select_migrations

__all__ = [
    "MIGRATIONS",
    "DuplicateMigrationError",
    "Migration",
    "MigrationError",
    "MigrationEventsSync",
    "MigrationExtractFromDb",
    "MigrationFromV0",
    "MigrationRepairTranscripts",
    "MigrationRunner",
    "MigrationSessionLayout",
    "MutationBatch",
    "RemoveFile",
    "RenameFile",
    "WriteFile",
    "apply_ops",
    "baseline_version",
    "build_registry",
    "latest_introduced_in_version",
    "run",
    "select_migrations",
]
