"""Migration 1.0.2-nightly.6: move sessions into id-named folders."""

import logging
from pathlib import Path

from rich.console import Console

from ..constants import LEGACY_TRANSCRIPT_FILE, SESSION_META_FILE, SESSION_TRANSCRIPT_FILE, SESSIONS_DIR
from ..utils import is_session_id, load_json
from ..version import DetectedVersion, Inferred, LegacyMarker, Version
from .base import Migration
from .ops import MutationBatch

console = Console()
logger = logging.getLogger(__name__)


def plan_session_layout(store_dir: Path, batch: MutationBatch) -> None:
    """Queue folder renames to the session id and transcript file renames."""
    sessions_dir = store_dir / SESSIONS_DIR
    if not sessions_dir.is_dir():
        return

    claimed: set[Path] = set()
    for folder in sorted(sessions_dir.iterdir()):
        if not folder.is_dir():
            continue

        target_folder = folder
        meta = load_json(folder / SESSION_META_FILE)
        session_id = meta.get("id") if isinstance(meta, dict) else None
        if is_session_id(session_id) and session_id != folder.name:
            candidate = sessions_dir / session_id
            if candidate.exists() or candidate in claimed:
                logger.warning(f"Not moving {folder}: {candidate} already exists")
            else:
                batch.rename(folder, candidate)
                claimed.add(candidate)
                target_folder = candidate

        legacy_transcript = folder / LEGACY_TRANSCRIPT_FILE
        if legacy_transcript.is_file() and not (folder / SESSION_TRANSCRIPT_FILE).exists():
            batch.rename(target_folder / LEGACY_TRANSCRIPT_FILE, target_folder / SESSION_TRANSCRIPT_FILE)


class MigrationSessionLayout(Migration):
    """Migration 1.0.2-nightly.6: move sessions into id-named folders.

    Early nightlies named session folders freely and kept the transcript in
    ``_transcript.json``. Each folder is renamed to the ``id`` from its
    ``_meta.json`` and the transcript becomes ``transcript.json``. Stores older
    than the nightlies are converted straight to the new layout by later
    migrations and are skipped here.
    """

    introduced_in = Version.parse("1.0.2-nightly.6")

    def applies_to(self, detected: DetectedVersion) -> bool:
        """Skip pre-nightly legacy stores."""
        if isinstance(detected, Inferred):
            return detected.marker not in (LegacyMarker.V0_0_84, LegacyMarker.V1_0_1)
        return True

    def description(self) -> str:
        """Return migration description."""
        return "Move sessions into id-named folders"

    def run(self, store_dir: Path) -> None:
        """Rename session folders and transcript files."""
        batch = MutationBatch()
        plan_session_layout(store_dir, batch)
        applied = batch.commit()

        if applied > 0:
            console.print(f"  Reorganized session layout ({applied} change(s))")
