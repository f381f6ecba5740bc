"""Migration 1.0.2-nightly.14: extract sessions and events from the db snapshot."""

from pathlib import Path
from typing import Any

from rich.console import Console

from ..constants import DB_TABLE_EVENTS, DB_TABLE_SESSIONS, EVENTS_FILE
from ..utils import dump_json, is_session_id, load_json
from ..version import DetectedVersion, Inferred, LegacyMarker, Version
from .base import Migration, MigrationError
from .ops import MutationBatch
from .utils import plan_session_files, read_snapshot_table

console = Console()

SESSION_META_FIELDS = ("id", "user_id", "created_at", "title", "event_id")


def build_session_meta(doc: dict[str, Any]) -> dict[str, Any]:
    """Build ``_meta.json`` content from a snapshot session row."""
    meta: dict[str, Any] = {key: doc[key] for key in SESSION_META_FIELDS if doc.get(key) is not None}
    meta.setdefault("user_id", "")
    meta.setdefault("title", "")
    participants = doc.get("participants")
    meta["participants"] = participants if isinstance(participants, list) else []
    return meta


def plan_sessions(store_dir: Path, batch: MutationBatch) -> int:
    """Queue session folders for snapshot rows; returns the number of sessions touched."""
    touched = 0
    for doc in read_snapshot_table(store_dir, DB_TABLE_SESSIONS):
        session_id = doc.get("id")
        if not is_session_id(session_id):
            continue

        words = doc.get("words")
        memo = doc.get("raw_memo")
        if plan_session_files(
            store_dir,
            session_id,
            build_session_meta(doc),
            words if isinstance(words, list) else None,
            memo if isinstance(memo, str) else None,
            batch,
        ):
            touched += 1
    return touched


def plan_events(store_dir: Path, batch: MutationBatch) -> int:
    """Queue a merged ``events.json``; rows already in the file win."""
    rows = read_snapshot_table(store_dir, DB_TABLE_EVENTS)
    if not rows:
        return 0

    events_path = store_dir / EVENTS_FILE
    events: dict[str, Any] = {}
    if events_path.exists():
        existing = load_json(events_path)
        if not isinstance(existing, dict):
            raise MigrationError(f"Cannot merge events into {events_path}: not a JSON object")
        events.update(existing)

    added = 0
    for doc in rows:
        doc_id = doc.pop("_doc_id")
        row_id = str(doc.pop("id", None) or doc_id)
        if row_id in events:
            continue
        events[row_id] = doc
        added += 1

    if added:
        batch.write(events_path, dump_json(events), force=True)
    return added


class MigrationExtractFromDb(Migration):
    """Migration 1.0.2-nightly.14: extract sessions and events from the db snapshot.

    Until this release the application kept its rows in a single document
    database snapshot (``db.json``). Sessions become ``sessions/<id>/`` folders
    and events are merged into ``events.json``. The snapshot itself is left in
    place. Files that already exist are never overwritten, so a retried run
    only writes what is still missing.
    """

    introduced_in = Version.parse("1.0.2-nightly.14")

    def applies_to(self, detected: DetectedVersion) -> bool:
        """Skip v0 stores, whose snapshot uses a different schema."""
        return not (isinstance(detected, Inferred) and detected.marker == LegacyMarker.V0_0_84)

    def description(self) -> str:
        """Return migration description."""
        return "Extract sessions and events from the db snapshot"

    def run(self, store_dir: Path) -> None:
        """Write session folders and events.json from db.json."""
        batch = MutationBatch()
        sessions = plan_sessions(store_dir, batch)
        events = plan_events(store_dir, batch)
        batch.commit()

        if sessions or events:
            console.print(f"  Extracted {sessions} session(s) and {events} event(s) from snapshot")
