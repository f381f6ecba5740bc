"""Migration 1.0.2-nightly.15: import notes from v0 stores."""

from pathlib import Path
from typing import Any

from rich.console import Console

from ..constants import DB_TABLE_NOTES
from ..utils import is_session_id
from ..version import DetectedVersion, Inferred, LegacyMarker, Version
from .base import Migration
from .ops import MutationBatch
from .utils import plan_session_files, read_snapshot_table

console = Console()


def _seconds_to_ms(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(round(value * 1000))


def convert_segments(segments: Any) -> list[dict[str, Any]] | None:
    """
    Convert v0 transcript segments (times in seconds) to transcript words.

    Args:
        segments: Value of the note's ``transcript`` field

    Returns:
        Words with millisecond offsets, or None if the note has no transcript
    """
    if not isinstance(segments, list):
        return None

    words = []
    for segment in segments:
        if not isinstance(segment, dict):
            continue
        start_ms = _seconds_to_ms(segment.get("start"))
        end_ms = _seconds_to_ms(segment.get("end"))
        if start_ms is None:
            continue

        word: dict[str, Any] = {
            "text": str(segment.get("text", "")),
            "start_ms": start_ms,
            "end_ms": end_ms if end_ms is not None else start_ms,
        }
        if segment.get("speaker") is not None:
            word["speaker"] = segment["speaker"]
        words.append(word)
    return words


def build_note_meta(note: dict[str, Any]) -> dict[str, Any]:
    """Build ``_meta.json`` content from a v0 note."""
    return {
        "id": note["id"],
        "user_id": "",
        "created_at": note.get("created_at") or "",
        "title": note.get("title") or "",
        "participants": [],
    }


class MigrationFromV0(Migration):
    """Migration 1.0.2-nightly.15: import notes from v0 stores.

    v0 kept ``notes`` rows in the db snapshot, with the memo in ``content``
    and transcript segments timed in seconds. Only stores inferred as v0 run
    this migration; every later layout already went through the snapshot
    extraction.
    """

    introduced_in = Version.parse("1.0.2-nightly.15")

    def applies_to(self, detected: DetectedVersion) -> bool:
        """Only v0 stores."""
        return isinstance(detected, Inferred) and detected.marker == LegacyMarker.V0_0_84

    def description(self) -> str:
        """Return migration description."""
        return "Import v0 notes as sessions"

    def run(self, store_dir: Path) -> None:
        """Write a session folder for every v0 note."""
        batch = MutationBatch()

        imported = 0
        for note in read_snapshot_table(store_dir, DB_TABLE_NOTES):
            if not is_session_id(note.get("id")):
                continue
            content = note.get("content")
            if plan_session_files(
                store_dir,
                note["id"],
                build_note_meta(note),
                convert_segments(note.get("transcript")),
                content if isinstance(content, str) else None,
                batch,
            ):
                imported += 1

        batch.commit()

        if imported > 0:
            console.print(f"  Imported {imported} v0 note(s)")
