"""Migration 1.0.4-nightly.2: repair malformed transcript documents."""

import logging
from pathlib import Path
from typing import Any

from rich.console import Console

from ..constants import SESSION_TRANSCRIPT_FILE, SESSIONS_DIR
from ..utils import dump_json, load_json
from ..version import Version
from .base import Migration
from .ops import MutationBatch

console = Console()
logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def repair_transcript(document: Any) -> dict[str, Any] | None:
    """
    Normalize a transcript document.

    A bare list of words is wrapped into ``{"words": [...]}``; words with blank
    text or no numeric ``start_ms`` are dropped, the rest are sorted by
    ``start_ms`` and ``end_ms`` is clamped to be no earlier than ``start_ms``.

    Args:
        document: Decoded transcript.json content

    Returns:
        Repaired document, or None if the document is not a transcript
    """
    if isinstance(document, list):
        repaired: dict[str, Any] = {"words": document}
    elif isinstance(document, dict) and isinstance(document.get("words"), list):
        repaired = dict(document)
    else:
        return None

    words = []
    for word in repaired["words"]:
        if not isinstance(word, dict):
            continue
        text = word.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        start_ms = word.get("start_ms")
        if not _is_number(start_ms):
            continue

        fixed = dict(word)
        end_ms = word.get("end_ms")
        if not _is_number(end_ms) or end_ms < start_ms:
            fixed["end_ms"] = start_ms
        words.append(fixed)

    repaired["words"] = sorted(words, key=lambda w: w["start_ms"])
    return repaired


def plan_transcript_repairs(store_dir: Path, batch: MutationBatch) -> int:
    """Queue rewrites for transcripts that change when repaired."""
    sessions_dir = store_dir / SESSIONS_DIR
    if not sessions_dir.is_dir():
        return 0

    repaired_count = 0
    for folder in sorted(sessions_dir.iterdir()):
        path = folder / SESSION_TRANSCRIPT_FILE
        if not path.is_file():
            continue

        document = load_json(path)
        repaired = repair_transcript(document)
        if repaired is None:
            logger.warning(f"Skipping unrecognized transcript {path}")
            continue
        if repaired == document:
            continue

        batch.write(path, dump_json(repaired), force=True)
        repaired_count += 1

    return repaired_count


class MigrationRepairTranscripts(Migration):
    """Migration 1.0.4-nightly.2: repair malformed transcript documents."""

    introduced_in = Version.parse("1.0.4-nightly.2")

    def description(self) -> str:
        """Return migration description."""
        return "Repair malformed transcripts"

    def run(self, store_dir: Path) -> None:
        """Rewrite transcripts that need repair."""
        batch = MutationBatch()
        repaired = plan_transcript_repairs(store_dir, batch)
        batch.commit()

        if repaired > 0:
            console.print(f"  Repaired {repaired} transcript(s)")
