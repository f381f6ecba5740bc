"""Shared utilities for store migrations."""

from json import JSONDecodeError
from pathlib import Path
from typing import Any

from tinydb import TinyDB

from ..constants import (
    LEGACY_DB_SNAPSHOT_FILE,
    SESSION_MEMO_FILE,
    SESSION_META_FILE,
    SESSION_TRANSCRIPT_FILE,
    SESSIONS_DIR,
)
from ..utils import dump_json
from .base import MigrationError
from .ops import MutationBatch


def read_snapshot_table(store_dir: Path, table: str) -> list[dict[str, Any]]:
    """
    Read every document of a table in the legacy db snapshot.

    Args:
        store_dir: Store directory
        table: Table name

    Returns:
        Documents as plain dicts with ``doc_id`` recorded under ``_doc_id``;
        empty if the snapshot or the table does not exist

    Raises:
        MigrationError: If the snapshot exists but cannot be read
    """
    snapshot = store_dir / LEGACY_DB_SNAPSHOT_FILE
    if not snapshot.is_file():
        return []

    try:
        with TinyDB(snapshot, access_mode="r") as db:
            if table not in db.tables():
                return []
            return [{**doc, "_doc_id": doc.doc_id} for doc in db.table(table).all()]
    except (JSONDecodeError, UnicodeDecodeError, AttributeError, TypeError, ValueError) as e:
        raise MigrationError(f"Cannot read db snapshot {snapshot}: {e}") from e


def plan_session_files(
    store_dir: Path,
    session_id: str,
    meta: dict[str, Any],
    words: list[dict[str, Any]] | None,
    memo: str | None,
    batch: MutationBatch,
) -> bool:
    """
    Queue the files of one session folder, leaving existing files untouched.

    Args:
        store_dir: Store directory
        session_id: Session folder name
        meta: Content of ``_meta.json``
        words: Transcript words, or None for no transcript
        memo: Memo markdown, or None for no memo
        batch: Batch to queue writes on

    Returns:
        True if any write was queued
    """
    session_dir = store_dir / SESSIONS_DIR / session_id
    planned = False

    files: list[tuple[str, str | None]] = [
        (SESSION_META_FILE, dump_json(meta)),
        (SESSION_TRANSCRIPT_FILE, dump_json({"words": words}) if words is not None else None),
        (SESSION_MEMO_FILE, memo if memo else None),
    ]
    for name, content in files:
        path = session_dir / name
        if content is None or path.exists():
            continue
        batch.write(path, content, force=False)
        planned = True

    return planned
