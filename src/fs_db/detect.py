"""Version detection and checkpoint persistence for the store directory."""

import logging
import os
import tempfile
from json import JSONDecodeError
from pathlib import Path

from tinydb import TinyDB

from .constants import (
    DB_TABLE_NOTES,
    DB_TABLE_SESSIONS,
    LEGACY_DB_SNAPSHOT_FILE,
    SESSION_TRANSCRIPT_FILE,
    SESSIONS_DIR,
    VERSION_MARKER_FILE,
)
from .utils import ensure_dir
from .version import DetectedVersion, Explicit, Fresh, Inferred, LegacyMarker, Version, VersionParseError

logger = logging.getLogger(__name__)


def read_version(store_dir: Path) -> Version | None:
    """
    Read the version marker from the store.

    Args:
        store_dir: Store directory

    Returns:
        Parsed version, or None if the marker is missing, unreadable or malformed
    """
    marker_path = store_dir / VERSION_MARKER_FILE
    try:
        content = marker_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"No readable version marker at {marker_path}: {e}")
        return None

    try:
        return Version.parse(content)
    except VersionParseError:
        logger.debug(f"Ignoring malformed version marker at {marker_path}: {content!r}")
        return None


def write_version(store_dir: Path, version: Version) -> None:
    """
    Persist the version marker, replacing any previous content.

    The new content is written to a temporary file in the store directory and
    moved over the marker, so readers see either the old or the new version.

    Args:
        store_dir: Store directory (created if missing)
        version: Version to record

    Raises:
        OSError: If the marker cannot be written
    """
    ensure_dir(store_dir)
    marker_path = store_dir / VERSION_MARKER_FILE

    fd, tmp_name = tempfile.mkstemp(dir=store_dir, prefix=f".{VERSION_MARKER_FILE}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(version))
        os.replace(tmp_name, marker_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote version marker {version} to {marker_path}")


def _has_store_data(store_dir: Path) -> bool:
    """Return True if the store holds anything besides the marker and dot-entries."""
    for entry in store_dir.iterdir():
        if entry.name == VERSION_MARKER_FILE or entry.name.startswith("."):
            continue
        return True
    return False


def _snapshot_tables(store_dir: Path) -> set[str]:
    """List tables of the legacy db snapshot, or an empty set if it is unusable."""
    snapshot = store_dir / LEGACY_DB_SNAPSHOT_FILE
    if not snapshot.is_file():
        return set()

    try:
        # Read-only access mode never creates or rewrites the snapshot
        with TinyDB(snapshot, access_mode="r") as db:
            return set(db.tables())
    except (OSError, JSONDecodeError, UnicodeDecodeError, AttributeError, TypeError, ValueError) as e:
        logger.debug(f"Ignoring unreadable db snapshot {snapshot}: {e}")
        return set()


def _has_late_nightly_layout(store_dir: Path) -> bool:
    sessions_dir = store_dir / SESSIONS_DIR
    if not (store_dir / LEGACY_DB_SNAPSHOT_FILE).is_file() or not sessions_dir.is_dir():
        return False
    return any((entry / SESSION_TRANSCRIPT_FILE).is_file() for entry in sessions_dir.iterdir() if entry.is_dir())


def _has_early_nightly_layout(store_dir: Path) -> bool:
    return (store_dir / LEGACY_DB_SNAPSHOT_FILE).is_file() and (store_dir / SESSIONS_DIR).is_dir()


def _has_v1_0_1_layout(store_dir: Path) -> bool:
    return DB_TABLE_SESSIONS in _snapshot_tables(store_dir)


def _has_v0_layout(store_dir: Path) -> bool:
    return DB_TABLE_NOTES in _snapshot_tables(store_dir)


# Checked in order; the first matching fingerprint wins. Newer layouts come first
# because each one is a superset of the shape of the layout before it.
LEGACY_FINGERPRINTS = [
    (LegacyMarker.V1_0_2_NIGHTLY_LATE, _has_late_nightly_layout),
    (LegacyMarker.V1_0_2_NIGHTLY_EARLY, _has_early_nightly_layout),
    (LegacyMarker.V1_0_1, _has_v1_0_1_layout),
    (LegacyMarker.V0_0_84, _has_v0_layout),
]


def infer_legacy_marker(store_dir: Path) -> LegacyMarker | None:
    """
    Match the store against known pre-marker layouts.

    Args:
        store_dir: Store directory

    Returns:
        First matching LegacyMarker in priority order, or None
    """
    for marker, matches in LEGACY_FINGERPRINTS:
        try:
            if matches(store_dir):
                return marker
        except OSError as e:
            logger.debug(f"Fingerprint {marker.value} check failed: {e}")
    return None


def detect_version(store_dir: Path) -> DetectedVersion:
    """
    Detect which layout the store directory currently holds.

    Never fails: a missing or malformed marker falls back to structural
    inference, and an unrecognizable store is treated as fresh.

    Args:
        store_dir: Store directory

    Returns:
        Explicit, Inferred or Fresh
    """
    version = read_version(store_dir)
    if version is not None:
        return Explicit(version)

    try:
        if not store_dir.is_dir() or not _has_store_data(store_dir):
            return Fresh()
    except OSError as e:
        logger.debug(f"Cannot list store directory {store_dir}: {e}")
        return Fresh()

    marker = infer_legacy_marker(store_dir)
    if marker is not None:
        return Inferred(marker)

    logger.debug(f"Store {store_dir} has data but no known layout; treating as fresh")
    return Fresh()
