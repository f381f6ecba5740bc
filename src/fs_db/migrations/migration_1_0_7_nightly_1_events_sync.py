"""Migration 1.0.7-nightly.1: embed events in sessions and move ignore flags.

Layout of ``store.json``: every scope is a JSON document stored as a string::

    store.json     -> {"desktop": "<desktop json>"}
    desktop json   -> {"TinybaseValues": "<values json>", ...}
    values json    -> {"ignored_recurring_series": "<json array>",
                       "ignored_events": "<json array>", ...}
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console

from ..constants import (
    EPOCH_DAY,
    EVENTS_FILE,
    SESSION_META_FILE,
    SESSIONS_DIR,
    STORE_DESKTOP_KEY,
    STORE_TINYBASE_VALUES_KEY,
    STORE_VALUES_FILE,
)
from ..utils import dump_json, dump_json_compact, load_json, load_json_string
from ..version import Version
from .base import Migration
from .ops import MutationBatch

console = Console()

SESSION_EVENT_STRING_FIELDS = ("calendar_id", "title", "started_at", "ended_at")
SESSION_EVENT_BOOL_FIELDS = ("is_all_day", "has_recurrence_rules")
SESSION_EVENT_OPTIONAL_FIELDS = ("location", "meeting_link", "description", "recurrence_series_id")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# events.json


def load_events(store_dir: Path) -> dict[str, Any]:
    """Load ``events.json`` as a map of row id to event, or an empty map."""
    events = load_json(store_dir / EVENTS_FILE)
    return events if isinstance(events, dict) else {}


def clean_events_json(store_dir: Path, batch: MutationBatch) -> None:
    """Queue an ``events.json`` rewrite without the ``ignored`` flags."""
    events_path = store_dir / EVENTS_FILE
    data = load_json(events_path)
    if not isinstance(data, dict):
        return

    changed = False
    for event in data.values():
        if isinstance(event, dict) and "ignored" in event:
            del event["ignored"]
            changed = True

    if changed:
        batch.write(events_path, dump_json(data), force=True)


def collect_ignored_events(
    events: dict[str, Any],
    ignored_series: set[str],
    now: str | None = None,
) -> list[dict[str, Any]]:
    """
    Build ``ignored_events`` entries for events flagged as ignored.

    Events belonging to a recurring series that is already ignored as a whole
    are left out.

    Args:
        events: Map of row id to event
        ignored_series: Ids of ignored recurring series
        now: Timestamp recorded as ``last_seen`` (defaults to the current UTC time)

    Returns:
        Entries of the form ``{"tracking_id", "day", "last_seen"}``
    """
    now = now or _utc_now()
    result = []

    for event in events.values():
        if not isinstance(event, dict) or event.get("ignored") is not True:
            continue

        series_id = event.get("recurrence_series_id")
        if isinstance(series_id, str) and series_id in ignored_series:
            continue

        tracking_id = event.get("tracking_id_event")
        started_at = event.get("started_at")
        if not isinstance(started_at, str) or len(started_at) < 10:
            day = EPOCH_DAY
        else:
            day = started_at[:10]

        result.append(
            {
                "tracking_id": tracking_id if isinstance(tracking_id, str) else "",
                "day": day,
                "last_seen": now,
            }
        )

    return result


# sessions/<session_id>/_meta.json


def build_session_event(event: dict[str, Any]) -> dict[str, Any]:
    """Build the ``event`` object embedded in a session's ``_meta.json``."""
    tracking_id = event.get("tracking_id_event")
    embedded: dict[str, Any] = {"tracking_id": tracking_id if isinstance(tracking_id, str) else ""}

    for key in SESSION_EVENT_STRING_FIELDS:
        value = event.get(key)
        embedded[key] = value if isinstance(value, str) else ""

    for key in SESSION_EVENT_BOOL_FIELDS:
        value = event.get(key)
        embedded[key] = value if isinstance(value, bool) else False

    for key in SESSION_EVENT_OPTIONAL_FIELDS:
        value = event.get(key)
        if isinstance(value, str):
            embedded[key] = value

    return embedded


def migrate_session_meta(meta: Any, events: dict[str, Any]) -> dict[str, Any] | None:
    """
    Replace a session's ``event_id`` with an embedded event.

    The ``event_id`` is dropped even when the event no longer exists.

    Args:
        meta: Decoded ``_meta.json``
        events: Map of row id to event

    Returns:
        Migrated meta, or None if nothing changes
    """
    if not isinstance(meta, dict) or "event" in meta:
        return None

    event_id = meta.get("event_id")
    if not isinstance(event_id, str):
        return None

    migrated = dict(meta)
    event = events.get(event_id)
    if isinstance(event, dict):
        migrated["event"] = build_session_event(event)
    del migrated["event_id"]
    return migrated


def migrate_session_metas(store_dir: Path, events: dict[str, Any], batch: MutationBatch) -> int:
    """Queue ``_meta.json`` rewrites; returns the number of sessions changed."""
    sessions_dir = store_dir / SESSIONS_DIR
    if not sessions_dir.is_dir():
        return 0

    changed = 0
    for folder in sorted(sessions_dir.iterdir()):
        meta_path = folder / SESSION_META_FILE
        if not folder.is_dir() or not meta_path.is_file():
            continue

        migrated = migrate_session_meta(load_json(meta_path), events)
        if migrated is not None:
            batch.write(meta_path, dump_json(migrated), force=True)
            changed += 1

    return changed


# store.json


def load_ignored_recurring_series_ids(store_dir: Path) -> set[str]:
    """Read ignored recurring series ids, accepting both string and object entries."""
    store = load_json(store_dir / STORE_VALUES_FILE)
    if not isinstance(store, dict):
        return set()
    desktop = load_json_string(store.get(STORE_DESKTOP_KEY))
    if not isinstance(desktop, dict):
        return set()
    values = load_json_string(desktop.get(STORE_TINYBASE_VALUES_KEY))
    if not isinstance(values, dict):
        return set()
    entries = load_json_string(values.get("ignored_recurring_series"))
    if not isinstance(entries, list):
        return set()

    ids = set()
    for entry in entries:
        if isinstance(entry, str):
            ids.add(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("id"), str):
            ids.add(entry["id"])
    return ids


def merge_ignored_events(values: dict[str, Any], new_entries: list[dict[str, Any]]) -> bool:
    """
    Append ignored events not yet present, keyed on ``tracking_id`` and ``day``.

    Returns:
        True if ``values`` changed
    """
    existing = load_json_string(values.get("ignored_events"))
    if not isinstance(existing, list):
        existing = []

    seen = {
        f"{entry['tracking_id']}:{entry['day']}"
        for entry in existing
        if isinstance(entry, dict) and isinstance(entry.get("tracking_id"), str) and isinstance(entry.get("day"), str)
    }

    added = False
    for entry in new_entries:
        tracking_id = entry.get("tracking_id")
        day = entry.get("day")
        if not isinstance(tracking_id, str) or not isinstance(day, str):
            continue
        key = f"{tracking_id}:{day}"
        if key in seen:
            continue
        existing.append(entry)
        seen.add(key)
        added = True

    if added:
        values["ignored_events"] = dump_json_compact(existing)
    return added


def migrate_ignored_recurring_series(values: dict[str, Any], now: str | None = None) -> bool:
    """
    Upgrade plain series ids to ``{"id", "last_seen"}`` objects.

    Returns:
        True if ``values`` changed
    """
    entries = load_json_string(values.get("ignored_recurring_series"))
    if not isinstance(entries, list) or not entries:
        return False
    if all(isinstance(entry, dict) for entry in entries):
        return False

    now = now or _utc_now()
    migrated = [{"id": entry, "last_seen": now} for entry in entries if isinstance(entry, str)]
    values["ignored_recurring_series"] = dump_json_compact(migrated)
    return True


def migrate_store_values(
    store_dir: Path,
    ignored_events: list[dict[str, Any]],
    batch: MutationBatch,
    now: str | None = None,
) -> None:
    """Queue a ``store.json`` rewrite with the updated ignore lists."""
    store_path = store_dir / STORE_VALUES_FILE
    store = load_json(store_path)
    if not isinstance(store, dict):
        return
    desktop = load_json_string(store.get(STORE_DESKTOP_KEY))
    if not isinstance(desktop, dict):
        return
    values = load_json_string(desktop.get(STORE_TINYBASE_VALUES_KEY))
    if not isinstance(values, dict):
        return

    changed = False
    if ignored_events:
        changed |= merge_ignored_events(values, ignored_events)
    changed |= migrate_ignored_recurring_series(values, now)

    if not changed:
        return

    desktop[STORE_TINYBASE_VALUES_KEY] = dump_json_compact(values)
    store[STORE_DESKTOP_KEY] = dump_json_compact(desktop)
    batch.write(store_path, dump_json(store), force=True)


class MigrationEventsSync(Migration):
    """Migration 1.0.7-nightly.1: embed events in sessions and move ignore flags.

    Sessions stop referencing events by row id and carry a copy of the event
    instead. The per-event ``ignored`` flag is removed from ``events.json``;
    ignored events are recorded in the ``ignored_events`` value keyed on
    tracking id and day, and ignored recurring series gain a ``last_seen``
    timestamp.
    """

    introduced_in = Version.parse("1.0.7-nightly.1")

    def description(self) -> str:
        """Return migration description."""
        return "Embed events in sessions and move ignored events to store values"

    def run(self, store_dir: Path) -> None:
        """Rewrite session metas, events.json and store.json."""
        now = _utc_now()
        events = load_events(store_dir)
        batch = MutationBatch()

        sessions = migrate_session_metas(store_dir, events, batch)
        ignored_series = load_ignored_recurring_series_ids(store_dir)
        ignored = collect_ignored_events(events, ignored_series, now)
        # store.json must land before events.json drops the flags it is built from
        migrate_store_values(store_dir, ignored, batch, now)
        clean_events_json(store_dir, batch)

        batch.commit()

        if sessions > 0 or ignored:
            console.print(f"  Synced {sessions} session event(s), {len(ignored)} ignored event(s)")
