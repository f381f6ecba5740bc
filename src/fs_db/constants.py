"""Constants used throughout fs-db."""

# Checkpoint marker stored at the root of the store directory
VERSION_MARKER_FILE = "version"

# Store layout (current format)
SESSIONS_DIR = "sessions"
SESSION_META_FILE = "_meta.json"
SESSION_TRANSCRIPT_FILE = "transcript.json"
SESSION_MEMO_FILE = "_memo.md"
EVENTS_FILE = "events.json"
STORE_VALUES_FILE = "store.json"

# Legacy layout artifacts
LEGACY_DB_SNAPSHOT_FILE = "db.json"
LEGACY_TRANSCRIPT_FILE = "_transcript.json"

# Tables inside the legacy db snapshot
DB_TABLE_SESSIONS = "sessions"
DB_TABLE_EVENTS = "events"
DB_TABLE_NOTES = "notes"

# Nested string-encoded scopes inside store.json
STORE_DESKTOP_KEY = "desktop"
STORE_TINYBASE_VALUES_KEY = "TinybaseValues"

# Fallback day for events without a usable start timestamp
EPOCH_DAY = "1970-01-01"

# JSON output formatting
JSON_OUTPUT_INDENT = 2

# Backup naming
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
