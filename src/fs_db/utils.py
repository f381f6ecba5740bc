"""Utility functions for fs-db."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pathvalidate import is_valid_filename

from .constants import JSON_OUTPUT_INDENT

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> Path:
    """
    Create directory if it doesn't exist.

    Args:
        path: Directory path to create

    Returns:
        The created/existing directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand_path(path: str) -> Path:
    """
    Expand ~ and environment variables in path.

    Args:
        path: Path string to expand

    Returns:
        Expanded Path object
    """
    return Path(os.path.expanduser(os.path.expandvars(path))).resolve()


def load_json(path: Path) -> Any | None:
    """
    Load a JSON document, tolerating absence and corruption.

    Args:
        path: JSON file path

    Returns:
        Decoded value, or None if the file is missing, unreadable or malformed
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        logger.debug(f"Ignoring malformed JSON in {path}: {e}")
        return None


def load_json_string(value: Any) -> Any | None:
    """Decode a JSON document embedded as a string value, or return None."""
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def dump_json(value: Any) -> str:
    """Serialize a document the way the store writes files (pretty-printed)."""
    return json.dumps(value, indent=JSON_OUTPUT_INDENT, ensure_ascii=False)


def dump_json_compact(value: Any) -> str:
    """Serialize a document for embedding as a string value."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def is_session_id(value: Any) -> bool:
    """
    Check that a value can name a session folder.

    Ids come from stored documents, so anything that is not a plain, valid
    file name (path separators, ``..``, reserved names) is rejected.

    Args:
        value: Candidate id

    Returns:
        True if the id is safe to use as a folder name
    """
    return isinstance(value, str) and not value.startswith(".") and is_valid_filename(value)
