"""File mutation intents and the applier that commits them.

Migrations first read the store and decide what to change, collecting
intents without touching any file; only then are the intents committed, in
order. The first failing intent aborts the rest of the batch. Nothing is
rolled back: intents committed before the failure stay applied.
"""

import logging
import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ..utils import ensure_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteFile:
    """Write ``content`` to ``path``; with ``force=False`` an existing file is an error."""

    path: Path
    content: str
    force: bool = True


@dataclass(frozen=True)
class RenameFile:
    """Move a file or directory; an existing target is an error."""

    source: Path
    target: Path


@dataclass(frozen=True)
class RemoveFile:
    """Delete a file; a missing file is not an error."""

    path: Path


FileOp = WriteFile | RenameFile | RemoveFile


def _replace_file(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def apply_op(op: FileOp) -> None:
    """
    Commit a single intent.

    Args:
        op: Intent to apply

    Raises:
        FileExistsError: If a non-forced write or a rename would clobber a file
        OSError: On any other filesystem failure
    """
    if isinstance(op, WriteFile):
        ensure_dir(op.path.parent)
        if op.force:
            _replace_file(op.path, op.content)
        else:
            # "x" mode refuses to open an existing file
            with open(op.path, "x", encoding="utf-8") as f:
                f.write(op.content)
        logger.debug(f"Wrote {op.path} (force={op.force})")
    elif isinstance(op, RenameFile):
        if op.target.exists():
            raise FileExistsError(f"Rename target already exists: {op.target}")
        ensure_dir(op.target.parent)
        op.source.rename(op.target)
        logger.debug(f"Renamed {op.source} -> {op.target}")
    elif isinstance(op, RemoveFile):
        op.path.unlink(missing_ok=True)
        logger.debug(f"Removed {op.path}")
    else:
        raise TypeError(f"Unknown file operation: {op!r}")


def apply_ops(ops: Iterable[FileOp]) -> int:
    """
    Commit intents strictly in order, stopping at the first failure.

    Args:
        ops: Intents to apply

    Returns:
        Number of intents applied

    Raises:
        OSError: From the first intent that fails; later intents are skipped
    """
    applied = 0
    for op in ops:
        apply_op(op)
        applied += 1
    return applied


class MutationBatch:
    """Ordered buffer of file intents, committed once."""

    def __init__(self) -> None:
        self.ops: list[FileOp] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self.ops)

    def write(self, path: Path, content: str, force: bool = True) -> None:
        """Queue a file write."""
        self.ops.append(WriteFile(path, content, force))

    def rename(self, source: Path, target: Path) -> None:
        """Queue a rename."""
        self.ops.append(RenameFile(source, target))

    def remove(self, path: Path) -> None:
        """Queue a file removal."""
        self.ops.append(RemoveFile(path))

    def commit(self) -> int:
        """
        Apply all queued intents in order.

        Returns:
            Number of intents applied

        Raises:
            RuntimeError: If the batch was already committed
            OSError: From the first failing intent
        """
        if self.committed:
            raise RuntimeError("Mutation batch already committed")
        self.committed = True
        return apply_ops(self.ops)
