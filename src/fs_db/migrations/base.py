"""Base classes for store migrations."""

from abc import ABC, abstractmethod
from pathlib import Path

from ..version import DetectedVersion, Version


class MigrationError(Exception):
    """
    Raised when a migration finds the store in a state it cannot handle.

    The runner does not catch this error: the run stops, the checkpoint stays
    at the last completed migration and the error reaches the caller.
    """

    pass


class Migration(ABC):
    """
    Base class for store migrations.

    Each migration is identified by the release that introduced it. The runner
    re-executes a whole migration after an interrupted run, so ``run`` must be
    safe to repeat once some of its writes have already landed: compute every
    change first and skip files that are already in the target shape.
    """

    introduced_in: Version

    def applies_to(self, detected: DetectedVersion) -> bool:
        """
        Decide whether this migration handles the detected store state.

        Args:
            detected: Detected version of the store before the run

        Returns:
            True by default
        """
        return True

    @abstractmethod
    def run(self, store_dir: Path) -> None:
        """
        Perform the migration on the store directory.

        Args:
            store_dir: Store directory
        """
        pass

    @abstractmethod
    def description(self) -> str:
        """Return a human-readable description of this migration."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.introduced_in})"
