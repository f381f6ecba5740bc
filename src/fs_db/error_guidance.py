"""Actionable error guidance for failed store migrations."""

import errno
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape


def _section(heading: str, items: list[str], bullet: str = "•") -> list[str]:
    if not items:
        return []
    return [f"[cyan]{heading}:[/cyan]", *(f"  {bullet} {item}" for item in items), ""]


@dataclass
class Guidance:
    """What went wrong with a run, and what the user can do about it."""

    title: str
    checks: list[str]
    fixes: list[str]
    commands: list[str] = field(default_factory=list)

    def render(self) -> str:
        """Render as rich markup."""
        lines = [f"[bold yellow]{self.title}[/bold yellow]", ""]
        lines += _section("Checks", self.checks)
        lines += _section("How to fix", self.fixes)
        lines += _section("Useful commands", self.commands, bullet="$")
        return "\n".join(lines).rstrip()


def permission_denied(path: str) -> Guidance:
    return Guidance(
        title="Permission denied while migrating the store",
        checks=[
            f"Check ownership and mode: ls -ld {path}",
            "Ensure no other process holds the store open",
        ],
        fixes=[f"Make the store writable: chmod -R u+rw {path}"],
    )


def disk_full(store_dir: str) -> Guidance:
    return Guidance(
        title="No space left on device",
        checks=["Check disk space: df -h", f"Check store size: du -sh {store_dir}"],
        fixes=[
            f"Remove old store backups next to {store_dir}",
            "Retry the migration; completed steps are not repeated",
        ],
    )


def migration_failed(store_dir: str, error: Exception) -> Guidance:
    return Guidance(
        title="Store migration failed",
        checks=[
            f"Current store version: cat {store_dir}/version",
            "The store may be partially migrated; do not open it with the application",
        ],
        fixes=[
            "Fix the reported problem and run the migration again; it resumes after the last completed step",
            "Or restore the backup created before the run",
            f"Details: {escape(str(error))}",
        ],
        commands=[f"fs-db detect {store_dir}", f"fs-db plan {store_dir} --to <version>"],
    )


def guidance_for(error: Exception, store_dir: Path) -> Guidance:
    """Pick guidance for an exception raised by a migration run."""
    if isinstance(error, PermissionError):
        return permission_denied(str(error.filename or store_dir))
    if isinstance(error, OSError) and error.errno == errno.ENOSPC:
        return disk_full(str(store_dir))
    return migration_failed(str(store_dir), error)
