"""Version model and detected-version states for the store."""

import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering

_VERSION_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


class VersionParseError(ValueError):
    """Raised when a string is not a valid release version."""

    pass


def _parse_identifier(identifier: str) -> int | str:
    return int(identifier) if identifier.isdigit() else identifier


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """
    Release version with an optional pre-release tag.

    Versions are totally ordered: the release triple compares first, a release
    sorts after any of its pre-releases, and pre-release identifiers compare
    left to right with numeric identifiers compared numerically
    (``1.0.2-nightly.9 < 1.0.2-nightly.15 < 1.0.2``). Build metadata is kept
    for display only.
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[int | str, ...] = ()
    build: str | None = None

    @classmethod
    def parse(cls, text: str) -> "Version":
        """
        Parse a version literal such as ``1.0.2-nightly.15``.

        Args:
            text: Version string (a leading ``v`` is accepted)

        Returns:
            Parsed Version

        Raises:
            VersionParseError: If the string is not a valid version
        """
        match = _VERSION_RE.match(text.strip())
        if not match:
            raise VersionParseError(f"Invalid version: {text!r}")

        prerelease_raw = match.group("prerelease")
        prerelease: tuple[int | str, ...] = ()
        if prerelease_raw:
            prerelease = tuple(_parse_identifier(part) for part in prerelease_raw.split("."))

        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=prerelease,
            build=match.group("build"),
        )

    @property
    def is_prerelease(self) -> bool:
        """Whether this version carries a pre-release tag."""
        return bool(self.prerelease)

    def _sort_key(self) -> tuple:
        if not self.prerelease:
            # A release outranks every pre-release of the same triple
            pre_key: tuple = (1,)
        else:
            pre_key = (
                0,
                tuple((0, ident, "") if isinstance(ident, int) else (1, 0, ident) for ident in self.prerelease),
            )
        return (self.major, self.minor, self.patch, pre_key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() == other._sort_key()

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __hash__(self) -> int:
        return hash(self._sort_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(ident) for ident in self.prerelease)
        if self.build:
            text += f"+{self.build}"
        return text

    def __repr__(self) -> str:
        return f"Version('{self}')"


def parse_version(value: "str | Version") -> Version:
    """Coerce a string or Version into a Version."""
    if isinstance(value, Version):
        return value
    return Version.parse(value)


class LegacyMarker(str, Enum):
    """Recognized store layouts that pre-date the version marker file.

    Attributes:
        V0_0_84: Single db snapshot holding a ``notes`` table
        V1_0_1: Single db snapshot holding a ``sessions`` table
        V1_0_2_NIGHTLY_EARLY: Db snapshot plus ``sessions/`` folders in the old naming
        V1_0_2_NIGHTLY_LATE: Db snapshot plus UUID session folders with ``transcript.json``
    """

    V0_0_84 = "v0.0.84"
    V1_0_1 = "v1.0.1"
    V1_0_2_NIGHTLY_EARLY = "v1.0.2-nightly-early"
    V1_0_2_NIGHTLY_LATE = "v1.0.2-nightly-late"


# Equivalent version of each legacy layout, used only as a range lower bound.
LEGACY_BASELINES: dict[LegacyMarker, Version] = {
    LegacyMarker.V0_0_84: Version.parse("0.0.84"),
    LegacyMarker.V1_0_1: Version.parse("1.0.1"),
    LegacyMarker.V1_0_2_NIGHTLY_EARLY: Version.parse("1.0.2-nightly.5"),
    LegacyMarker.V1_0_2_NIGHTLY_LATE: Version.parse("1.0.2-nightly.13"),
}


def baseline_for(marker: LegacyMarker) -> Version:
    """Return the fixed equivalent version for a legacy layout."""
    return LEGACY_BASELINES[marker]


@dataclass(frozen=True)
class Fresh:
    """No prior data: the store is absent or empty."""

    def __str__(self) -> str:
        return "fresh"


@dataclass(frozen=True)
class Explicit:
    """The version marker file was read from the store."""

    version: Version

    def __str__(self) -> str:
        return f"explicit {self.version}"


@dataclass(frozen=True)
class Inferred:
    """No marker, but the layout matches a known legacy fingerprint."""

    marker: LegacyMarker

    def __str__(self) -> str:
        return f"inferred {self.marker.value} (~{baseline_for(self.marker)})"


DetectedVersion = Fresh | Explicit | Inferred
