"""Data models for exif-stamp."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

# ((degrees, 1), (minutes, 1), (seconds * 100, 100))
Rational = tuple[int, int]
DMSValue = tuple[Rational, Rational, Rational]

EXIF_DATETIME_FORMAT = "{0.year:04d}:{0.month:02d}:{0.day:02d} {0.hour:02d}:{0.minute:02d}:{0.second:02d}"


@dataclass(frozen=True)
class CanonicalDateTime:
    """A fully populated capture timestamp."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    def exif_string(self) -> str:
        """Format as the EXIF 'YYYY:MM:DD HH:MM:SS' string."""
        return EXIF_DATETIME_FORMAT.format(self)

    def isoformat(self) -> str:
        return (
            f"{self.year:04d}-{self.month:02d}-{self.day:02d} "
            f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        )


@dataclass(frozen=True)
class GeoCoordinate:
    """A GPS coordinate pair in decimal degrees."""

    latitude: float
    longitude: float

    @property
    def latitude_ref(self) -> str:
        return "N" if self.latitude >= 0 else "S"

    @property
    def longitude_ref(self) -> str:
        return "E" if self.longitude >= 0 else "W"


@dataclass(frozen=True)
class MetadataRecord:
    """What gets written into every file of one batch."""

    datetime: CanonicalDateTime
    gps: Optional[GeoCoordinate] = None

    @property
    def has_gps(self) -> bool:
        return self.gps is not None


class ContainerState(Enum):
    """Outcome of decoding the EXIF block already present in an image."""

    LOADED = "loaded"
    ABSENT = "absent"
    CORRUPT = "corrupt"


@dataclass
class ContainerLoad:
    """Tagged result of reading an existing EXIF container.

    ``ifds`` is always usable: the decoded container when LOADED,
    otherwise a fresh empty one.
    """

    state: ContainerState
    ifds: dict

    @property
    def loaded(self) -> bool:
        return self.state is ContainerState.LOADED


@dataclass
class ExifSummary:
    """The datetime and GPS tags read back from an image."""

    datetime: Optional[str] = None  # 0th DateTime
    datetime_original: Optional[str] = None
    datetime_digitized: Optional[str] = None
    gps: Optional[GeoCoordinate] = None

    @property
    def has_gps(self) -> bool:
        return self.gps is not None


@dataclass(frozen=True)
class FileOutcome:
    """Result of transforming one input file."""

    source: str
    output_name: str
    data: Optional[bytes] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class BatchTally:
    """Aggregate success/failure count for a batch."""

    succeeded: int = 0
    failed: int = 0
    failed_sources: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def record(self, outcome: FileOutcome) -> BatchTally:
        """Return a new tally with ``outcome`` counted."""
        if outcome.ok:
            return replace(self, succeeded=self.succeeded + 1)
        return replace(
            self,
            failed=self.failed + 1,
            failed_sources=self.failed_sources + (outcome.source,),
        )


@dataclass
class BatchConfig:
    """Configuration for a stamp run."""

    out_dir: Optional[Path] = None  # None = next to each input
    suffix: str = "_exif"
    clear_stale_gps: bool = False
    dry_run: bool = False
    report_path: Optional[Path] = None
    inputs: list[Path] = field(default_factory=list)
