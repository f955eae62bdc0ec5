"""Input normalization: free-form datetime and 'lat,lon' strings to a MetadataRecord."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Optional

from .errors import MalformedDateTime, MalformedGps
from .models import CanonicalDateTime, DMSValue, GeoCoordinate, MetadataRecord

logger = logging.getLogger(__name__)

SECONDS_DENOMINATOR = 100

# Plain decimal number: no exponent, no underscores, ASCII digits only
DECIMAL_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)", re.ASCII)

# Defaults for components missing from a partial datetime
DATETIME_DEFAULTS = {"m": 1, "d": 1, "H": 12, "M": 0, "S": 0}

# Accepted datetime patterns, most specific first: (regex, group_names)
DATETIME_PATTERNS = [
    (
        re.compile(r"(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2})", re.ASCII),
        ("Y", "m", "d", "H", "M", "S"),
    ),
    (
        re.compile(r"(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2})", re.ASCII),
        ("Y", "m", "d", "H", "M"),
    ),
    (
        re.compile(r"(\d{4})-(\d{2})-(\d{2}) (\d{2})", re.ASCII),
        ("Y", "m", "d", "H"),
    ),
    (
        re.compile(r"(\d{4})-(\d{2})-(\d{2})", re.ASCII),
        ("Y", "m", "d"),
    ),
    (
        re.compile(r"(\d{4})-(\d{2})", re.ASCII),
        ("Y", "m"),
    ),
    (
        re.compile(r"(\d{4})", re.ASCII),
        ("Y",),
    ),
]


def parse_datetime(value: str) -> CanonicalDateTime:
    """Parse a partial 'YYYY[-MM[-DD[ HH[:MM[:SS]]]]]' string.

    Missing trailing components are defaulted (month/day to 1, hour to 12,
    minute/second to 0). Raises MalformedDateTime on anything else,
    including dates that do not exist on the calendar.
    """
    text = (value or "").strip()
    for pattern, groups in DATETIME_PATTERNS:
        m = pattern.fullmatch(text)
        if not m:
            continue

        parts = dict(DATETIME_DEFAULTS)
        for i, name in enumerate(groups):
            parts[name] = int(m.group(i + 1))

        try:
            # datetime() range-checks month, hour, minute, second and the
            # day against the month and year
            datetime(parts["Y"], parts["m"], parts["d"], parts["H"], parts["M"], parts["S"])
        except ValueError as e:
            raise MalformedDateTime(f"Invalid date/time '{text}': {e}") from e

        return CanonicalDateTime(
            year=parts["Y"],
            month=parts["m"],
            day=parts["d"],
            hour=parts["H"],
            minute=parts["M"],
            second=parts["S"],
        )

    raise MalformedDateTime(
        f"Date/time must look like YYYY, YYYY-MM, YYYY-MM-DD, YYYY-MM-DD HH, "
        f"YYYY-MM-DD HH:MM or YYYY-MM-DD HH:MM:SS, got: '{text}'"
    )


def parse_gps(value: Optional[str]) -> Optional[GeoCoordinate]:
    """Parse 'lat,lon' to a GeoCoordinate. Blank or None means no GPS."""
    if value is None or not value.strip():
        return None

    parts = value.split(",")
    if len(parts) != 2:
        raise MalformedGps(f"GPS must be 'lat,lon', got: {value}")

    fields = [part.strip() for part in parts]
    if not all(DECIMAL_RE.fullmatch(f) for f in fields):
        raise MalformedGps(f"GPS must be 'lat,lon' in decimal degrees, got: {value}")

    lat = float(fields[0])
    lon = float(fields[1])

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedGps(f"GPS values must be finite numbers, got: {value}")
    if not -90.0 <= lat <= 90.0:
        raise MalformedGps(f"Latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise MalformedGps(f"Longitude {lon} out of range [-180, 180]")

    return GeoCoordinate(latitude=lat, longitude=lon)


def normalize(raw_datetime: str, raw_gps: Optional[str] = None) -> MetadataRecord:
    """Build the MetadataRecord shared by every file in a batch."""
    record = MetadataRecord(
        datetime=parse_datetime(raw_datetime),
        gps=parse_gps(raw_gps),
    )
    logger.debug(
        "Normalized input: datetime=%s gps=%s",
        record.datetime.isoformat(),
        f"{record.gps.latitude},{record.gps.longitude}" if record.gps else "none",
    )
    return record


def decimal_to_dms(value: float) -> DMSValue:
    """Convert decimal degrees to EXIF DMS rationals.

    Works on the absolute value; the hemisphere lives in the Ref tag.
    Seconds keep two decimals (denominator 100). A rounding carry to 60
    seconds or 60 minutes is folded into the next unit.
    """
    v = abs(value)
    degrees = math.floor(v)
    minutes_float = (v - degrees) * 60
    minutes = math.floor(minutes_float)
    # Round half up
    hundredths = math.floor((minutes_float - minutes) * 60 * SECONDS_DENOMINATOR + 0.5)

    if hundredths >= 60 * SECONDS_DENOMINATOR:
        hundredths -= 60 * SECONDS_DENOMINATOR
        minutes += 1
    if minutes >= 60:
        minutes -= 60
        degrees += 1

    return ((int(degrees), 1), (int(minutes), 1), (int(hundredths), SECONDS_DENOMINATOR))


def dms_to_decimal(dms, ref) -> float:
    """Convert EXIF DMS rationals and a hemisphere ref back to decimal degrees."""
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="replace")
    ref = (ref or "").strip("\x00 ").upper()

    total = 0.0
    for (num, den), scale in zip(dms, (1, 60, 3600)):
        if den == 0:
            raise ValueError(f"Zero denominator in DMS value: {dms}")
        total += num / den / scale

    return -total if ref in ("S", "W") else total
