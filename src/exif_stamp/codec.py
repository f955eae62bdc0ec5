"""EXIF codec: merge datetime/GPS tags into a JPEG's APP1 segment without touching pixel data.

The JPEG is never decoded. We walk its marker segments up to the start of
scan, decode the existing EXIF block (if any) with piexif, set our tags,
dump it back and splice the new APP1 segment in. Every byte outside that
one segment is copied through unchanged.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Optional

import piexif

from .errors import InvalidContainer, SpliceFailed
from .models import (
    ContainerLoad,
    ContainerState,
    ExifSummary,
    GeoCoordinate,
    MetadataRecord,
)
from .normalize import decimal_to_dms, dms_to_decimal

logger = logging.getLogger(__name__)

SOI = b"\xff\xd8"
MARKER_APP0 = 0xE0
MARKER_APP1 = 0xE1
MARKER_SOS = 0xDA
MARKER_EOI = 0xD9
# Markers with no length field
STANDALONE_MARKERS = {0x01} | set(range(0xD0, 0xD8))

EXIF_HEADER = b"Exif\x00\x00"
MAX_SEGMENT_PAYLOAD = 0xFFFF - 2

IFD_NAMES = ("0th", "Exif", "GPS", "Interop", "1st")


@dataclass(frozen=True)
class Segment:
    """One JPEG marker segment: [start, end) spans marker, length and payload."""

    marker: int
    start: int
    end: int

    def payload(self, data: bytes) -> bytes:
        return data[self.start + 4:self.end]


def empty_container() -> dict:
    """A fresh EXIF container with every IFD empty."""
    container = {name: {} for name in IFD_NAMES}
    container["thumbnail"] = None
    return container


def split_segments(data: bytes) -> list[Segment]:
    """Walk the header segments of a JPEG up to SOS/EOI.

    Raises SpliceFailed if the stream does not start with SOI, a marker is
    malformed, or a segment runs past the end of the data.
    """
    if data[0:2] != SOI:
        raise SpliceFailed("Not a JPEG: missing start-of-image marker")

    segments = []
    pos = 2
    size = len(data)
    while True:
        if pos >= size:
            raise SpliceFailed("JPEG ended before start-of-scan")
        if data[pos] != 0xFF:
            raise SpliceFailed(f"Expected marker at offset {pos}, got 0x{data[pos]:02X}")

        # Skip fill bytes
        start = pos
        while pos < size and data[pos] == 0xFF:
            pos += 1
        if pos >= size:
            raise SpliceFailed("JPEG ended inside a marker")
        marker = data[pos]
        pos += 1

        if marker == 0x00:
            raise SpliceFailed(f"Stuffed byte where a marker was expected at offset {start}")
        if marker in (MARKER_SOS, MARKER_EOI):
            return segments
        if marker in STANDALONE_MARKERS:
            continue

        if pos + 2 > size:
            raise SpliceFailed(f"Truncated length for marker 0x{marker:02X}")
        (length,) = struct.unpack(">H", data[pos:pos + 2])
        if length < 2 or pos + length > size:
            raise SpliceFailed(f"Bad length {length} for marker 0x{marker:02X} at offset {start}")

        pos += length
        segments.append(Segment(marker=marker, start=start, end=pos))


def find_exif_segment(data: bytes, segments: list[Segment]) -> Optional[Segment]:
    """Return the first APP1 segment carrying an EXIF block, if any."""
    for segment in segments:
        if segment.marker == MARKER_APP1 and segment.payload(data).startswith(EXIF_HEADER):
            return segment
    return None


def load_container(data: bytes, segments: Optional[list[Segment]] = None) -> ContainerLoad:
    """Decode the existing EXIF container, falling back to an empty one.

    Never raises for missing or undecodable EXIF; the state says which.
    """
    if segments is None:
        segments = split_segments(data)

    segment = find_exif_segment(data, segments)
    if segment is None:
        return ContainerLoad(state=ContainerState.ABSENT, ifds=empty_container())

    try:
        ifds = piexif.load(segment.payload(data))
    except Exception as e:
        logger.warning("Existing EXIF block is unreadable, starting fresh: %s", e)
        logger.debug("piexif.load failure", exc_info=True)
        return ContainerLoad(state=ContainerState.CORRUPT, ifds=empty_container())

    for name in IFD_NAMES:
        ifds.setdefault(name, {})
    ifds.setdefault("thumbnail", None)
    return ContainerLoad(state=ContainerState.LOADED, ifds=ifds)


def set_metadata_tags(ifds: dict, metadata: MetadataRecord, clear_stale_gps: bool = False) -> dict:
    """Set the datetime and GPS tags on a container in place."""
    stamp = metadata.datetime.exif_string().encode("ascii")
    ifds["0th"][piexif.ImageIFD.DateTime] = stamp
    ifds["Exif"][piexif.ExifIFD.DateTimeOriginal] = stamp
    ifds["Exif"][piexif.ExifIFD.DateTimeDigitized] = stamp

    gps = metadata.gps
    if gps is not None:
        ifds["GPS"][piexif.GPSIFD.GPSLatitudeRef] = gps.latitude_ref.encode("ascii")
        ifds["GPS"][piexif.GPSIFD.GPSLatitude] = decimal_to_dms(gps.latitude)
        ifds["GPS"][piexif.GPSIFD.GPSLongitudeRef] = gps.longitude_ref.encode("ascii")
        ifds["GPS"][piexif.GPSIFD.GPSLongitude] = decimal_to_dms(gps.longitude)
    elif clear_stale_gps and ifds["GPS"]:
        logger.debug("Clearing %d pre-existing GPS tags", len(ifds["GPS"]))
        ifds["GPS"] = {}
        ifds["0th"].pop(piexif.ImageIFD.GPSTag, None)

    return ifds


def _dump_checked(ifds: dict) -> bytes:
    exif_bytes = piexif.dump(ifds)
    if len(exif_bytes) > MAX_SEGMENT_PAYLOAD:
        raise ValueError(
            f"EXIF block is {len(exif_bytes)} bytes, exceeds APP1 limit of {MAX_SEGMENT_PAYLOAD}"
        )
    return exif_bytes


def build_exif_bytes(
    loaded: ContainerLoad,
    metadata: MetadataRecord,
    clear_stale_gps: bool = False,
) -> bytes:
    """Merge our tags into the loaded container and dump it.

    If the loaded container holds a value piexif cannot re-encode, or the
    result no longer fits in one APP1 segment, the thumbnail is dropped
    first. If that is still not enough the write falls back to a fresh
    container carrying only our tags.
    """
    ifds = set_metadata_tags(loaded.ifds, metadata, clear_stale_gps)
    try:
        return _dump_checked(ifds)
    except Exception as e:
        if not loaded.loaded:
            raise
        logger.warning("Existing EXIF block could not be re-encoded: %s", e)
        logger.debug("piexif.dump failure", exc_info=True)

    if ifds.get("thumbnail") is not None or ifds.get("1st"):
        ifds["thumbnail"] = None
        ifds["1st"] = {}
        try:
            exif_bytes = _dump_checked(ifds)
        except Exception as e:
            logger.debug("Dump without thumbnail failed: %s", e, exc_info=True)
        else:
            logger.warning("Dropped the embedded thumbnail and 1st IFD from the EXIF block")
            return exif_bytes

    logger.warning("Writing a fresh EXIF block with only date/time and GPS tags")
    ifds = set_metadata_tags(empty_container(), metadata, clear_stale_gps)
    return _dump_checked(ifds)


def splice_exif(data: bytes, exif_bytes: bytes, segments: Optional[list[Segment]] = None) -> bytes:
    """Insert or replace the EXIF APP1 segment, leaving all other bytes intact.

    An existing EXIF APP1 is replaced where it stands. Otherwise the new
    segment goes right after SOI and any leading APP0 (JFIF) segments.
    """
    if not exif_bytes.startswith(EXIF_HEADER):
        raise SpliceFailed("EXIF payload must start with the 'Exif\\0\\0' header")
    if len(exif_bytes) > MAX_SEGMENT_PAYLOAD:
        raise SpliceFailed(
            f"EXIF block is {len(exif_bytes)} bytes, exceeds APP1 limit of {MAX_SEGMENT_PAYLOAD}"
        )
    if segments is None:
        segments = split_segments(data)

    app1 = b"\xff\xe1" + struct.pack(">H", len(exif_bytes) + 2) + exif_bytes

    existing = find_exif_segment(data, segments)
    if existing is not None:
        return data[:existing.start] + app1 + data[existing.end:]

    insert_at = len(SOI)
    for segment in segments:
        if segment.marker != MARKER_APP0 or segment.start != insert_at:
            break
        insert_at = segment.end
    return data[:insert_at] + app1 + data[insert_at:]


def apply_metadata(
    image: bytes,
    metadata: MetadataRecord,
    clear_stale_gps: bool = False,
) -> bytes:
    """Write ``metadata`` into a JPEG and return the new bytes.

    The input buffer is not modified. Raises SpliceFailed when the data is
    not a JPEG with a usable marker structure; missing or broken EXIF is
    replaced by a fresh container instead.
    """
    data = bytes(image)
    segments = split_segments(data)

    loaded = load_container(data, segments)
    logger.debug("Existing EXIF: %s", loaded.state.value)

    try:
        exif_bytes = build_exif_bytes(loaded, metadata, clear_stale_gps)
    except ValueError as e:
        raise SpliceFailed(f"Could not encode EXIF block: {e}") from e

    return splice_exif(data, exif_bytes, segments)


def _decode_ascii(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    return value.rstrip("\x00") or None


def read_metadata(image: bytes) -> ExifSummary:
    """Read back the datetime and GPS tags of a JPEG.

    Raises SpliceFailed for non-JPEG data and InvalidContainer when the
    EXIF segment exists but cannot be decoded.
    """
    data = bytes(image)
    segments = split_segments(data)
    segment = find_exif_segment(data, segments)
    if segment is None:
        return ExifSummary()

    try:
        ifds = piexif.load(segment.payload(data))
    except Exception as e:
        raise InvalidContainer(f"EXIF segment could not be decoded: {e}") from e

    zeroth = ifds.get("0th", {})
    exif = ifds.get("Exif", {})
    gps_ifd = ifds.get("GPS", {})

    summary = ExifSummary(
        datetime=_decode_ascii(zeroth.get(piexif.ImageIFD.DateTime)),
        datetime_original=_decode_ascii(exif.get(piexif.ExifIFD.DateTimeOriginal)),
        datetime_digitized=_decode_ascii(exif.get(piexif.ExifIFD.DateTimeDigitized)),
    )

    lat = gps_ifd.get(piexif.GPSIFD.GPSLatitude)
    lon = gps_ifd.get(piexif.GPSIFD.GPSLongitude)
    if lat and lon:
        try:
            summary.gps = GeoCoordinate(
                latitude=dms_to_decimal(lat, gps_ifd.get(piexif.GPSIFD.GPSLatitudeRef)),
                longitude=dms_to_decimal(lon, gps_ifd.get(piexif.GPSIFD.GPSLongitudeRef)),
            )
        except (TypeError, ValueError) as e:
            raise InvalidContainer(f"GPS tags could not be decoded: {e}") from e

    return summary
