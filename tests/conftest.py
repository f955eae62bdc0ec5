"""Shared test fixtures for exif-stamp."""

from __future__ import annotations

import shutil
import struct
import tempfile
from pathlib import Path

import piexif
import pytest

from exif_stamp.codec import MAX_SEGMENT_PAYLOAD


def build_minimal_jpeg(with_app0: bool = True) -> bytes:
    """Build a minimal 1x1 baseline JPEG byte stream by hand.

    The scan data is not meaningful; the codec never decodes it.
    """
    data = bytearray()
    # SOI
    data += b'\xff\xd8'
    if with_app0:
        # APP0 (JFIF)
        app0 = b'JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        data += b'\xff\xe0' + struct.pack('>H', len(app0) + 2) + app0
    # DQT (quantization table)
    qt = bytes([8] * 64)
    data += b'\xff\xdb' + struct.pack('>H', len(qt) + 3) + b'\x00' + qt
    # SOF0 (start of frame)
    sof = struct.pack('>BHHB', 8, 1, 1, 1) + b'\x01\x11\x00'
    data += b'\xff\xc0' + struct.pack('>H', len(sof) + 2) + sof
    # DHT (Huffman table - DC)
    ht_dc = b'\x00' + bytes(16) + b'\x00'
    data += b'\xff\xc4' + struct.pack('>H', len(ht_dc) + 2) + ht_dc
    # DHT (Huffman table - AC)
    ht_ac = b'\x10' + bytes(16) + b'\x00'
    data += b'\xff\xc4' + struct.pack('>H', len(ht_ac) + 2) + ht_ac
    # SOS (start of scan)
    sos = struct.pack('>B', 1) + b'\x01\x00' + b'\x00\x3f\x00'
    data += b'\xff\xda' + struct.pack('>H', len(sos) + 2) + sos
    # Scan data, including a stuffed 0xFF and bytes that look like markers
    data += b'\x12\x34\xff\x00\x56\xff\xe1\x00\x02'
    # EOI
    data += b'\xff\xd9'
    return bytes(data)


def insert_app1(jpeg: bytes, payload: bytes) -> bytes:
    """Put an APP1 segment with ``payload`` right after SOI + APP0."""
    app1 = b'\xff\xe1' + struct.pack('>H', len(payload) + 2) + payload
    # SOI (2) + APP0 (2 + 16)
    return jpeg[:20] + app1 + jpeg[20:]


def build_crowded_exif_jpeg(thumbnail: bytes | None = None, headroom: int = 100) -> bytes:
    """A JPEG whose EXIF block sits ``headroom`` bytes under the APP1 limit.

    An ImageDescription is padded until the dumped block is that size, so
    adding our date/time and GPS tags pushes it over.
    """
    exif = {
        "0th": {
            piexif.ImageIFD.Make: b"Epson",
            piexif.ImageIFD.ImageDescription: b"x",
        },
        "Exif": {}, "GPS": {}, "Interop": {}, "1st": {},
        "thumbnail": thumbnail,
    }
    base = len(piexif.dump(exif))
    pad = MAX_SEGMENT_PAYLOAD - headroom - base
    exif["0th"][piexif.ImageIFD.ImageDescription] = b"x" * (1 + pad)
    payload = piexif.dump(exif)
    assert len(payload) <= MAX_SEGMENT_PAYLOAD
    return insert_app1(build_minimal_jpeg(), payload)


@pytest.fixture
def tmp_dir():
    """Create a temporary directory for tests."""
    d = tempfile.mkdtemp(prefix="exif-stamp-test-")
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def plain_jpeg() -> bytes:
    """A JFIF JPEG with no EXIF segment."""
    return build_minimal_jpeg()


@pytest.fixture
def exif_jpeg() -> bytes:
    """A JPEG whose EXIF already carries camera info, a date and GPS (-34.5, 138.5)."""
    exif = {
        "0th": {
            piexif.ImageIFD.Make: b"Epson",
            piexif.ImageIFD.Model: b"Perfection V600",
            piexif.ImageIFD.DateTime: b"2019:05:05 05:05:05",
        },
        "Exif": {
            piexif.ExifIFD.DateTimeOriginal: b"2019:05:05 05:05:05",
        },
        "GPS": {
            piexif.GPSIFD.GPSLatitudeRef: b"S",
            piexif.GPSIFD.GPSLatitude: ((34, 1), (30, 1), (0, 100)),
            piexif.GPSIFD.GPSLongitudeRef: b"E",
            piexif.GPSIFD.GPSLongitude: ((138, 1), (30, 1), (0, 100)),
        },
        "Interop": {},
        "1st": {},
        "thumbnail": None,
    }
    return insert_app1(build_minimal_jpeg(), piexif.dump(exif))


@pytest.fixture
def corrupt_exif_jpeg() -> bytes:
    """A JPEG with an APP1 'Exif' segment whose TIFF block is garbage."""
    return insert_app1(build_minimal_jpeg(), b"Exif\x00\x00" + b"\xde\xad\xbe\xef" * 4)


@pytest.fixture
def create_jpeg(tmp_dir):
    """Factory fixture to write JPEG bytes to a file in tmp_dir."""

    def _create(name: str = "scan.jpg", data: bytes | None = None, subdir: str = "") -> Path:
        if subdir:
            target_dir = tmp_dir / subdir
            target_dir.mkdir(parents=True, exist_ok=True)
        else:
            target_dir = tmp_dir

        filepath = target_dir / name
        filepath.write_bytes(build_minimal_jpeg() if data is None else data)
        return filepath

    return _create


@pytest.fixture
def crowded_exif_jpeg() -> bytes:
    """A JPEG with no thumbnail and an EXIF block just under the APP1 limit."""
    return build_crowded_exif_jpeg()


@pytest.fixture
def crowded_thumbnail_jpeg() -> bytes:
    """Like crowded_exif_jpeg, with most of the space taken by a thumbnail."""
    # Thumbnail JPEG bulked up with a 40 kB comment segment
    comment = bytes(40000)
    thumbnail = (b"\xff\xd8" + b"\xff\xfe" + struct.pack(">H", len(comment) + 2) + comment
                 + build_minimal_jpeg(with_app0=False)[2:])
    return build_crowded_exif_jpeg(thumbnail=thumbnail)
