"""Exception hierarchy for exif-stamp."""

from __future__ import annotations


class ExifStampError(Exception):
    """Base class for all exif-stamp errors."""


class ValidationError(ExifStampError, ValueError):
    """User input could not be normalized. Rejects the whole batch."""


class MalformedDateTime(ValidationError):
    pass


class MalformedGps(ValidationError):
    pass


class CodecError(ExifStampError):
    """A JPEG or its EXIF block could not be processed."""


class InvalidContainer(CodecError):
    """An EXIF segment is present but cannot be decoded."""


class SpliceFailed(CodecError):
    """The byte stream has no usable JPEG marker structure."""
