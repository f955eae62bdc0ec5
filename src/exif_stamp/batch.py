"""Batch processing: apply one MetadataRecord to many JPEGs, strictly in order."""

from __future__ import annotations

import logging
import re
from functools import reduce
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .codec import apply_metadata
from .errors import SpliceFailed
from .models import BatchConfig, BatchTally, FileOutcome, MetadataRecord

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"
_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def output_filename(name: str, suffix: str = "_exif") -> str:
    """Suggested output name: '<stem><suffix><ext>', ext defaulting to .jpg.

    Example:
        output_filename("scan_001.JPG") -> "scan_001_exif.JPG"
        output_filename("scan_001")     -> "scan_001_exif.jpg"
    """
    m = _EXTENSION_RE.search(name)
    if m:
        return f"{name[:m.start()]}{suffix}{m.group(0)}"
    return f"{name}{suffix}{DEFAULT_EXTENSION}"


def transform_file(
    name: str,
    data: bytes,
    metadata: MetadataRecord,
    clear_stale_gps: bool = False,
    suffix: str = "_exif",
) -> FileOutcome:
    """Apply metadata to one file. A splice failure becomes a failed outcome."""
    output_name = output_filename(name, suffix)
    try:
        new_data = apply_metadata(data, metadata, clear_stale_gps=clear_stale_gps)
    except SpliceFailed as e:
        logger.error("Failed to write EXIF to %s: %s", name, e)
        return FileOutcome(source=name, output_name=output_name, error=str(e))

    logger.debug("Stamped %s -> %s (%d bytes)", name, output_name, len(new_data))
    return FileOutcome(source=name, output_name=output_name, data=new_data)


def transform_batch(
    inputs: Iterable[tuple[str, bytes]],
    metadata: MetadataRecord,
    clear_stale_gps: bool = False,
    suffix: str = "_exif",
) -> Iterator[FileOutcome]:
    """Lazily transform (name, data) pairs one at a time, in input order."""
    for name, data in inputs:
        yield transform_file(name, data, metadata, clear_stale_gps, suffix)


def tally(outcomes: Iterable[FileOutcome], start: Optional[BatchTally] = None) -> BatchTally:
    """Fold outcomes into an aggregate success/failure count."""
    return reduce(BatchTally.record, outcomes, start or BatchTally())


def read_inputs(paths: Iterable[Path]) -> Iterator[tuple[Path, Optional[bytes], str]]:
    """Yield (path, data, error) per input; data is None when it can't be read."""
    for path in paths:
        try:
            yield path, path.read_bytes(), ""
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            yield path, None, str(e)


def stamp_files(
    config: BatchConfig,
    metadata: MetadataRecord,
) -> Iterator[tuple[Path, FileOutcome, Optional[Path]]]:
    """Transform and write each input file in order.

    Yields (source_path, outcome, written_path). written_path is None for
    failures and dry runs. Read and write errors count as failures for
    that file only. So does an output path that is the input itself or
    was already written earlier in the same batch; nothing is written then.
    """
    if config.out_dir and not config.dry_run:
        config.out_dir.mkdir(parents=True, exist_ok=True)

    written: set[Path] = set()

    for path, data, read_error in read_inputs(config.inputs):
        if data is None:
            outcome = FileOutcome(
                source=path.name,
                output_name=output_filename(path.name, config.suffix),
                error=read_error,
            )
            yield path, outcome, None
            continue

        outcome = transform_file(
            path.name, data, metadata,
            clear_stale_gps=config.clear_stale_gps,
            suffix=config.suffix,
        )
        if not outcome.ok or config.dry_run:
            yield path, outcome, None
            continue

        dest = (config.out_dir or path.parent) / outcome.output_name
        target = dest.resolve()
        if target == path.resolve():
            error = f"Output {dest} would overwrite the input file"
        elif target in written:
            error = f"Output {dest} was already written for an earlier input"
        else:
            error = ""
        if error:
            logger.error("Skipping %s: %s", path, error)
            yield path, FileOutcome(
                source=outcome.source, output_name=outcome.output_name, error=error,
            ), None
            continue

        if dest.exists():
            logger.warning("Overwriting existing output %s", dest)
        try:
            dest.write_bytes(outcome.data)
        except OSError as e:
            logger.error("Failed to write %s: %s", dest, e)
            yield path, FileOutcome(
                source=outcome.source, output_name=outcome.output_name, error=str(e),
            ), None
            continue

        written.add(target)
        yield path, outcome, dest
