"""JSONL report writer and human-readable summary printer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Optional

from .models import BatchTally, ExifSummary, FileOutcome, MetadataRecord


def write_report_line(
    report_file: IO[str],
    source: Path,
    outcome: FileOutcome,
    metadata: MetadataRecord,
    written: Optional[Path] = None,
):
    """Write one JSONL line for a processed file."""
    entry = {
        "file": str(source),
        "action": "stamp" if outcome.ok else "fail",
        "output": str(written) if written else None,
        "output_name": outcome.output_name,
        "new": {
            "DateTimeOriginal": metadata.datetime.exif_string(),
            "GPSLatitude": metadata.gps.latitude if metadata.gps else None,
            "GPSLongitude": metadata.gps.longitude if metadata.gps else None,
        },
    }

    if outcome.ok:
        entry["size"] = len(outcome.data)
    else:
        entry["error"] = outcome.error

    report_file.write(json.dumps(entry) + "\n")


def print_summary(summary: BatchTally, dry_run: bool = False):
    """Print human-readable batch summary to stdout."""
    print()
    print("=" * 60)
    print("exif-stamp summary" + (" (dry run)" if dry_run else ""))
    print("=" * 60)
    print(f"  Files processed:  {summary.total}")
    print(f"  Succeeded:        {summary.succeeded}")
    print(f"  Failed:           {summary.failed}")
    for name in summary.failed_sources[:10]:
        print(f"    {name}")
    if len(summary.failed_sources) > 10:
        print(f"    ... and {len(summary.failed_sources) - 10} more")
    print("=" * 60)
    print()


def format_exif_summary(name: str, summary: ExifSummary) -> str:
    """One block of text describing the tags found in a file."""
    gps = (
        f"{summary.gps.latitude:.6f},{summary.gps.longitude:.6f}"
        if summary.gps else "-"
    )
    return "\n".join([
        f"{name}",
        f"  DateTime:          {summary.datetime or '-'}",
        f"  DateTimeOriginal:  {summary.datetime_original or '-'}",
        f"  DateTimeDigitized: {summary.datetime_digitized or '-'}",
        f"  GPS:               {gps}",
    ])
