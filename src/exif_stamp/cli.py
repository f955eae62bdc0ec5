"""CLI entry point: stamp + inspect subcommands."""

from __future__ import annotations

import logging
import sys
from contextlib import nullcontext
from pathlib import Path

import click

from .batch import stamp_files, tally
from .codec import read_metadata
from .errors import CodecError, MalformedDateTime, MalformedGps
from .models import BatchConfig, MetadataRecord
from .normalize import normalize
from .report import format_exif_summary, print_summary, write_report_line

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _normalize_options(date: str, gps: str | None) -> MetadataRecord:
    """Normalize --date/--gps, reporting problems against the right option."""
    try:
        return normalize(date, gps)
    except MalformedDateTime as e:
        raise click.BadParameter(str(e), param_hint="--date")
    except MalformedGps as e:
        raise click.BadParameter(str(e), param_hint="--gps")


@click.group()
@click.version_option(package_name="exif-stamp")
def main():
    """exif-stamp: write capture date and GPS into scanned JPEGs without re-encoding."""
    pass


@main.command()
@click.argument("files", nargs=-1, required=True,
                type=click.Path(dir_okay=False, path_type=Path))
@click.option("--date", "date", required=True,
              help="Capture time: YYYY[-MM[-DD[ HH[:MM[:SS]]]]]")
@click.option("--gps", default=None,
              help="Capture location as 'lat,lon' in decimal degrees")
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Write outputs here (default: next to each input)")
@click.option("--suffix", default="_exif", show_default=True,
              help="Suffix added to the output file stem")
@click.option("--clear-gps", is_flag=True,
              help="Remove existing GPS tags when --gps is not given")
@click.option("--dry-run", is_flag=True,
              help="Process files but don't write outputs")
@click.option("--report", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="JSONL report output path")
@click.option("--verbose", "-v", is_flag=True,
              help="Enable debug logging")
def stamp_cmd(files, date, gps, out_dir, suffix, clear_gps, dry_run, report, verbose):
    """Write date/time and GPS EXIF tags into JPEG FILES."""
    _setup_logging(verbose)

    # Bad input rejects the whole batch before any file is read
    metadata = _normalize_options(date, gps)
    if not suffix:
        raise click.BadParameter("must not be empty",
                                 param_hint="--suffix")

    config = BatchConfig(
        out_dir=out_dir,
        suffix=suffix,
        clear_stale_gps=clear_gps,
        dry_run=dry_run,
        report_path=report,
        inputs=list(files),
    )

    print(f"Stamping {len(config.inputs)} file(s) with {metadata.datetime.exif_string()}"
          + (f" @ {metadata.gps.latitude},{metadata.gps.longitude}" if metadata.gps else ""))

    report_ctx = open(config.report_path, "w") if config.report_path else nullcontext()
    outcomes = []
    with report_ctx as report_file:
        for source, outcome, written in stamp_files(config, metadata):
            if written:
                print(f"  {source} -> {written}")
            elif outcome.ok:
                print(f"  {source} -> {outcome.output_name} (not written)")
            else:
                print(f"  {source}: FAILED ({outcome.error})")
            if report_file is not None:
                write_report_line(report_file, source, outcome, metadata, written)
            outcomes.append(outcome)

    summary = tally(outcomes)
    print_summary(summary, dry_run=dry_run)
    if report:
        print(f"Report written to: {report}")

    if summary.failed:
        sys.exit(1)


@main.command()
@click.argument("files", nargs=-1, required=True,
                type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--verbose", "-v", is_flag=True,
              help="Enable debug logging")
def inspect_cmd(files, verbose):
    """Show the date/time and GPS EXIF tags of JPEG FILES."""
    _setup_logging(verbose)

    errors = 0
    for path in files:
        try:
            summary = read_metadata(path.read_bytes())
        except (CodecError, OSError) as e:
            logger.error("Failed to read EXIF from %s: %s", path, e)
            errors += 1
            continue
        print(format_exif_summary(str(path), summary))

    if errors:
        sys.exit(1)


# Register subcommands
main.add_command(stamp_cmd, "stamp")
main.add_command(inspect_cmd, "inspect")
