"""
Drives one run: read the hive, build entries, filter, export, summarize.
"""

import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from amcacher.console import log_dim, log_error, log_header, log_info, log_step, log_warn
from amcacher.config import Settings
from amcacher.errors import AmcacheError, EmptySource, SourceUnavailable
from amcacher.export import (
    ASSOCIATED_EXPORT,
    PROGRAMS_EXPORT,
    UNASSOCIATED_EXPORT,
    ExportStatus,
    export_path,
    run_export,
    write_associated_files,
    write_programs,
    write_unassociated,
)
from amcacher.hashfilter import HashFilter, select_hash_filter
from amcacher.hive import HiveContents, HiveReader, read_amcache_hive
from amcacher.records import FileEntry, ProgramsEntry, RawFileRecord, build_file_entry, build_programs_entry

RUN_STAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclass
class BuiltEntities:
    programs: list[ProgramsEntry] = field(default_factory=list)
    unassociated: list[FileEntry] = field(default_factory=list)
    skipped_records: int = 0


@dataclass
class RunSummary:
    source: Path
    output_dir: Path
    total_file_entries: int
    program_count: int
    unassociated_retained: int
    associated_retained: int
    skipped_records: int = 0
    hash_filter: HashFilter = field(default_factory=HashFilter)
    exports: list[ExportStatus] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def retained(self) -> int:
        return self.unassociated_retained + self.associated_retained

    @property
    def retained_percentage(self) -> float | None:
        if self.total_file_entries <= 0:
            return None
        return self.retained / self.total_file_entries

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.exports)


def check_source(source: Path) -> None:
    if not source.exists():
        raise SourceUnavailable(source, "not found")
    if not source.is_file():
        raise SourceUnavailable(source, "is not a file")
    if not os.access(source, os.R_OK):
        raise SourceUnavailable(source, "is not readable")


def build_entities(contents: HiveContents) -> BuiltEntities:
    """
    Build typed entries from the raw records. Malformed records are skipped
    with a warning; files of a skipped program are kept as unassociated.
    """
    built = BuiltEntities()
    demoted: list[RawFileRecord] = []

    def _skip_file(raw: RawFileRecord, ex: AmcacheError) -> None:
        built.skipped_records += 1
        log_warn(f"Skipping file record: {ex}")

    for raw in contents.programs:
        try:
            built.programs.append(build_programs_entry(raw, raw.files, on_bad_file=_skip_file))
        except AmcacheError as ex:
            built.skipped_records += 1
            log_warn(f"Skipping program record: {ex} ({len(raw.files)} file records kept as unassociated)")
            demoted.extend(raw.files)

    for raw_file in [*contents.unassociated, *demoted]:
        try:
            built.unassociated.append(build_file_entry(raw_file))
        except AmcacheError as ex:
            _skip_file(raw_file, ex)

    return built


def run_pipeline(
    settings: Settings,
    reader: HiveReader = read_amcache_hive,
    started: datetime | None = None,
) -> RunSummary:
    started = started or datetime.now()
    start = time.perf_counter()

    source = settings.source
    check_source(source)

    log_step(f"Reading {source}")
    contents = reader(source, settings.recover_deleted)
    built = build_entities(contents)

    if not built.programs and not built.unassociated:
        raise EmptySource(source)

    hash_filter = select_hash_filter(settings.allow_list, settings.deny_list)

    unassociated_retained = len(hash_filter.apply(built.unassociated))
    associated_retained = sum(len(hash_filter.apply(p.file_entries)) for p in built.programs)

    out_dir = settings.output_dir
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as ex:
        log_error(f"There was an error creating directory '{out_dir}': {ex}")

    stamp = started.strftime(RUN_STAMP_FORMAT)
    fmt = settings.datetime_format

    exports = [
        run_export(
            UNASSOCIATED_EXPORT,
            export_path(out_dir, stamp, source.stem, UNASSOCIATED_EXPORT),
            lambda p: write_unassociated(built.unassociated, p, fmt, hash_filter),
        )
    ]

    if settings.include_linked:
        exports.append(
            run_export(
                PROGRAMS_EXPORT,
                export_path(out_dir, stamp, source.stem, PROGRAMS_EXPORT),
                lambda p: write_programs(built.programs, p, fmt),
            )
        )
        exports.append(
            run_export(
                ASSOCIATED_EXPORT,
                export_path(out_dir, stamp, source.stem, ASSOCIATED_EXPORT),
                lambda p: write_associated_files(built.programs, p, fmt, hash_filter),
            )
        )

    return RunSummary(
        source=source,
        output_dir=out_dir,
        total_file_entries=contents.total_file_entries,
        program_count=len(built.programs),
        unassociated_retained=unassociated_retained,
        associated_retained=associated_retained,
        skipped_records=built.skipped_records,
        hash_filter=hash_filter,
        exports=exports,
        elapsed=time.perf_counter() - start,
    )


def report_summary(summary: RunSummary, include_linked: bool = False) -> None:
    log_header("Summary")
    log_info(f"Total file entries found: {summary.total_file_entries:,}.")

    suffix = "y" if summary.unassociated_retained == 1 else "ies"
    linked = ""
    if include_linked:
        linked = (f" and {summary.associated_retained:,} program file entries "
                  f"(across {summary.program_count:,} program entries)")
    log_info(f"Found {summary.unassociated_retained:,} unassociated file entr{suffix}{linked}")

    if summary.skipped_records:
        log_warn(f"Skipped {summary.skipped_records:,} malformed records")

    hf = summary.hash_filter
    if hf.active:
        log_info(f"{hf.mode.value.capitalize()} hash count: {len(hf.hashes):,}")
        per = summary.retained_percentage
        if per is None:
            log_info(f"Percentage of total shown based on {hf.mode.value}: n/a (no file entries)")
        else:
            log_info(f"Percentage of total shown based on {hf.mode.value}: {per:.3%} ({1 - per:.3%} savings)")

    failed = [s for s in summary.exports if not s.ok]
    if failed:
        log_error(f"{len(failed)} of {len(summary.exports)} exports failed:")
        for s in failed:
            log_error(f"    - {s.name}: {s.error}")
    else:
        log_info(f"Results saved to: {summary.output_dir}")

    log_dim(f"Total processing time: {summary.elapsed:.3f} seconds.")
