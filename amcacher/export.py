"""
Tab separated exports of file and program entries.
"""

import contextlib
import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from amcacher.console import log_error, log_success
from amcacher.errors import ExportWriteFailure
from amcacher.hashfilter import HashFilter
from amcacher.records import FileEntry, ProgramsEntry

EXPORT_SCHEMA_VERSION = 1

DEFAULT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
PRECISE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

UNASSOCIATED = "Unassociated"

FILE_ENTRY_COLUMNS = [
    "ProgramName",
    "ProgramID",
    "VolumeID",
    "VolumeIDLastWriteTimestamp",
    "FileID",
    "FileIDLastWriteTimestamp",
    "SHA1",
    "FullPath",
    "FileExtension",
    "MFTEntryNumber",
    "MFTSequenceNumber",
    "FileSize",
    "FileVersionString",
    "FileVersionNumber",
    "FileDescription",
    "PEHeaderSize",
    "PEHeaderHash",
    "PEHeaderChecksum",
    "Created",
    "LastModified",
    "LastModified2",
    "CompileTime",
    "LanguageID",
]

PROGRAM_ENTRY_COLUMNS = [
    "ProgramID",
    "LastWriteTimestamp",
    "ProgramName_0",
    "ProgramVersion_1",
    "VendorName_2",
    "InstallDateEpoch_a",
    "InstallDateEpoch_b",
    "LanguageCode_3",
    "InstallSource_6",
    "UninstallRegistryKey_7",
    "PathsList_d",
]

UNASSOCIATED_EXPORT = "Unassociated file entries"
PROGRAMS_EXPORT = "Program entries"
ASSOCIATED_EXPORT = "Associated file entries"


@dataclass
class ExportStatus:
    name: str
    path: Path
    rows: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def export_path(output_dir: Path, run_stamp: str, source_name: str, export_name: str) -> Path:
    return output_dir / f"{run_stamp}_{source_name}_{export_name}.tsv"


# Row builders
def _ts(value: datetime | None, fmt: str) -> str:
    return value.strftime(fmt) if value is not None else ""


def _cell(value: Any) -> Any:
    return "" if value is None else value


def file_entry_row(entry: FileEntry, program_name: str, fmt: str) -> dict[str, Any]:
    return {
        "ProgramName": program_name,
        "ProgramID": entry.program_id,
        "VolumeID": entry.volume_id,
        "VolumeIDLastWriteTimestamp": _ts(entry.volume_id_last_write, fmt),
        "FileID": entry.file_id,
        "FileIDLastWriteTimestamp": _ts(entry.file_id_last_write, fmt),
        "SHA1": entry.sha1,
        "FullPath": entry.full_path,
        "FileExtension": entry.file_extension,
        "MFTEntryNumber": entry.mft_entry_number,
        "MFTSequenceNumber": entry.mft_sequence_number,
        "FileSize": _cell(entry.file_size),
        "FileVersionString": entry.file_version_string,
        "FileVersionNumber": entry.file_version_number,
        "FileDescription": entry.file_description,
        "PEHeaderSize": _cell(entry.pe_header_size),
        "PEHeaderHash": entry.pe_header_hash,
        "PEHeaderChecksum": _cell(entry.pe_header_checksum),
        "Created": _ts(entry.created, fmt),
        "LastModified": _ts(entry.last_modified, fmt),
        "LastModified2": _ts(entry.last_modified2, fmt),
        "CompileTime": _ts(entry.compile_time, fmt),
        "LanguageID": _cell(entry.language_id),
    }


def program_entry_row(program: ProgramsEntry, fmt: str) -> dict[str, Any]:
    return {
        "ProgramID": program.program_id,
        "LastWriteTimestamp": _ts(program.last_write, fmt),
        "ProgramName_0": program.program_name,
        "ProgramVersion_1": program.program_version,
        "VendorName_2": program.vendor_name,
        "InstallDateEpoch_a": _ts(program.install_date_a, fmt),
        "InstallDateEpoch_b": _ts(program.install_date_b, fmt),
        "LanguageCode_3": program.language_code,
        "InstallSource_6": program.install_source,
        "UninstallRegistryKey_7": program.uninstall_registry_key,
        "PathsList_d": "|".join(program.paths_list),
    }


def _write_tsv(name: str, destination: Path, fieldnames: list[str], rows: Iterable[dict[str, Any]]) -> int:
    """
    Write the header and rows. On failure the partial file is removed so a
    broken export is never left behind looking complete.
    """
    written = 0
    try:
        with destination.open("w", newline="", encoding="utf-8") as fp:
            w = csv.DictWriter(fp, fieldnames=fieldnames, delimiter="\t")
            w.writeheader()
            for row in rows:
                w.writerow(row)
                written += 1
    except (OSError, csv.Error, ValueError) as ex:
        with contextlib.suppress(OSError):
            destination.unlink(missing_ok=True)
        raise ExportWriteFailure(name, destination, str(ex)) from ex

    return written


# Writers
def write_unassociated(
    entries: Iterable[FileEntry],
    destination: Path,
    fmt: str = DEFAULT_DATETIME_FORMAT,
    hash_filter: HashFilter | None = None,
) -> int:
    hf = hash_filter or HashFilter()
    rows = (file_entry_row(e, UNASSOCIATED, fmt) for e in entries if hf.includes(e))
    return _write_tsv(UNASSOCIATED_EXPORT, destination, FILE_ENTRY_COLUMNS, rows)


def write_programs(programs: Iterable[ProgramsEntry], destination: Path, fmt: str = DEFAULT_DATETIME_FORMAT) -> int:
    rows = (program_entry_row(p, fmt) for p in programs)
    return _write_tsv(PROGRAMS_EXPORT, destination, PROGRAM_ENTRY_COLUMNS, rows)


def write_associated_files(
    programs: Iterable[ProgramsEntry],
    destination: Path,
    fmt: str = DEFAULT_DATETIME_FORMAT,
    hash_filter: HashFilter | None = None,
) -> int:
    hf = hash_filter or HashFilter()

    def _rows() -> Iterator[dict[str, Any]]:
        for program in programs:
            for entry in program.file_entries:
                if hf.includes(entry):
                    yield file_entry_row(entry, program.program_name, fmt)

    return _write_tsv(ASSOCIATED_EXPORT, destination, FILE_ENTRY_COLUMNS, _rows())


def run_export(name: str, destination: Path, writer: Callable[[Path], int]) -> ExportStatus:
    """Run one export, turning a write failure into a failed status."""
    try:
        rows = writer(destination)
    except ExportWriteFailure as ex:
        log_error(str(ex))
        return ExportStatus(name=name, path=destination, error=str(ex))

    log_success(f"{name}: {rows:,} rows -> {destination}")
    return ExportStatus(name=name, path=destination, rows=rows)
