"""
Reads raw file and program records out of a legacy Amcache.hve with
python-registry.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from Registry import Registry, RegistryParse

from amcacher.console import log_info, log_warn
from amcacher.records import FILE_PROGRAM_ID, RawFileRecord, RawProgramRecord

FILE_ROOT = r"Root\File"
PROGRAMS_ROOT = r"Root\Programs"
INVENTORY_ROOT = r"Root\InventoryApplicationFile"

# Raised by python-registry while decoding a value held in a damaged cell
UNREADABLE_VALUE_ERRORS = (UnicodeDecodeError, RegistryParse.ParseException)


@dataclass(frozen=True)
class HiveContents:
    total_file_entries: int
    programs: tuple[RawProgramRecord, ...] = ()
    unassociated: tuple[RawFileRecord, ...] = ()


# Any callable taking (source path, recover deleted flag)
HiveReader = Callable[[Path, bool], HiveContents]


def _open_key(hive, key_path: str):
    try:
        return hive.open(key_path.strip("\\"))
    except Registry.RegistryKeyNotFoundException:
        return None


def _values_map(key) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for v in key.values():
        name = v.name()
        if name is None:
            continue
        out[name.lower()] = v.value()
    return out


def _read_values(key, key_path: str) -> dict[str, Any] | None:
    """Values of one key, or None (with a warning) when any of them cannot be decoded."""
    try:
        return _values_map(key)
    except UNREADABLE_VALUE_ERRORS as e:
        log_warn(f"Skipping unreadable key {key_path}: {e}")
        return None


def read_file_records(hive) -> tuple[list[RawFileRecord], int]:
    """
    Returns the readable file records and the number of file keys skipped
    because their values could not be decoded.
    """
    root = _open_key(hive, FILE_ROOT)
    if root is None:
        return [], 0

    records: list[RawFileRecord] = []
    skipped = 0
    for volume in root.subkeys():
        volume_ts = volume.timestamp()
        for file_key in volume.subkeys():
            values = _read_values(file_key, f"{FILE_ROOT}\\{volume.name()}\\{file_key.name()}")
            if values is None:
                skipped += 1
                continue
            records.append(
                RawFileRecord(
                    volume_id=volume.name(),
                    volume_last_write=volume_ts,
                    file_id=file_key.name(),
                    last_write=file_key.timestamp(),
                    values=values,
                )
            )
    return records, skipped


def read_program_records(hive) -> list[tuple[str, Any, dict[str, Any]]]:
    root = _open_key(hive, PROGRAMS_ROOT)
    if root is None:
        return []

    rows = []
    for k in root.subkeys():
        values = _read_values(k, f"{PROGRAMS_ROOT}\\{k.name()}")
        if values is not None:
            rows.append((k.name(), k.timestamp(), values))
    return rows


def group_records(
    program_rows: list[tuple[str, Any, dict[str, Any]]],
    file_records: list[RawFileRecord],
    unreadable_files: int = 0,
) -> HiveContents:
    """
    Attach every file record whose program id names a known program to that
    program. The rest stay unassociated. Order of both is preserved.
    Unreadable file keys still count toward the total.
    """
    owned: dict[str, list[RawFileRecord]] = {pid: [] for pid, _, _ in program_rows}
    unassociated: list[RawFileRecord] = []

    for rec in file_records:
        pid = rec.values.get(FILE_PROGRAM_ID)
        if isinstance(pid, str) and pid in owned:
            owned[pid].append(rec)
        else:
            unassociated.append(rec)

    programs = tuple(
        RawProgramRecord(program_id=pid, last_write=ts, values=vals, files=tuple(owned[pid]))
        for pid, ts, vals in program_rows
    )
    return HiveContents(
        total_file_entries=len(file_records) + unreadable_files,
        programs=programs,
        unassociated=tuple(unassociated),
    )


def read_amcache_hive(source: Path, recover_deleted: bool = False) -> HiveContents:
    if recover_deleted:
        log_warn("python-registry does not carve deleted keys; only allocated records will be read")

    hive = Registry.Registry(str(source))

    file_records, unreadable = read_file_records(hive)
    program_rows = read_program_records(hive)

    if not file_records and not unreadable and not program_rows and _open_key(hive, INVENTORY_ROOT) is not None:
        log_warn(f"'{source}' only holds the {INVENTORY_ROOT} layout, which is not read by this tool")

    log_info(f"Read {len(file_records):,} file keys and {len(program_rows):,} program keys from {source}")
    return group_records(program_rows, file_records, unreadable)
