from datetime import datetime
from pathlib import Path

import pytest

from amcacher.hive import HiveContents
from amcacher.records import RawFileRecord, RawProgramRecord

VOLUME_ID = "{8f0c3a4d-1b2e-11e5-80c4-806e6f6e6963}"
VOLUME_TS = datetime(2023, 4, 24, 8, 0, 0)
FILE_TS = datetime(2023, 4, 25, 9, 30, 15)

# 2023-04-25 00:00:00 UTC
EPOCH_2023_04_25 = 1682380800
FILETIME_2023_04_25 = 133268544000000000

SHA1_A = "a" * 40
SHA1_B = "0123456789abcdef0123456789abcdef01234567"
SHA1_C = "fedcba9876543210fedcba9876543210fedcba98"


def make_raw_file(file_id: str = "0a000005", sha1: str | None = SHA1_A, program_id: str = "", **values) -> RawFileRecord:
    vals = {"15": r"C:\Windows\System32\notepad.exe", "100": program_id}
    if sha1 is not None:
        vals["101"] = "0000" + sha1
    vals.update(values)
    return RawFileRecord(
        volume_id=VOLUME_ID,
        volume_last_write=VOLUME_TS,
        file_id=file_id,
        last_write=FILE_TS,
        values=vals,
    )


def make_raw_program(program_id: str = "0000f1c2c3d4e5f6", files=(), **values) -> RawProgramRecord:
    vals = {"0": "Notepad++", "1": "8.5.2", "2": "Notepad++ Team"}
    vals.update(values)
    return RawProgramRecord(program_id=program_id, last_write=FILE_TS, values=vals, files=tuple(files))


@pytest.fixture()
def raw_file():
    return make_raw_file


@pytest.fixture()
def raw_program():
    return make_raw_program


@pytest.fixture()
def one_program_source() -> HiveContents:
    """One program owning two files plus one unassociated file."""
    pid = "0000f1c2c3d4e5f6"
    owned = (
        make_raw_file("10000001", SHA1_B, pid, **{"15": r"C:\Program Files\Notepad++\notepad++.exe"}),
        make_raw_file("10000002", SHA1_C, pid, **{"15": r"C:\Program Files\Notepad++\updater\GUP.exe"}),
    )
    return HiveContents(
        total_file_entries=3,
        programs=(make_raw_program(pid, owned),),
        unassociated=(make_raw_file("0a000005", SHA1_A),),
    )


@pytest.fixture()
def hive_file(tmp_path: Path) -> Path:
    """A stand-in source file; readers in tests never parse it."""
    p = tmp_path / "Amcache.hve"
    p.write_bytes(b"regf" + b"\x00" * 60)
    return p


def reader_for(contents: HiveContents):
    def _reader(source: Path, recover: bool) -> HiveContents:
        return contents
    return _reader
