"""
Raw Amcache records and the typed entries built from them.
"""

import ntpath
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from amcacher.errors import AmcacheError, MalformedRecord
from amcacher.keys import decode_file_reference

# Value names under Root\File\{volume}\{file}
FILE_PRODUCT_NAME = "0"
FILE_COMPANY_NAME = "1"
FILE_VERSION_NUMBER = "2"
FILE_LANGUAGE_ID = "3"
FILE_SWITCH_BACK_CONTEXT = "4"
FILE_VERSION_STRING = "5"
FILE_SIZE = "6"
FILE_PE_HEADER_SIZE = "7"
FILE_PE_HEADER_HASH = "8"
FILE_PE_HEADER_CHECKSUM = "9"
FILE_UNKNOWN1 = "a"
FILE_UNKNOWN2 = "b"
FILE_DESCRIPTION = "c"
FILE_UNKNOWN3 = "d"
FILE_COMPILE_TIME = "f"
FILE_UNKNOWN4 = "10"
FILE_LAST_MODIFIED = "11"
FILE_CREATED = "12"
FILE_FULL_PATH = "15"
FILE_UNKNOWN5 = "16"
FILE_LAST_MODIFIED2 = "17"
FILE_UNKNOWN6 = "18"
FILE_PROGRAM_ID = "100"
FILE_SHA1 = "101"

# Value names under Root\Programs\{program}
PROGRAM_NAME = "0"
PROGRAM_VERSION = "1"
PROGRAM_VENDOR = "2"
PROGRAM_LANGUAGE_CODE = "3"
PROGRAM_INSTALL_SOURCE = "6"
PROGRAM_UNINSTALL_KEY = "7"
PROGRAM_INSTALL_DATE_A = "a"
PROGRAM_INSTALL_DATE_B = "b"
PROGRAM_PATHS = "d"

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)

_SHA1_RE = re.compile(r"[0-9a-f]{40}")


@dataclass(frozen=True)
class RawFileRecord:
    volume_id: str
    volume_last_write: datetime | None
    file_id: str
    last_write: datetime | None
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawProgramRecord:
    program_id: str
    last_write: datetime | None
    values: dict[str, Any] = field(default_factory=dict)
    files: tuple[RawFileRecord, ...] = ()


@dataclass(frozen=True)
class FileEntry:
    sha1: str
    full_path: str
    file_extension: str
    mft_entry_number: int
    mft_sequence_number: int
    program_id: str
    product_name: str
    company_name: str
    file_version_string: str
    file_version_number: str
    file_description: str
    pe_header_hash: str
    switch_back_context: str
    volume_id: str
    volume_id_last_write: datetime
    file_id: str
    file_id_last_write: datetime
    file_size: int | None = None
    pe_header_size: int | None = None
    pe_header_checksum: int | None = None
    language_id: int | None = None
    created: datetime | None = None
    last_modified: datetime | None = None
    last_modified2: datetime | None = None
    compile_time: datetime | None = None
    unknown1: Any = None
    unknown2: Any = None
    unknown3: Any = None
    unknown4: Any = None
    unknown5: Any = None
    unknown6: Any = None


@dataclass(frozen=True)
class ProgramsEntry:
    program_id: str
    last_write: datetime
    program_name: str = ""
    program_version: str = ""
    vendor_name: str = ""
    language_code: str = ""
    install_source: str = ""
    uninstall_registry_key: str = ""
    paths_list: tuple[str, ...] = ()
    install_date_a: datetime | None = None
    install_date_b: datetime | None = None
    file_entries: tuple[FileEntry, ...] = ()


# Normalization helpers
def normalize_hash(raw: str | None) -> str:
    """
    Strip the 4 character hash-type tag and lower-case the digest.
    Anything that does not leave a SHA1 digest normalizes to "".
    """
    if not raw or len(raw) < 5:
        return ""

    digest = raw[4:].strip().lower()
    if not _SHA1_RE.fullmatch(digest):
        return ""
    return digest


def file_extension(path: str) -> str:
    name = ntpath.basename(path or "")
    idx = name.rfind(".")
    if idx == -1 or idx == len(name) - 1:
        return ""
    return name[idx:]


def _text(v: Any) -> str:
    if v is None:
        return ""

    if isinstance(v, (list, tuple)):
        return "; ".join(_text(x) for x in v)

    if isinstance(v, (bytes, bytearray)):
        b = bytes(v)
        for enc in ("utf-16-le", "utf-8", "latin-1"):
            try:
                return b.decode(enc, errors="strict").rstrip("\x00")
            except UnicodeDecodeError:
                continue

    return str(v)


def _text_list(v: Any) -> tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, (list, tuple)):
        return tuple(s for s in (_text(x) for x in v) if s)
    s = _text(v)
    return (s,) if s else ()


def _opt_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    s = str(v).strip()
    try:
        if s.lower().startswith("0x"):
            return int(s, 16)
        return int(s)
    except ValueError:
        return None


def _aware(ts: datetime | None) -> datetime | None:
    # python-registry hands back naive UTC timestamps
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def filetime_to_datetime(v: Any) -> datetime | None:
    ft = _opt_int(v)
    if not ft or ft < 0:
        return None
    try:
        return FILETIME_EPOCH + timedelta(microseconds=ft // 10)
    except OverflowError:
        return None


def epoch_to_datetime(v: Any) -> datetime | None:
    secs = _opt_int(v)
    if not secs or secs < 0:
        return None
    try:
        return datetime.fromtimestamp(secs, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


# Builders
def build_file_entry(raw: RawFileRecord) -> FileEntry:
    record_id = f"{raw.volume_id}\\{raw.file_id}"
    vals = raw.values

    if not raw.volume_id:
        raise MalformedRecord(record_id, "missing volume id")
    if not raw.file_id:
        raise MalformedRecord(record_id, "missing file id")
    if raw.volume_last_write is None:
        raise MalformedRecord(record_id, "missing volume last write timestamp")
    if raw.last_write is None:
        raise MalformedRecord(record_id, "missing file last write timestamp")
    if vals.get(FILE_SHA1) is None:
        raise MalformedRecord(record_id, f"missing SHA1 value '{FILE_SHA1}'")

    ref = decode_file_reference(raw.file_id)
    full_path = _text(vals.get(FILE_FULL_PATH))

    return FileEntry(
        sha1=normalize_hash(_text(vals.get(FILE_SHA1))),
        full_path=full_path,
        file_extension=file_extension(full_path),
        mft_entry_number=ref.entry,
        mft_sequence_number=ref.sequence,
        program_id=_text(vals.get(FILE_PROGRAM_ID)),
        product_name=_text(vals.get(FILE_PRODUCT_NAME)),
        company_name=_text(vals.get(FILE_COMPANY_NAME)),
        file_version_string=_text(vals.get(FILE_VERSION_STRING)),
        file_version_number=_text(vals.get(FILE_VERSION_NUMBER)),
        file_description=_text(vals.get(FILE_DESCRIPTION)),
        pe_header_hash=_text(vals.get(FILE_PE_HEADER_HASH)),
        switch_back_context=_text(vals.get(FILE_SWITCH_BACK_CONTEXT)),
        volume_id=raw.volume_id,
        volume_id_last_write=_aware(raw.volume_last_write),
        file_id=raw.file_id,
        file_id_last_write=_aware(raw.last_write),
        file_size=_opt_int(vals.get(FILE_SIZE)),
        pe_header_size=_opt_int(vals.get(FILE_PE_HEADER_SIZE)),
        pe_header_checksum=_opt_int(vals.get(FILE_PE_HEADER_CHECKSUM)),
        language_id=_opt_int(vals.get(FILE_LANGUAGE_ID)),
        created=filetime_to_datetime(vals.get(FILE_CREATED)),
        last_modified=filetime_to_datetime(vals.get(FILE_LAST_MODIFIED)),
        last_modified2=filetime_to_datetime(vals.get(FILE_LAST_MODIFIED2)),
        compile_time=epoch_to_datetime(vals.get(FILE_COMPILE_TIME)),
        unknown1=vals.get(FILE_UNKNOWN1),
        unknown2=vals.get(FILE_UNKNOWN2),
        unknown3=vals.get(FILE_UNKNOWN3),
        unknown4=vals.get(FILE_UNKNOWN4),
        unknown5=vals.get(FILE_UNKNOWN5),
        unknown6=vals.get(FILE_UNKNOWN6),
    )


def build_programs_entry(
    raw: RawProgramRecord,
    associated_raw_files: list[RawFileRecord] | tuple[RawFileRecord, ...] | None = None,
    on_bad_file: Callable[[RawFileRecord, AmcacheError], None] | None = None,
) -> ProgramsEntry:
    """
    Build a program entry and the file entries it owns.

    Files default to the ones the collaborator attached to the record. A file
    that fails to build raises, unless on_bad_file is given: then the file is
    handed to it and left out of the entry.
    """
    if not raw.program_id:
        raise MalformedRecord(raw.program_id, "missing program id")
    if raw.last_write is None:
        raise MalformedRecord(raw.program_id, "missing last write timestamp")

    if associated_raw_files is None:
        associated_raw_files = raw.files

    files: list[FileEntry] = []
    for raw_file in associated_raw_files:
        try:
            fe = build_file_entry(raw_file)
            if fe.program_id != raw.program_id:
                raise MalformedRecord(
                    f"{raw_file.volume_id}\\{raw_file.file_id}",
                    f"belongs to program {fe.program_id!r}, not {raw.program_id!r}",
                )
        except AmcacheError as ex:
            if on_bad_file is None:
                raise
            on_bad_file(raw_file, ex)
            continue
        files.append(fe)

    vals = raw.values
    return ProgramsEntry(
        program_id=raw.program_id,
        last_write=_aware(raw.last_write),
        program_name=_text(vals.get(PROGRAM_NAME)),
        program_version=_text(vals.get(PROGRAM_VERSION)),
        vendor_name=_text(vals.get(PROGRAM_VENDOR)),
        language_code=_text(vals.get(PROGRAM_LANGUAGE_CODE)),
        install_source=_text(vals.get(PROGRAM_INSTALL_SOURCE)),
        uninstall_registry_key=_text(vals.get(PROGRAM_UNINSTALL_KEY)),
        paths_list=_text_list(vals.get(PROGRAM_PATHS)),
        install_date_a=epoch_to_datetime(vals.get(PROGRAM_INSTALL_DATE_A)),
        install_date_b=epoch_to_datetime(vals.get(PROGRAM_INSTALL_DATE_B)),
        file_entries=tuple(files),
    )
