"""
File key decoding.

Legacy Amcache file keys are named after the NTFS file reference of the file:
a 16-bit sequence number ahead of a 48-bit MFT entry number, written as hex
with leading zero nibbles dropped.
"""

import re
from typing import NamedTuple

from amcacher.errors import MalformedKey

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")


class FileReference(NamedTuple):
    entry: int
    sequence: int


def decode_file_reference(raw_key: str) -> FileReference:
    if not raw_key:
        raise MalformedKey(raw_key, "empty key")

    padded = raw_key.rjust(8, "0")
    if not _HEX_RE.fullmatch(padded):
        raise MalformedKey(raw_key, "not a hexadecimal string")

    seq = padded[:4].rstrip("0") or "0"

    try:
        sequence = int(seq, 16)
        entry = int(padded[4:], 16)
    except ValueError as ex:
        raise MalformedKey(raw_key, str(ex)) from ex

    return FileReference(entry=entry, sequence=sequence)
