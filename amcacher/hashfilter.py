"""
SHA1 allow-list / deny-list filtering.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from amcacher.console import log_info, log_warn
from amcacher.errors import FilterListUnavailable
from amcacher.records import FileEntry


class FilterMode(Enum):
    NONE = "none"
    ALLOW = "allow-list"
    DENY = "deny-list"


def load_hash_set(path: Path) -> set[str]:
    """
    Read one hash per line. Blank lines and '#' comments are skipped and
    every hash is lower-cased.
    """
    path = Path(path)
    if not path.is_file():
        raise FilterListUnavailable(path, "file does not exist")

    try:
        txt = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as ex:
        raise FilterListUnavailable(path, str(ex)) from ex

    hashes: set[str] = set()
    for line in txt.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        hashes.add(line.lower())

    return hashes


def should_include(entry: FileEntry, hash_set: set[str], mode: FilterMode) -> bool:
    if mode is FilterMode.DENY:
        return entry.sha1 not in hash_set
    if mode is FilterMode.ALLOW:
        return entry.sha1 in hash_set
    return True


@dataclass(frozen=True)
class HashFilter:
    mode: FilterMode = FilterMode.NONE
    hashes: frozenset[str] = field(default_factory=frozenset)
    source: Path | None = None

    @property
    def active(self) -> bool:
        return self.mode is not FilterMode.NONE

    def includes(self, entry: FileEntry) -> bool:
        return should_include(entry, self.hashes, self.mode)

    def apply(self, entries: Iterable[FileEntry]) -> list[FileEntry]:
        return [e for e in entries if self.includes(e)]


def select_hash_filter(allow_path: Path | None, deny_path: Path | None) -> HashFilter:
    """
    Validate the configured hash lists and load the one that applies.

    The deny-list wins when both are configured; the ignored allow-list is
    reported. A list that cannot be read leaves the run unfiltered.
    """
    if deny_path and allow_path:
        log_warn(f"Both an allow-list ('{allow_path}') and a deny-list ('{deny_path}') were given; "
                 f"using the deny-list and ignoring the allow-list")

    if deny_path:
        mode, path = FilterMode.DENY, Path(deny_path)
    elif allow_path:
        mode, path = FilterMode.ALLOW, Path(allow_path)
    else:
        return HashFilter()

    try:
        hashes = load_hash_set(path)
    except FilterListUnavailable as ex:
        log_warn(f"{ex}. Continuing without {mode.value} filtering")
        return HashFilter()

    log_info(f"Loaded {len(hashes):,} hashes from {mode.value} '{path}'")
    return HashFilter(mode=mode, hashes=frozenset(hashes), source=path)
