from pathlib import Path


class AmcacheError(Exception):
    """Base class for every condition raised by amcacher."""


class MalformedKey(AmcacheError):
    def __init__(self, raw_key: str, reason: str):
        super().__init__(f"Malformed file key {raw_key!r}: {reason}")
        self.raw_key = raw_key


class MalformedRecord(AmcacheError):
    def __init__(self, record_id: str, reason: str):
        super().__init__(f"Malformed record {record_id!r}: {reason}")
        self.record_id = record_id


class EmptySource(AmcacheError):
    """The source held neither program entries nor file entries."""

    def __init__(self, source: Path):
        super().__init__(f"Hive did not contain program entries nor file entries: {source}")
        self.source = source


class FilterListUnavailable(AmcacheError):
    def __init__(self, path: Path, reason: str):
        super().__init__(f"Hash list '{path}' is unavailable: {reason}")
        self.path = path


class ExportWriteFailure(AmcacheError):
    def __init__(self, name: str, path: Path, reason: str):
        super().__init__(f"{name} export to '{path}' failed: {reason}")
        self.name = name
        self.path = path


class SourceUnavailable(AmcacheError):
    def __init__(self, source: Path, reason: str):
        super().__init__(f"Source '{source}' {reason}")
        self.source = source
