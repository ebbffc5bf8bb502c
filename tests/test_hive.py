from datetime import datetime
from unittest.mock import patch

from Registry import Registry

from amcacher.hive import FILE_ROOT, INVENTORY_ROOT, PROGRAMS_ROOT, group_records, read_amcache_hive
from conftest import SHA1_A, make_raw_file

TS = datetime(2023, 4, 25, 9, 30, 15)


class FakeValue:
    def __init__(self, name, value):
        self._name = name
        self._value = value

    def name(self):
        return self._name

    def value(self):
        return self._value


class UnreadableValue(FakeValue):
    def value(self):
        raise UnicodeDecodeError("utf-16le", b"\x00\xd8", 0, 2, "illegal UTF-16 surrogate")


class FakeKey:
    def __init__(self, name, values=None, subkeys=(), ts=TS):
        self._name = name
        self._values = [FakeValue(k, v) for k, v in (values or {}).items()]
        self._subkeys = list(subkeys)
        self._ts = ts

    def name(self):
        return self._name

    def values(self):
        return self._values

    def subkeys(self):
        return self._subkeys

    def timestamp(self):
        return self._ts


class FakeHive:
    def __init__(self, keys):
        self._keys = keys

    def open(self, path):
        if path not in self._keys:
            raise Registry.RegistryKeyNotFoundException(path)
        return self._keys[path]


def _legacy_hive():
    pid = "0000f1c2c3d4e5f6"
    volume = FakeKey(
        "{8f0c3a4d-1b2e-11e5-80c4-806e6f6e6963}",
        subkeys=[
            FakeKey("10000001", {"15": r"C:\a.exe", "100": pid, "101": "0000" + SHA1_A}),
            FakeKey("10000002", {"15": r"C:\b.exe", "100": "", "101": "0000" + SHA1_A}),
            FakeKey("10000003", {"15": r"C:\c.exe", "101": "0000" + SHA1_A}),
        ],
        ts=datetime(2023, 4, 24),
    )
    programs = FakeKey("Programs", subkeys=[FakeKey(pid, {"0": "Tool", "d": [r"C:\Tool"]})])
    return FakeHive({FILE_ROOT: FakeKey("File", subkeys=[volume]), PROGRAMS_ROOT: programs})


class TestGroupRecords:
    def test_files_attach_to_known_programs(self):
        files = [
            make_raw_file("1", program_id="p1"),
            make_raw_file("2", program_id="unknown"),
            make_raw_file("3", program_id=""),
        ]
        contents = group_records([("p1", TS, {"0": "Tool"})], files)

        assert contents.total_file_entries == 3
        assert [f.file_id for f in contents.programs[0].files] == ["1"]
        assert [f.file_id for f in contents.unassociated] == ["2", "3"]


class TestReadAmcacheHive:
    def test_reads_legacy_layout(self, tmp_path):
        with patch("amcacher.hive.Registry.Registry", return_value=_legacy_hive()):
            contents = read_amcache_hive(tmp_path / "Amcache.hve")

        assert contents.total_file_entries == 3
        assert len(contents.programs) == 1

        program = contents.programs[0]
        assert program.values["0"] == "Tool"
        assert [f.file_id for f in program.files] == ["10000001"]
        assert program.files[0].volume_last_write == datetime(2023, 4, 24)
        assert [f.file_id for f in contents.unassociated] == ["10000002", "10000003"]

    def test_missing_roots_yield_empty_contents(self, tmp_path, capsys):
        hive = FakeHive({INVENTORY_ROOT: FakeKey("InventoryApplicationFile")})
        with patch("amcacher.hive.Registry.Registry", return_value=hive):
            contents = read_amcache_hive(tmp_path / "Amcache.hve")

        assert contents.total_file_entries == 0
        assert contents.programs == ()
        assert contents.unassociated == ()
        assert INVENTORY_ROOT in capsys.readouterr().err

    def test_recover_flag_is_reported(self, tmp_path, capsys):
        with patch("amcacher.hive.Registry.Registry", return_value=_legacy_hive()):
            read_amcache_hive(tmp_path / "Amcache.hve", recover_deleted=True)
        assert "deleted" in capsys.readouterr().err

    def test_unreadable_file_key_is_skipped(self, tmp_path, capsys):
        corrupt = FakeKey("10000002", {"15": r"C:\b.exe"})
        corrupt._values.append(UnreadableValue("101", None))
        volume = FakeKey(
            "{8f0c3a4d-1b2e-11e5-80c4-806e6f6e6963}",
            subkeys=[
                FakeKey("10000001", {"15": r"C:\a.exe", "101": "0000" + SHA1_A}),
                corrupt,
                FakeKey("10000003", {"15": r"C:\c.exe", "101": "0000" + SHA1_A}),
            ],
        )
        hive = FakeHive({FILE_ROOT: FakeKey("File", subkeys=[volume])})

        with patch("amcacher.hive.Registry.Registry", return_value=hive):
            contents = read_amcache_hive(tmp_path / "Amcache.hve")

        assert [f.file_id for f in contents.unassociated] == ["10000001", "10000003"]
        assert contents.total_file_entries == 3
        assert r"Root\File\{8f0c3a4d-1b2e-11e5-80c4-806e6f6e6963}\10000002" in capsys.readouterr().err

    def test_unreadable_program_key_is_skipped(self, tmp_path, capsys):
        pid = "0000f1c2c3d4e5f6"
        corrupt = FakeKey(pid, {"0": "Tool"})
        corrupt._values.append(UnreadableValue("1", None))
        volume = FakeKey("vol", subkeys=[FakeKey("10000001", {"100": pid, "101": "0000" + SHA1_A})])
        hive = FakeHive({
            FILE_ROOT: FakeKey("File", subkeys=[volume]),
            PROGRAMS_ROOT: FakeKey("Programs", subkeys=[corrupt]),
        })

        with patch("amcacher.hive.Registry.Registry", return_value=hive):
            contents = read_amcache_hive(tmp_path / "Amcache.hve")

        assert contents.programs == ()
        assert [f.file_id for f in contents.unassociated] == ["10000001"]
        assert "Skipping unreadable key" in capsys.readouterr().err
