import argparse
from pathlib import Path

import pytest

from amcacher.config import DEFAULTS, build_settings, load_config, load_yaml_config
from amcacher.export import DEFAULT_DATETIME_FORMAT, PRECISE_DATETIME_FORMAT


def _args(**kw) -> argparse.Namespace:
    base = dict(file="Amcache.hve", csv="out", include_linked=None, allow=None, deny=None,
                dt=None, precise=False, recover=None, config=None)
    base.update(kw)
    return argparse.Namespace(**base)


class TestLoadConfig:
    def test_yaml_values_override_defaults(self, tmp_path):
        p = tmp_path / "config.yml"
        p.write_text('DateTimeFormat: "%d.%m.%Y"\nIncludeLinked: true\n', encoding="utf-8")

        cfg = load_config(p)

        assert cfg["DateTimeFormat"] == "%d.%m.%Y"
        assert cfg["IncludeLinked"] is True
        assert cfg["PreciseDateTimeFormat"] == DEFAULTS["PreciseDateTimeFormat"]

    def test_non_mapping_rejected(self, tmp_path):
        p = tmp_path / "config.yml"
        p.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_yaml_config(p)

    @pytest.mark.parametrize("text", ['IncludeLinked: "false"\n', "RecoverDeleted: 1\n", "IncludeLinked:\n"])
    def test_non_boolean_switch_rejected(self, tmp_path, text):
        p = tmp_path / "config.yml"
        p.write_text(text, encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(p)

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yml")

    def test_bundled_default_config_matches_defaults(self):
        bundled = Path(__file__).resolve().parents[1] / "amcacher" / "config.yml"
        assert load_yaml_config(bundled) == DEFAULTS


class TestBuildSettings:
    def test_defaults(self):
        s = build_settings(dict(DEFAULTS), _args())
        assert s.source == Path("Amcache.hve")
        assert s.output_dir == Path("out")
        assert s.datetime_format == DEFAULT_DATETIME_FORMAT
        assert s.allow_list is None
        assert s.deny_list is None
        assert not s.include_linked

    def test_command_line_wins(self):
        cfg = dict(DEFAULTS, DateTimeFormat="%Y", AllowList="cfg_allow.txt")
        s = build_settings(cfg, _args(dt="%H:%M", allow="cli_allow.txt", include_linked=True))
        assert s.datetime_format == "%H:%M"
        assert s.allow_list == Path("cli_allow.txt")
        assert s.include_linked

    def test_config_fills_gaps(self):
        cfg = dict(DEFAULTS, DenyList="known_good.txt", RecoverDeleted=True)
        s = build_settings(cfg, _args())
        assert s.deny_list == Path("known_good.txt")
        assert s.recover_deleted

    def test_precise_replaces_format(self):
        s = build_settings(dict(DEFAULTS), _args(dt="%Y", precise=True))
        assert s.datetime_format == PRECISE_DATETIME_FORMAT

    def test_command_line_can_turn_off_config_switch(self):
        cfg = dict(DEFAULTS, IncludeLinked=True, RecoverDeleted=True)
        s = build_settings(cfg, _args(include_linked=False, recover=False))
        assert not s.include_linked
        assert not s.recover_deleted
