import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from amcacher.export import DEFAULT_DATETIME_FORMAT, PRECISE_DATETIME_FORMAT

JSONDict = dict[str, Any]

DEFAULT_CONFIG_NAME = "config.yml"

DEFAULTS: JSONDict = {
    "DateTimeFormat": DEFAULT_DATETIME_FORMAT,
    "PreciseDateTimeFormat": PRECISE_DATETIME_FORMAT,
    "IncludeLinked": False,
    "RecoverDeleted": False,
    "AllowList": "",
    "DenyList": "",
}

# Keys that must hold a YAML true/false, not a string such as "false"
BOOL_KEYS = ("IncludeLinked", "RecoverDeleted")


@dataclass(frozen=True)
class Settings:
    source: Path
    output_dir: Path
    datetime_format: str = DEFAULT_DATETIME_FORMAT
    include_linked: bool = False
    recover_deleted: bool = False
    allow_list: Path | None = None
    deny_list: Path | None = None


def resolve_default_config_path(default_name: str = DEFAULT_CONFIG_NAME) -> Path | None:
    """
    Look for the default config in the current working directory first,
    then next to this module.
    """
    for p in (Path.cwd() / default_name, Path(__file__).resolve().parent / default_name):
        if p.exists():
            return p.resolve()
    return None


def load_yaml_config(path: Path) -> JSONDict:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must be a mapping (dict).")
    return data


def load_config(path: Path | None = None) -> JSONDict:
    """Defaults merged with the YAML file, if one is found."""
    cfg = dict(DEFAULTS)
    if path is None:
        path = resolve_default_config_path()
        if path is None:
            return cfg
    cfg.update(load_yaml_config(path))

    for key in BOOL_KEYS:
        if not isinstance(cfg.get(key), bool):
            raise ValueError(f"{path.name}: {key} must be true or false, got {cfg.get(key)!r}")
    return cfg


def _opt_path(value: Any) -> Path | None:
    if value is None or not str(value).strip():
        return None
    return Path(str(value)).expanduser()


def _switch(cli_value: bool | None, cfg_value: Any) -> bool:
    if cli_value is not None:
        return cli_value
    return cfg_value is True


def build_settings(cfg: JSONDict, args: argparse.Namespace) -> Settings:
    """
    Command line values win over the config file. Precise timestamps
    replace any other date/time format. A switch left unset on the command
    line (None) falls back to the config, so --no-include-linked can turn
    off an IncludeLinked: true.
    """
    if getattr(args, "precise", False):
        fmt = str(cfg.get("PreciseDateTimeFormat") or PRECISE_DATETIME_FORMAT)
    elif getattr(args, "dt", None):
        fmt = str(args.dt)
    else:
        fmt = str(cfg.get("DateTimeFormat") or DEFAULT_DATETIME_FORMAT)

    return Settings(
        source=Path(args.file).expanduser(),
        output_dir=Path(args.csv).expanduser(),
        datetime_format=fmt,
        include_linked=_switch(getattr(args, "include_linked", None), cfg.get("IncludeLinked")),
        recover_deleted=_switch(getattr(args, "recover", None), cfg.get("RecoverDeleted")),
        allow_list=_opt_path(getattr(args, "allow", None) or cfg.get("AllowList")),
        deny_list=_opt_path(getattr(args, "deny", None) or cfg.get("DenyList")),
    )
