#!/usr/bin/env python3

"""
amcacher: export file and program entries from a legacy Amcache.hve.
"""

import argparse
import sys
import traceback
from pathlib import Path

import yaml

from amcacher import __version__
from amcacher.config import DEFAULT_CONFIG_NAME, build_settings, load_config
from amcacher.console import log_dim, log_error, log_info, log_warn
from amcacher.errors import EmptySource, SourceUnavailable
from amcacher.hive import HiveReader, read_amcache_hive
from amcacher.pipeline import report_summary, run_pipeline

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_EMPTY = 2

EPILOG = (
    "Examples:\n"
    "  amcacher -f C:\\Temp\\amcache\\Amcache.hve --csv C:\\Temp\\out\n"
    "  amcacher -f Amcache.hve -i --csv out\n"
    "  amcacher -f Amcache.hve -b known_good.txt --csv out\n"
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="amcacher",
        description="Export file and program entries from an Amcache.hve",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )

    ap.add_argument("-V", "--version", action="version", version=f"amcacher {__version__}")
    ap.add_argument("-f", "--file", required=True, help="Amcache.hve file to parse")
    ap.add_argument("--csv", required=True, help="Directory where results will be saved (created if missing)")
    ap.add_argument(
        "-i",
        "--include-linked",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also export program entries and the file entries associated with them (default: IncludeLinked from config)",
    )
    ap.add_argument("-w", "--allow", help="File of SHA1 hashes to include (one per line)")
    ap.add_argument("-b", "--deny", help="File of SHA1 hashes to exclude (one per line). Overrides --allow")
    ap.add_argument("--dt", help="strftime format used for every timestamp column")
    ap.add_argument(
        "--mp",
        dest="precise",
        action="store_true",
        help="Display timestamps with microsecond precision",
    )
    ap.add_argument(
        "--recover",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Ask the hive reader for deleted records too (default: RecoverDeleted from config)",
    )
    ap.add_argument("-c", "--config", help=f"Path to a YAML config (default: {DEFAULT_CONFIG_NAME} if found)")

    return ap.parse_args(argv)


def main(argv: list[str] | None = None, reader: HiveReader = read_amcache_hive) -> int:
    args = parse_args(argv)

    try:
        cfg = load_config(Path(args.config).expanduser() if args.config else None)
    except (OSError, ValueError, yaml.YAMLError) as ex:
        log_error(f"Could not load config: {ex}")
        return EXIT_FAILURE

    settings = build_settings(cfg, args)
    log_info(f"amcacher {__version__}")
    log_dim(f"Command line: {' '.join(sys.argv[1:] if argv is None else argv)}")

    try:
        summary = run_pipeline(settings, reader=reader)
    except SourceUnavailable as ex:
        log_error(f"{ex}. Exiting")
        return EXIT_FAILURE
    except EmptySource as ex:
        log_warn(f"{ex}. Exiting")
        return EXIT_EMPTY
    except Exception as ex:
        log_error(f"There was an error processing '{settings.source}': {ex}")
        log_dim(traceback.format_exc())
        return EXIT_FAILURE

    report_summary(summary, include_linked=settings.include_linked)
    return EXIT_OK if summary.ok else EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
