"""Command-line entry point: ``mapwatcher PID DELAY``.

This module is the thin I/O wrapper around ``MapWatcher``.  The watcher
returns reports and logs events; the CLI prints them.

    1. Take the initial snapshot and list every mapping.
    2. Every DELAY seconds, print what changed since the last sample.
    3. Stop on Ctrl+C, after ``--count`` samples, or when the process
       can no longer be read.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from mapwatcher import __version__
from mapwatcher.config import DEFAULT_PROC_ROOT, ConfigError, WatchConfig, load_config
from mapwatcher.diff import DEFAULT_ATTRIBUTES
from mapwatcher.logging import Logger, LogLevel
from mapwatcher.render import format_record, format_report
from mapwatcher.smaps.parser import SmapsParseError
from mapwatcher.source import SourceError
from mapwatcher.watcher import MapWatcher

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``mapwatcher`` command."""
    parser = argparse.ArgumentParser(
        prog="mapwatcher",
        description="Watch '/proc/{pid}/smaps' and report mappings that change.",
    )
    parser.add_argument("pid", type=int, help="pid of the target process")
    parser.add_argument("delay", type=float, help="seconds between samples")
    parser.add_argument("--config", type=Path, metavar="FILE", help="JSON config file")
    parser.add_argument(
        "-a",
        "--show-anonymous",
        action="store_true",
        default=None,
        help="also report anonymous mappings that appear or disappear",
    )
    parser.add_argument("-n", "--count", type=int, metavar="N", help="stop after N samples")
    parser.add_argument(
        "--attribute",
        action="append",
        metavar="NAME",
        help="mapping attribute to compare (repeatable, default: end size rss)",
    )
    parser.add_argument("--proc-root", type=Path, metavar="DIR", help="procfs mount point")
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="do not list the initial mappings"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> WatchConfig:
    """Build the watcher config from parsed arguments.

    Raises:
        ConfigError: If the config file or any value is invalid.

    """
    attributes = tuple(args.attribute) if args.attribute else None
    if args.config is not None:
        return load_config(
            args.config,
            pid=args.pid,
            interval=args.delay,
            show_anonymous=args.show_anonymous,
            attributes=attributes,
            proc_root=None if args.proc_root is None else str(args.proc_root),
            max_samples=args.count,
        )
    return WatchConfig(
        pid=args.pid,
        interval=args.delay,
        show_anonymous=bool(args.show_anonymous),
        attributes=attributes or DEFAULT_ATTRIBUTES,
        proc_root=args.proc_root or DEFAULT_PROC_ROOT,
        max_samples=args.count,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run the watcher from the command line.

    Returns:
        The process exit status.

    """
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"mapwatcher: {e}", file=sys.stderr)
        return EXIT_FAILURE

    logger = Logger()
    watcher = MapWatcher(config, logger=logger)
    try:
        initial = watcher.start()
    except (SourceError, SmapsParseError) as e:
        print(f"Could not read initial maps: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if not args.quiet:
        print("Got initial maps of process:")
        for record in initial:
            print(format_record(record))
            print()
    print("Starting to observe...")

    try:
        watcher.run(lambda report: print("\n" + format_report(report)))
    except KeyboardInterrupt:
        print()

    for entry in logger.at_least(LogLevel.ERROR):
        print(entry, file=sys.stderr)
    print("Goodbye!")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
