"""Command-line interface for dimmdb."""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from dimmdb import __version__
from dimmdb.core import (
    ConfigError,
    DiagnosticLogger,
    DimmConfig,
    DimmRecord,
    DumpFlags,
    MemoryErrorDB,
    format_location,
    load_layered_config,
    resolve_dimm_config,
)
from dimmdb.core.config import load_config_file
from dimmdb.core.context import Context
from dimmdb.core.logging import get_log_path
from dimmdb.core.report import sort_records


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dimmdb",
        description="Track DIMM memory errors and run threshold triggers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"dimmdb {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file (default: .dimmdb.yaml, ~/.config/dimmdb/config.yaml, /etc/dimmdb/config.yaml)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Diagnostic log directory (default: ~/var/log/dimmdb)",
    )
    parser.add_argument(
        "--format",
        choices=["plain", "json"],
        default="plain",
        help="Output format (default: plain)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Echo diagnostics to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    dump_parser = subparsers.add_parser("dump", help="Show the DIMM error database")
    add_dump_options(dump_parser)

    replay_parser = subparsers.add_parser(
        "replay", help="Record errors from a JSONL event file, then dump"
    )
    replay_parser.add_argument("events", help="Event file, one JSON object per line")
    add_dump_options(replay_parser)

    subparsers.add_parser("config", help="Show the resolved configuration")

    return parser


def add_dump_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--all",
        action="store_true",
        help="Include DIMMs and counters without errors",
    )
    parser.add_argument(
        "--bios",
        action="store_true",
        help="Include firmware DMI name and location",
    )


def load_config(args: argparse.Namespace) -> DimmConfig:
    """Resolve config from --config or the layered config files."""
    if args.config is not None:
        section = load_config_file(args.config).get("dimm")
        return resolve_dimm_config(section if isinstance(section, dict) else {})
    return resolve_dimm_config(load_layered_config())


def open_logger(args: argparse.Namespace) -> DiagnosticLogger:
    log_path = get_log_path("memdb", base_path=args.log_dir) if args.log_dir else None
    return DiagnosticLogger(
        "memdb",
        log_path=log_path,
        stream=sys.stderr if args.verbose else None,
    )


def dump_flags(args: argparse.Namespace) -> DumpFlags:
    flags = DumpFlags.NONE
    if args.all:
        flags |= DumpFlags.ALL
    if args.bios:
        flags |= DumpFlags.BIOS
    return flags


# Optional integer event fields and their defaults
EVENT_DEFAULTS = {"channel": -1, "dimm": -1, "lost": 0, "time": 0}


def _event_int(event: dict[str, Any], key: str, lineno: int) -> int:
    value = event[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"line {lineno}: {key} must be an integer, got {value!r}")
    return value


def parse_events(content: str) -> list[dict[str, Any]]:
    """
    Parse a JSONL event file.

    Each line holds socket and optionally channel, dimm, uc, lost and time.
    Missing optional fields get their defaults, so every returned event has
    all six keys.

    Raises:
        ValueError: If a line is not a JSON object with a socket, or a field
            has the wrong type
    """
    events = []
    for lineno, line in enumerate(content.split("\n"), 1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"line {lineno}: {e}") from e
        if not isinstance(raw, dict) or "socket" not in raw:
            raise ValueError(f"line {lineno}: expected an object with a socket")

        event = {"socket": _event_int(raw, "socket", lineno)}
        for key, default in EVENT_DEFAULTS.items():
            event[key] = _event_int(raw, key, lineno) if key in raw else default
        uc = raw.get("uc", False)
        if not isinstance(uc, bool):
            raise ValueError(f"line {lineno}: uc must be true or false, got {uc!r}")
        event["uc"] = uc
        events.append(event)
    return events


def record_to_dict(db: MemoryErrorDB, record: DimmRecord) -> dict[str, Any]:
    return {
        "socket": record.socket_id,
        "channel": record.channel,
        "dimm": record.slot,
        "location": format_location(record),
        "dmi_name": record.name,
        "dmi_location": record.location,
        "ce_count": record.ce.total_count,
        "uc_count": record.uc.total_count,
        "ce_threshold": db.accountant.summarize(db.config.ce, record.ce.state),
        "uc_threshold": db.accountant.summarize(db.config.uc, record.uc.state),
    }


def print_dump(db: MemoryErrorDB, args: argparse.Namespace) -> None:
    flags = dump_flags(args)
    if args.format == "json":
        db.prefill()
        records = [
            record_to_dict(db, record)
            for record in sort_records(db.registry)
            if args.all or record.ce.total_count + record.uc.total_count > 0
        ]
        print(json.dumps({"dimms": records}, indent=2))
    else:
        db.dump(sys.stdout, flags)


def cmd_dump(args: argparse.Namespace) -> int:
    """Show the DIMM error database."""
    config = load_config(args)
    with open_logger(args) as logger:
        db = MemoryErrorDB(config=config, logger=logger)
        print_dump(db, args)
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    """Record errors from an event file and show the result."""
    context = Context()
    try:
        events = parse_events(context.read_file(args.events))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        print(f"Cannot read events: {e}", file=sys.stderr)
        return 2

    config = load_config(args)
    with open_logger(args) as logger:
        db = MemoryErrorDB(config=config, context=context, logger=logger)
        for event in events:
            db.record_error(
                event["socket"],
                event["channel"],
                event["dimm"],
                event["uc"],
                lost_count=event["lost"],
                event_time=event["time"],
            )
        print_dump(db, args)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the resolved configuration."""
    config = load_config(args)

    if args.format == "json":
        print(json.dumps(asdict(config), indent=2))
    else:
        tracking = "auto" if config.tracking_enabled is None else config.tracking_enabled
        print(f"dimm-tracking-enabled: {tracking}")
        print(f"dmi-prepopulate:       {config.prepopulate}")
        for name, bucket in (("ce-error", config.ce), ("uc-error", config.uc)):
            print(f"{name}-threshold:   {bucket.capacity} / {bucket.agetime}s")
            print(f"{name}-trigger:     {bucket.trigger or '(none)'}")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "dump": cmd_dump,
        "replay": cmd_replay,
        "config": cmd_config,
    }

    try:
        return commands[args.command](args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
