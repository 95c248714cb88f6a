"""
stab.__main__ -- CLI entry point.

Usage:
    stab init [--data-dir DIR]
    stab check --resources FILE [--data-dir DIR] [--config PATH]
    stab watch --resources FILE [--interval MINUTES]
    stab infer --resources FILE [--api-key KEY]
    stab log [--data-dir DIR] [--clear]
    stab history [--data-dir DIR] [--limit N] [--clear]
    stab settings [KEY=VALUE ...]

``--resources`` points at a JSON snapshot read and written by
``stab.host.SnapshotHost``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any, Dict, List


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="stab",
        description="stab -- close idle, duplicate and heavy tabs; group the rest into workspaces",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--data-dir", default=None, help="Data directory (default: ./stab_data)")
    common.add_argument("--config", default=None, help="Path to stab.yaml config")

    with_host = argparse.ArgumentParser(add_help=False, parents=[common])
    with_host.add_argument(
        "--resources", required=True, help="JSON snapshot of the open resources"
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init", parents=[common], help="Create a data directory with default settings")
    sub.add_parser("check", parents=[with_host], help="Run one eviction cycle")

    watch_p = sub.add_parser("watch", parents=[with_host], help="Run eviction cycles periodically")
    watch_p.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Minutes between cycles (default: check_interval_minutes from config)",
    )
    watch_p.add_argument(
        "--cycles", type=int, default=0, help="Stop after N cycles (default: run forever)"
    )

    infer_p = sub.add_parser("infer", parents=[with_host], help="Infer and apply workspaces")
    infer_p.add_argument("--api-key", default=None, help="Categorization service credential")

    log_p = sub.add_parser("log", parents=[common], help="Show recent activity")
    log_p.add_argument("--clear", action="store_true", help="Empty the activity log")

    history_p = sub.add_parser("history", parents=[common], help="Show closed tabs")
    history_p.add_argument("--limit", type=int, default=20, help="Max entries")
    history_p.add_argument("--clear", action="store_true", help="Empty the closed history")

    settings_p = sub.add_parser("settings", parents=[common], help="Show or change settings")
    settings_p.add_argument("assignments", nargs="*", metavar="KEY=VALUE")

    args = parser.parse_args(argv)

    # -- Logging -----------------------------------------------------------
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 1

    # -- Dispatch ----------------------------------------------------------
    commands = {
        "init": _cmd_init,
        "check": _cmd_check,
        "watch": _cmd_watch,
        "infer": _cmd_infer,
        "log": _cmd_log,
        "history": _cmd_history,
        "settings": _cmd_settings,
    }
    return commands[args.command](args)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_config(args: argparse.Namespace):
    from stab.core.config import Config

    if args.config:
        config = Config.from_yaml(args.config)
        if args.data_dir:
            config = config.with_overrides(data_dir=args.data_dir)
        return config
    return Config.from_data_dir(args.data_dir or "./stab_data")


def _steward(args: argparse.Namespace, with_host: bool = True):
    from stab.host import NullHost, ResourceHost, SnapshotHost
    from stab.system import TabSteward

    config = _load_config(args)
    host: ResourceHost = SnapshotHost(args.resources) if with_host else NullHost()
    return TabSteward(host=host, config=config)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _parse_assignments(assignments: List[str]) -> Dict[str, Any]:
    import yaml

    changes: Dict[str, Any] = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise SystemExit(f"Expected KEY=VALUE, got {item!r}")
        # YAML scalars: true/false, numbers, bare strings
        changes[key.strip()] = yaml.safe_load(raw) if raw else ""
    return changes


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    steward = _steward(args, with_host=False)
    steward.update_settings({})
    steward.activity.append("Extension installed")
    print(f"Initialized stab data directory at {steward.config.data_dir}")
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    steward = _steward(args)
    steward.on_startup()
    _print_json(steward.run_checks().to_dict())
    return 0


def _cmd_watch(args: argparse.Namespace) -> int:
    steward = _steward(args)
    steward.on_startup()
    interval = args.interval if args.interval is not None else steward.config.check_interval_minutes
    done = 0
    try:
        while True:
            result = steward.run_checks()
            logging.getLogger("stab.watch").info("Cycle closed %d tab(s)", result.closed_count)
            done += 1
            if args.cycles and done >= args.cycles:
                break
            time.sleep(interval * 60)
    except KeyboardInterrupt:
        pass
    return 0


def _cmd_infer(args: argparse.Namespace) -> int:
    steward = _steward(args)
    result = steward.infer_workspaces(credential=args.api_key)
    _print_json(result.to_dict())
    return 0 if result.ok else 2


def _cmd_log(args: argparse.Namespace) -> int:
    steward = _steward(args, with_host=False)
    if args.clear:
        steward.activity.clear()
    _print_json([e.to_dict() for e in steward.logs()])
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    steward = _steward(args, with_host=False)
    if args.clear:
        steward.history.clear()
    _print_json([e.to_dict() for e in steward.history_entries()[: args.limit]])
    return 0


def _cmd_settings(args: argparse.Namespace) -> int:
    steward = _steward(args, with_host=False)
    if args.assignments:
        steward.update_settings(_parse_assignments(args.assignments))
    _print_json(steward.settings.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
