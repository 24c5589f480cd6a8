"""Command line tool for inspecting and editing objects on a cluster."""

import argparse
import asyncio
import logging
import sys
from typing import Any

import yaml

from cluster_mirror.exceptions import MirrorException
from . import apply, common, diff, get

_LOGGER = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

ACTIONS = [get.GetAction, diff.DiffAction, apply.ApplyAction]


def _block_str_presenter(dumper: yaml.Dumper, data: str) -> Any:
    """Dump multi-line strings such as diffs as literal block scalars."""
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cluster-mirror",
        description="Inspect, diff and apply objects on a Kubernetes cluster.",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS)
    common.add_cluster_flags(parser)
    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)
    for action in ACTIONS:
        action.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse the arguments and run the selected action to completion."""
    yaml.add_representer(str, _block_str_presenter)
    args = _make_parser().parse_args(argv)
    if args.log_level:
        logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        asyncio.run(args.cls().run(**vars(args)))
    except MirrorException as err:
        _LOGGER.debug("Action %s failed", args.command, exc_info=True)
        print(f"cluster-mirror error: {err}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
