"""Command line tool for building, testing and deploying the controller."""

import argparse
import asyncio
import logging
import sys
import traceback

from hnc_pipeline.exceptions import PipelineException

from . import config, list as list_action, run

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for building and deploying HNC.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    run.RunAction.register(subparsers)
    list_action.ListAction.register(subparsers)
    config.ConfigAction.register(subparsers)
    return parser


def main() -> None:
    """Hnc-pipeline command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args()

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except PipelineException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("hnc-pipeline error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
