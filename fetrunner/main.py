"""Command line entry point: run FET repeatedly with varying sets of constraints."""

from __future__ import annotations

import argparse
import os
import shutil
import sys
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from typing import Optional

from fetrunner import log
from fetrunner.fet_read import FetDoc, read_fet
from fetrunner.log import logger
from fetrunner.run_fet import FetBackend
from fetrunner.steer import GenerationError, start_generation
from fetrunner.structures import RunContext, Settings

DEFAULT_TIMEOUT = 300


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fetrunner",
        description=(
            "Run multiple instances of FET with various sets of constraints "
            "enabled, seeking a timetable with as many constraints as possible."
        ),
    )
    parser.add_argument(
        "-c", dest="console", action="store_true", help="enable progress output"
    )
    parser.add_argument(
        "-T", dest="testing", action="store_true", help="run in testing mode"
    )
    parser.add_argument(
        "-t", dest="timeout", type=int, default=DEFAULT_TIMEOUT, help="set timeout"
    )
    parser.add_argument(
        "-p", dest="processes", type=int, default=0, help="max. parallel processes"
    )
    parser.add_argument("-d", dest="debug", action="store_true", help="debug")
    parser.add_argument("input_files", nargs="*", metavar="FETFILE")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse the command line; exactly one input file is required."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.input_files:
        parser.error("No input file")
    if len(args.input_files) > 1:
        parser.error(f"Too many command-line arguments: {args.input_files}")
    args.input_file = args.input_files[0]
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the generation for the given FET file; return the exit status."""
    args = parse_args(argv)

    log.set_console(args.console)
    settings = Settings(testing=args.testing, debug=args.debug)
    if args.processes > 0:
        settings.max_processes = args.processes

    abspath = os.path.abspath(args.input_file)
    stempath = os.path.splitext(abspath)[0]

    working_dir = stempath + "_fet"
    shutil.rmtree(working_dir, ignore_errors=True)
    os.makedirs(working_dir, exist_ok=True)

    log.open_log(os.path.join(working_dir, "run.log"))

    try:
        cdata = read_fet(abspath)
    except (OSError, ET.ParseError, ValueError) as e:
        logger.error("Couldn't read %s: %s", abspath, e)
        print(f"*ERROR* Couldn't read {abspath}: {e}", file=sys.stderr)
        return 1

    fetdoc = cdata.input_data
    if isinstance(fetdoc, FetDoc):
        fetdoc.write(stempath + "_mod.fet")

    context = RunContext(
        constraint_data=cdata,
        backend=FetBackend(cdata, working_dir),
        working_dir=working_dir,
        settings=settings,
    )
    try:
        result = start_generation(context, args.timeout)
    except GenerationError as e:
        print(f"*ERROR* {e}", file=sys.stderr)
        return 1
    return 0 if result is not None else 1


if __name__ == "__main__":
    sys.exit(main())