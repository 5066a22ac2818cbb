"""
Command line entry point.

  python -m narrative_radar collect --input observations.jsonl
  python -m narrative_radar analyze

Both print the job report as JSON. analyze exits with status 2 when there
are not enough signals yet.
"""

import argparse
import asyncio
import logging
import sys

from .database import get_database
from .pipeline import InsufficientSignalsError, run_analysis, run_collection
from .signals.collectors import collectors_for_file

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="narrative_radar", description=__doc__.splitlines()[1])
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    collect = sub.add_parser("collect", help="Score and store observations from a JSONL file")
    collect.add_argument("--input", required=True, help="JSONL file, one RawObservation per line")

    sub.add_parser("analyze", help="Detect narratives and ideas from stored signals")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = get_database()
    if args.command == "collect":
        report = asyncio.run(run_collection(collectors_for_file(args.input), database=db))
    else:
        try:
            report = asyncio.run(run_analysis(database=db))
        except InsufficientSignalsError as e:
            print(str(e), file=sys.stderr)
            return 2

    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
