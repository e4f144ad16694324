"""Command line entry point: ingest, reindex and serve."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from slacksite import db, search
from slacksite.ingest import run_ingest
from slacksite.reindex import run_reindex
from slacksite.serve import DEFAULT_ADDR, run_serve

PROG = "slack-site"


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser with its sub-commands."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="CLI for ingesting Slack workspace exports into SQLite and a search index.",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    ingest = commands.add_parser(
        "ingest",
        help="Ingest a Slack export into SQLite and the search index",
        description=(
            f"Reads a Slack export from --input, creates {db.DB_FILE_NAME} "
            f"and {search.INDEX_DIR} in --data."
        ),
    )
    ingest.add_argument("--input", required=True, help="Path to Slack export directory")
    ingest.add_argument(
        "--data",
        required=True,
        help=f"Path to data directory ({db.DB_FILE_NAME} and {search.INDEX_DIR} will be created here)",
    )
    ingest.set_defaults(handler=lambda args: run_ingest(args.input, args.data))

    reindex = commands.add_parser(
        "reindex",
        help="Rebuild the search index from an existing database",
        description=(
            f"Reads messages from {db.DB_FILE_NAME} in --data and builds a new "
            f"{search.INDEX_DIR} index (overwrites existing index)."
        ),
    )
    reindex.add_argument("--data", required=True, help=f"Path to directory containing {db.DB_FILE_NAME}")
    reindex.set_defaults(handler=lambda args: run_reindex(args.data))

    serve = commands.add_parser(
        "serve",
        help="Serve the ingested Slack export in a browser",
        description=(
            "Starts an HTTP server and opens the browser. Requires --data pointing to a "
            f"directory containing {db.DB_FILE_NAME} and {search.INDEX_DIR} (same as ingest --data)."
        ),
    )
    serve.add_argument(
        "--data",
        required=True,
        help=f"Path to directory containing {db.DB_FILE_NAME} and {search.INDEX_DIR}",
    )
    serve.add_argument("--addr", default=DEFAULT_ADDR, help="Listen address (e.g. :8080 or localhost:8080)")
    serve.add_argument(
        "--mirror",
        default="",
        help="Base URL for message file links; file URLs become base + path from url_private",
    )
    serve.set_defaults(handler=lambda args: run_serve(args.data, args.addr, args.mirror, ""))
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return its exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    try:
        args.handler(args)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())