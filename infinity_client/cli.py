"""CLI entry point for infinity-client.

Handles argument parsing and dispatches to inspect or run mode.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import structlog


@dataclass
class InspectArgs:
    """Parsed arguments for inspect mode."""

    settings: Path
    query: Path
    verbose: bool


@dataclass
class RunArgs:
    """Parsed arguments for run mode."""

    settings: Path
    query: Path
    verbose: bool
    mercury_executable: str | None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with inspect and run subcommands."""
    parser = argparse.ArgumentParser(
        prog="infinity-client",
        description="Build and execute authenticated data source queries",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--settings",
        type=Path,
        required=True,
        help="Path to data source settings (YAML or JSON)",
    )
    common.add_argument(
        "--query",
        type=Path,
        required=True,
        help="Path to the query (YAML or JSON)",
    )
    common.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )

    subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Print the redacted URL and curl command of a query",
    )

    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Execute a query and print the result as JSON",
    )
    run_parser.add_argument(
        "--mercury-executable",
        default=None,
        help="Mercury client adapter to use for zCap queries (default: mercury-client)",
    )

    return parser


def parse_args(args: list[str] | None = None) -> InspectArgs | RunArgs:
    """Parse command line arguments."""
    namespace = build_parser().parse_args(args)
    if namespace.command == "inspect":
        return InspectArgs(settings=namespace.settings, query=namespace.query, verbose=namespace.verbose)
    return RunArgs(
        settings=namespace.settings,
        query=namespace.query,
        verbose=namespace.verbose,
        mercury_executable=namespace.mercury_executable,
    )


def configure_logging(verbose: bool) -> None:
    """Route structlog through stdlib logging as JSON lines on stderr."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.INFO,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    try:
        if isinstance(args, InspectArgs):
            return run_inspect(args)
        return run_query(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


def run_inspect(args: InspectArgs) -> int:
    """Print the Command Introspection View of a query."""
    from infinity_client.config_loader import ConfigError, load_query, load_settings
    from infinity_client.introspection import render_executed_url

    try:
        settings = load_settings(args.settings)
        query = load_query(args.query)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    print(render_executed_url(settings, query))
    return 0


def run_query(args: RunArgs) -> int:
    """Execute a query and print its result."""
    from infinity_client.client import InfinityClient
    from infinity_client.config_loader import ConfigError, load_query, load_settings
    from infinity_client.errors import InfinityError
    from infinity_client.mercury import MercuryError

    try:
        settings = load_settings(args.settings)
        query = load_query(args.query)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        with InfinityClient.from_settings(settings, mercury_executable=args.mercury_executable) as client:
            result = client.get_results(query)
    except InfinityError as e:
        print(f"Error ({e.status_code}): {e}", file=sys.stderr)
        return 1
    except MercuryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.model_dump(), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
