#!/usr/bin/env python3
"""Gleaner: fetch a list of web pages and consolidate them into one document.

This CLI tool reads a list of URLs, fetches their content in parallel with
one retry pass, and merges the text into a single clean Markdown document
using a Map/Reduce summarization protocol over Gemini (PydanticAI).

Commands:
    run         Execute the pipeline
    sources     Parse the source list and print it (no fetching)
    config      Show the effective configuration (secrets masked)

Examples:
    python main.py run -f urls.txt                       # Write to output/output_reduce_final.md
    python main.py run -f gs://bucket/urls.txt -o gs://bucket/out.md
    python main.py run -f urls.txt -o ""                 # Preview on stdout
    python main.py run -f urls.txt -p 10 --lang ja
    python main.py sources -f urls.txt

Environment:
    GEMINI_API_KEY: Required unless --api-key is given
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace

from config import Config, LANGUAGES
from errors import GleanerError, PhaseError
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return a copy of config with the CLI flags that were given applied."""
    overrides = {
        "gemini_api_key": getattr(args, "api_key", None),
        "source_file": getattr(args, "url_file", None),
        "output_path": getattr(args, "output", None),
        "llm_timeout": getattr(args, "llm_timeout", None),
        "fetch_timeout": getattr(args, "scraper_timeout", None),
        "run_timeout": getattr(args, "timeout", None),
        "max_fetch_concurrency": getattr(args, "parallel", None),
        "max_map_concurrency": getattr(args, "map_parallel", None),
        "map_model": getattr(args, "map_model", None),
        "reduce_model": getattr(args, "reduce_model", None),
        "language": getattr(args, "lang", None),
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Execute the pipeline.

    Args:
        args: Parsed command line arguments
        config: Application configuration (overrides applied)

    Returns:
        Exit code (0 for success)
    """
    from pipeline import run_once

    try:
        stats = asyncio.run(run_once(config))
        logger.info("Run complete | stats=%s", json.dumps(stats))
        return 0
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT
    except PhaseError as e:
        kind = "cancelled" if e.cancelled else "failed"
        logger.error(
            "Pipeline %s | phase=%s error=%s type=%s",
            kind, e.phase, e.cause, type(e.cause).__name__,
        )
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("Pipeline failed | error=%s type=%s", e, type(e).__name__, exc_info=True)
        return 1


def cmd_sources(args: argparse.Namespace, config: Config) -> int:
    """Print the parsed source list without fetching anything."""
    from sources import load_sources
    from tools.storage import DefaultBlobStore

    sources = asyncio.run(load_sources(config.source_file, DefaultBlobStore(config.fetch_timeout)))
    print(f"{len(sources)} source(s) in {config.source_file}:")
    for source in sources:
        print(f"- {source}")
    return 0


def cmd_config(args: argparse.Namespace, config: Config) -> int:
    """Print the effective configuration with secrets masked."""
    print(json.dumps(config.public_dict(), indent=2))
    return 0


def _add_source_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f", "--url-file",
        help="Source list: local path, gs://bucket/object or http(s) URL (default: SOURCE_FILE)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Gleaner: resilient fetch + Map/Reduce consolidation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the pipeline")
    _add_source_argument(run_parser)
    run_parser.add_argument(
        "-o", "--output",
        help="Output: local path, gs://bucket/object, or '' for a stdout preview "
             "(default: output/output_reduce_final.md)",
    )
    run_parser.add_argument(
        "-k", "--api-key",
        help="Gemini API key (default: GEMINI_API_KEY)",
    )
    run_parser.add_argument(
        "-t", "--llm-timeout",
        type=float,
        help="Timeout per generation call in seconds (default: 300)",
    )
    run_parser.add_argument(
        "-s", "--scraper-timeout",
        type=float,
        help="Timeout per HTTP request in seconds (default: 15)",
    )
    run_parser.add_argument(
        "-p", "--parallel",
        type=int,
        help="Parallel fetch workers (default: 5)",
    )
    run_parser.add_argument(
        "--map-parallel",
        type=int,
        help="Parallel map-phase workers (default: 2)",
    )
    run_parser.add_argument(
        "--map-model",
        help="Model for the map phase (default: google-gla:gemini-2.5-flash)",
    )
    run_parser.add_argument(
        "--reduce-model",
        help="Model for the reduce phase (default: google-gla:gemini-2.5-pro)",
    )
    run_parser.add_argument(
        "--lang",
        choices=list(LANGUAGES),
        help="Output language (default: en)",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        help="Deadline for the whole run in seconds (default: 1800)",
    )

    # sources command
    sources_parser = subparsers.add_parser("sources", help="List parsed sources (dry run)")
    _add_source_argument(sources_parser)

    # config command
    subparsers.add_parser("config", help="Show effective configuration")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(Config.load(), args)
    except GleanerError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    if args.command == "run":
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "run": cmd_run,
        "sources": cmd_sources,
        "config": cmd_config,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
