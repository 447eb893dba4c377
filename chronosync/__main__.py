"""Command-line entry for chronosync.

Runs one sync and prints the events as a JSON array on stdout. Logs go to
stderr, so the output can be piped straight into another tool.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .caldav.discovery import DiscoveryClient
from .caldav.exceptions import ConfigurationError, SyncError
from .caldav.models import Credentials
from .caldav.transport import CalDAVTransport
from .config.settings import SyncSettings, load_settings
from .ics.models import NormalizedEvent, dump_events_json, load_events_json
from .sync.orchestrator import SyncOrchestrator
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the chronosync CLI."""
    parser = argparse.ArgumentParser(
        prog="chronosync",
        description="Sync calendar events over CalDAV, falling back to a simulated dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chronosync                          # Sync and print events JSON
  python -m chronosync --list-calendars         # Show discovered calendars
  python -m chronosync --check-auth             # Check credentials against the service root
  python -m chronosync --check-home             # Try common calendar-home URL layouts
  python -m chronosync --check-home '{root}{local_part}/cal/'
  python -m chronosync --merge bridge.json      # Merge events from a native bridge
  python -m chronosync --config sync.yaml       # Layer settings from a YAML file
        """,
    )
    parser.add_argument("--config", metavar="FILE", help="YAML settings file (env vars win)")

    diagnostics = parser.add_mutually_exclusive_group()
    diagnostics.add_argument(
        "--list-calendars",
        action="store_true",
        help="Run discovery only and print the calendar collections",
    )
    diagnostics.add_argument(
        "--check-auth",
        action="store_true",
        help="Report whether the service root accepts the configured credentials",
    )
    diagnostics.add_argument(
        "--check-home",
        nargs="*",
        metavar="TEMPLATE",
        help="Report the status of candidate calendar-home URLs "
        "(placeholders: {root}, {local_part}, {principal}; defaults to common layouts)",
    )
    parser.add_argument(
        "--merge",
        metavar="FILE",
        help="JSON array of events already held, merged into the result",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Console log level (default: INFO, or CHRONOSYNC_LOG_LEVEL)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _load_merge_file(path: str) -> list[NormalizedEvent]:
    try:
        payload = Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read events file {path}: {e}") from e
    try:
        return load_events_json(payload)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid events file {path}: {e}") from e


async def _list_calendars(settings: SyncSettings, credentials: Credentials) -> str:
    async with CalDAVTransport(settings) as transport:
        session = await DiscoveryClient(transport, settings).discover(credentials)
    return session.model_dump_json(indent=2)


async def _check_auth(settings: SyncSettings, credentials: Credentials) -> tuple[str, bool]:
    async with CalDAVTransport(settings) as transport:
        result = await DiscoveryClient(transport, settings).check_auth(credentials)
    return result.model_dump_json(indent=2), result.authenticated


async def _check_home(
    settings: SyncSettings, credentials: Credentials, templates: Sequence[str]
) -> str:
    async with CalDAVTransport(settings) as transport:
        checks = await DiscoveryClient(transport, settings).check_home_candidates(
            credentials, templates
        )
    return json.dumps([check.model_dump() for check in checks], indent=2)


async def _sync(
    settings: SyncSettings, credentials: Credentials, existing: Sequence[NormalizedEvent]
) -> str:
    async with SyncOrchestrator(settings) as orchestrator:
        result = await orchestrator.sync(credentials, existing)
    logger.info("Source: %s, synced at %s", result.source.value, result.synced_at.isoformat())
    return dump_events_json(result.events)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the chronosync CLI.

    Returns:
        0 on success, 1 when calendar listing or the credential check fails,
        2 on configuration errors
    """
    args = _create_parser().parse_args(argv)
    setup_logging(args.log_level)

    exit_code = EXIT_OK
    try:
        settings = load_settings(args.config)
        setup_logging(args.log_level or settings.log_level)
        credentials = settings.get_credentials()
        existing = _load_merge_file(args.merge) if args.merge else []

        if args.list_calendars:
            output = asyncio.run(_list_calendars(settings, credentials))
        elif args.check_auth:
            output, authenticated = asyncio.run(_check_auth(settings, credentials))
            if not authenticated:
                exit_code = EXIT_SYNC_FAILED
        elif args.check_home is not None:
            output = asyncio.run(_check_home(settings, credentials, args.check_home))
        else:
            output = asyncio.run(_sync(settings, credentials, existing))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        return EXIT_CONFIG_ERROR
    except SyncError as e:
        logger.error("Calendar discovery failed: %s", e)
        return EXIT_SYNC_FAILED

    sys.stdout.write(output + "\n")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
