"""Command line entry point.

Usage:
    drivevault refresh
    drivevault search QUERY
    drivevault download LINK
    drivevault watch [--interval SECONDS]

Settings come from DRIVEVAULT_* environment variables or a .env file; at
least DRIVEVAULT_FOLDER_IDS must be set.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from drivevault.core.config import Settings, get_settings
from drivevault.core.logging import get_logger, setup_logging
from drivevault.exceptions import DriveVaultError
from drivevault.services.google_drive import RemoteTransport
from drivevault.services.vault import DriveVault

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drivevault",
        description="Searchable local mirror of Google Drive folders",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("refresh", help="Synchronize the local database once")

    search = subparsers.add_parser("search", help="Search synced file names")
    search.add_argument("query", help="Case-insensitive name substring")

    download = subparsers.add_parser("download", help="Download a synced file")
    download.add_argument("link", help="The file's webViewLink")

    watch = subparsers.add_parser("watch", help="Refresh periodically until interrupted")
    watch.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between refreshes (default: DRIVEVAULT_REFRESH_INTERVAL)",
    )
    return parser


async def run(
    args: argparse.Namespace,
    settings: Settings | None = None,
    *,
    transport: RemoteTransport | None = None,
) -> int:
    """Execute one command.

    ``search`` and ``download`` answer from the local database and only reach
    Drive on a download cache miss. ``refresh`` and ``watch`` synchronize first.
    """
    settings = settings or get_settings()
    vault = DriveVault(settings, transport=transport)

    if args.command == "refresh":
        async with vault:
            result = vault.stats
            print(json.dumps({"total_files": result["total_files"], "new_files": result["new_files"]}))
        return 0

    if args.command == "search":
        await vault.open(initial_refresh=False)
        try:
            for row in await vault.search(args.query):
                print(json.dumps({
                    "id": row.id,
                    "name": row.name,
                    "view_link": row.view_link,
                    "local_path": row.local_path,
                }))
        finally:
            await vault.close()
        return 0

    if args.command == "download":
        await vault.open(initial_refresh=False)
        try:
            print(await vault.download(args.link))
        finally:
            await vault.close()
        return 0

    if args.command == "watch":
        async with vault:
            vault.start_scheduled_refresh(args.interval)
            await vault.wait_closed()
        return 0

    return 2


def main(argv: list[str] | None = None) -> None:
    """Run the command line interface."""
    args = build_parser().parse_args(argv)
    setup_logging(get_settings())

    try:
        code = asyncio.run(run(args))
    except DriveVaultError as e:
        logger.error("command_failed", command=args.command, error=e.message, code=e.code)
        print(f"error: {e.message}", file=sys.stderr)
        code = 1
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
