"""
Shelf - Entry Point

Run with: python -m shelf
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from shelf import __version__
from shelf.config import SyncConfig, load_config
from shelf.core.catalog_db import CatalogDb
from shelf.core.db.models import DirectoryType
from shelf.core.events import Event, EventBus
from shelf.core.synchronizer import Synchronizer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="shelf",
        description="Shelf - keep an audiobook catalog in step with your folders",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a shelf.toml (default: bundled defaults)",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Catalog database file (overrides database.path from the config)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Register a directory and scan it")
    add.add_argument("path", type=Path, help="Directory to register")
    add.add_argument(
        "--single",
        action="store_true",
        help="Treat the directory itself as one album (default: every subfolder is an album)",
    )

    sub.add_parser("refresh", help="Re-scan all registered directories")
    sub.add_parser("list", help="Show registered directories, albums and audio files")

    return parser.parse_args(argv)


async def print_advisory(event: Event) -> None:
    print(f"warning: {event.to_dict().get('message', '')}", file=sys.stderr)


async def list_catalog(db: CatalogDb) -> None:
    for directory in await db.list_directories():
        print(f"[{directory.id}] {directory.path} ({directory.type.value})")
        for album in await db.list_albums_by_directory(directory.id, order_by="title"):
            print(f"    [{album.id}] {album.title}")
            for audio in await db.list_audio_files_by_album(album.id):
                print(
                    f"        {audio.sort_index:>3}. {audio.title}"
                    f"  ({audio.completed_time_ms // 1000}s / {audio.duration_ms // 1000}s)"
                )


async def run(args: argparse.Namespace, config: SyncConfig) -> int:
    """Open the catalog and run the requested command."""
    db = CatalogDb(args.db or config.database_path)
    await db.open()
    try:
        await db.ensure_schema()

        if args.command == "list":
            await list_catalog(db)
            return 0

        events = EventBus()
        await events.subscribe("library.sync.advisory", print_advisory)
        synchronizer = Synchronizer(db, config, events=events)

        if args.command == "add":
            directory_type = DirectoryType.SINGLE_DIR if args.single else DirectoryType.PARENT_DIR
            report = await synchronizer.add_directory(args.path, directory_type)
        else:
            report = await synchronizer.refresh_all()

        print(
            f"{report.albums_created} album(s) added, {report.albums_deleted} removed; "
            f"{report.files_created} file(s) added, {report.files_deleted} removed"
        )
        return 0 if report.ok else 2
    finally:
        await db.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
