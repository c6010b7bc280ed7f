"""
Cadence catalog maintenance - Entry Point

Run with: python -m cadence [--db PATH] {init,stats,gc}
"""

import argparse
import asyncio
import logging
import sys

from cadence import __version__
from cadence.config import get_store_config
from cadence.core.catalog_db import CatalogDb
from cadence.core.db.errors import CatalogError


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
        prog="cadence",
        description="Cadence - music catalog store maintenance",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Catalog database file (default: [database].path from store.toml)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create or migrate the catalog schema")
    sub.add_parser("stats", help="Print entity counts")
    sub.add_parser("gc", help="Remove orphaned albums, artists and images")

    return parser.parse_args(argv)


async def run_command(command: str, db_path: str | None) -> None:
    """Open the catalog, run one maintenance command, close it."""
    db = CatalogDb(db_path, config=get_store_config())
    async with db:
        if command == "init":
            stats = await db.get_stats()
            print(f"Catalog ready at {db.db_path} ({stats['songs']} songs)")
        elif command == "stats":
            stats = await db.get_stats()
            for key, value in stats.items():
                print(f"{key:16} {value}")
        elif command == "gc":
            report = await db.collect_orphans()
            if report.is_empty():
                print("Nothing to collect")
            else:
                for key, ids in report.to_dict().items():
                    print(f"{key:10} {len(ids)}")
        else:
            raise ValueError(f"Unknown command: {command}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        asyncio.run(run_command(args.command, args.db))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except CatalogError as e:
        logger.error("Catalog error: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
