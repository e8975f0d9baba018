#!/usr/bin/env python3
"""Command line maintenance for the grounding index.

Usage:
    python scripts/update_index.py update uniprot [--force] [--file PATH]
    python scripts/update_index.py clear uniprot
    python scripts/update_index.py search uniprot tp53 [--size 5]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import DatabaseConfig, get_settings, initialize_database, close_database, db_factory
from observability.logging import setup_logging
from pipelines.errors import GroundingError
from sources.registry import DatasourceRegistry

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    config = DatabaseConfig.from_env()
    if args.db:
        config.sqlite_path = args.db

    await initialize_database(config)
    try:
        registry = DatasourceRegistry(db_factory.get_store(), settings)
        if args.command == "search":
            datasource = registry.get(args.namespace)
        else:
            datasource = registry.datasources.get(args.namespace)
        if datasource is None:
            logger.error(f"Unknown namespace: {args.namespace} (known: {', '.join(registry.namespaces)})")
            return 2

        if args.command == "update":
            if args.file:
                stats = await datasource.update_from_file(args.file)
            else:
                stats = await datasource.update(args.force)
            print(json.dumps(stats.to_dict(), indent=2))
        elif args.command == "clear":
            deleted = await datasource.clear()
            print(f"Deleted {deleted} {args.namespace} records")
        elif args.command == "search":
            results = await datasource.search(args.text, 0, args.size)
            print(json.dumps(results, indent=2))
        return 0
    finally:
        await close_database()


def main():
    parser = argparse.ArgumentParser(description="Maintain the grounding search index")
    parser.add_argument("--db", help="SQLite database path (defaults to SQLITE_PATH)")
    parser.add_argument("--log-level", default=None, help="Log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    update = subparsers.add_parser("update", help="Download and ingest a namespace")
    update.add_argument("namespace")
    update.add_argument("--force", action="store_true", help="Re-download even if cached")
    update.add_argument("--file", help="Ingest a local dump instead of downloading")

    clear = subparsers.add_parser("clear", help="Delete every record of a namespace")
    clear.add_argument("namespace")

    search = subparsers.add_parser("search", help="Search a namespace")
    search.add_argument("namespace")
    search.add_argument("text")
    search.add_argument("--size", type=int, default=10)

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(
        level=args.log_level or settings.log_level,
        log_file=settings.log_file,
        use_json=settings.log_json
    )

    try:
        exit_code = asyncio.run(run(args))
    except GroundingError as e:
        logger.error(f"{args.command} failed: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
