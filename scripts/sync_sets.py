"""
TCGCollectr — Force a full TCGDex set re-sync

Fetches the complete set listing and upserts every row through the service
credentials, whether or not the catalog is already populated. This is the
only way existing rows get refreshed.

Usage:
    python scripts/sync_sets.py
    python scripts/sync_sets.py --base-url https://api.tcgdex.net/v2/fr --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import structlog

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tcgcollectr.config import settings
from tcgcollectr.db import create_database
from tcgcollectr.errors import CatalogError
from tcgcollectr.main import configure_logging
from tcgcollectr.services.seeder import SetSeeder


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Re-sync the sets catalog from TCGDex (full bulk upsert).",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=settings.TCGDEX_BASE_URL,
        help=f"TCGDex API base URL (default: {settings.TCGDEX_BASE_URL}).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.TCGDEX_TIMEOUT_SECONDS,
        help="Upstream request timeout in seconds.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


async def sync_sets(base_url: str, timeout: float) -> int:
    logger = structlog.get_logger("sync_sets")
    database = create_database()
    seeder = SetSeeder(
        database.read_sessions,
        database.service_sessions,
        tcgdex_base_url=base_url,
        tcgdex_timeout=timeout,
    )
    try:
        result = await seeder.reseed()
    except CatalogError as e:
        logger.error("sync_sets_failed", code=e.code, error=e.message, details=e.details)
        return 1
    finally:
        await database.dispose()

    logger.info("sync_sets_complete", seeded_count=result.seeded_count, message=result.message)
    return 0


def main() -> None:
    args = parse_args()
    configure_logging("DEBUG" if args.verbose else settings.LOG_LEVEL)
    sys.exit(asyncio.run(sync_sets(args.base_url, args.timeout)))


if __name__ == "__main__":
    main()
