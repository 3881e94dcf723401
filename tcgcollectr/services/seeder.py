"""
TCGCollectr — On-demand Set Seeder

Seed-on-read for the `sets` catalog: before any listing is served, make sure
the table is non-empty, pulling the full TCGDex listing exactly once per cold
period.

    EMPTY ──(first caller wins the lock)──▶ SEEDING ──(upsert ok)──▶ POPULATED
      ▲                                        │
      └────────────────(any failure)───────────┘

The lock is per process. Separate processes may each seed concurrently; the
ON CONFLICT upsert makes those writes converge rather than collide.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgcollectr.errors import PersistenceFailure
from tcgcollectr.models.catalog_set import CatalogSet
from tcgcollectr.pipeline.tcgdex import TCGDexClient

logger = structlog.get_logger(__name__)


class SeedState(str, Enum):
    EMPTY = "empty"
    SEEDING = "seeding"
    POPULATED = "populated"


@dataclass
class SeedResult:
    seeded_count: int
    message: str


class SetSeeder:
    """
    Single-flight seeder for the `sets` table.

    Reads (the existence check) go through the public read sessions; the
    upsert goes through the service sessions only.

    Usage:
        seeder = SetSeeder(db.read_sessions, db.service_sessions)
        await seeder.ensure_seeded()
    """

    def __init__(
        self,
        read_sessions: async_sessionmaker[AsyncSession],
        service_sessions: async_sessionmaker[AsyncSession],
        tcgdex_base_url: str | None = None,
        tcgdex_timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._read_sessions = read_sessions
        self._service_sessions = service_sessions
        self._tcgdex_base_url = tcgdex_base_url
        self._tcgdex_timeout = tcgdex_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        # Bumped by every finished seed; waiters compare it to share the outcome
        self._generation = 0
        self._last_error: Exception | None = None
        self.state = SeedState.EMPTY

    async def has_sets(self) -> bool:
        """Existence check on the catalog. Exact count is not needed."""
        try:
            async with self._read_sessions() as session:
                found = await session.scalar(select(CatalogSet.id).limit(1))
        except SQLAlchemyError as e:
            logger.error("set_seed_count_failed", error=str(e))
            raise PersistenceFailure(
                "Failed to check sets count",
                details={"original_error": str(e)},
            ) from e
        return found is not None

    async def ensure_seeded(self) -> SeedResult | None:
        """
        Make sure the catalog is non-empty.

        Returns None when this call did not seed: the catalog was already
        populated (the steady-state fast path), or another caller's seed
        finished while this one waited. Otherwise returns the result of the
        seed this call performed.

        A caller that arrives while another seed is in flight waits for it
        and shares its outcome. If that seed failed, the waiter re-raises the
        same error instead of fetching again; the next request retries.

        Raises:
            UpstreamUnavailable, UpstreamMalformed, PersistenceFailure
        """
        generation = self._generation

        if await self.has_sets():
            self.state = SeedState.POPULATED
            return None

        if self._lock.locked():
            logger.info("set_seed_in_flight_waiting")

        async with self._lock:
            if self._generation != generation:
                # A seed completed while we waited
                if self._last_error is not None:
                    raise self._last_error
                return None
            if await self.has_sets():
                self.state = SeedState.POPULATED
                return None
            return await self._seed()

    async def reseed(self) -> SeedResult:
        """Force a full bulk fetch and upsert, regardless of current state."""
        async with self._lock:
            return await self._seed()

    def _finish(self, error: Exception | None) -> None:
        self._last_error = error
        self._generation += 1

    async def _seed(self) -> SeedResult:
        previous = self.state
        self.state = SeedState.SEEDING
        logger.info("set_seed_begin", previous_state=previous.value)
        try:
            async with TCGDexClient(
                base_url=self._tcgdex_base_url,
                timeout=self._tcgdex_timeout,
            ) as client:
                sets = await client.fetch_sets()

                if not sets:
                    logger.warning("set_seed_upstream_empty")
                    self.state = previous
                    self._finish(None)
                    return SeedResult(0, "TCGDex returned empty sets list")

                async with self._service_sessions() as session:
                    seeded = await client.store_sets(sets, session, synced_at=self._clock())
        except BaseException as e:
            # No partial state is exposed: the caller sees the exception and
            # the next request starts over.
            self.state = previous
            logger.error("set_seed_failed", error=str(e), error_type=type(e).__name__)
            # A cancelled seed has no outcome to share; waiters seed themselves
            if isinstance(e, Exception):
                self._finish(e)
            raise

        self.state = SeedState.POPULATED
        self._finish(None)
        logger.info("set_seed_complete", seeded_count=seeded)
        return SeedResult(seeded, f"Successfully seeded {seeded} sets from TCGDex")
