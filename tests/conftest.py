"""
TCGCollectr — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- On-disk SQLite catalog store (read + service engines on one file)
- Seeder and sets service wired to that store
- TCGDex payload builders
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest

from tcgcollectr.db import Database, create_database
from tcgcollectr.models.base import Base
from tcgcollectr.services.seeder import SetSeeder
from tcgcollectr.services.sets import SetsService


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Store Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """
    Catalog store backed by a per-test SQLite file.

    A file (not :memory:) so the read and service engines see the same data,
    the way both credential tiers see one Postgres database in production.
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"
    db = create_database(read_url=url, service_url=url)

    async with db.service_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.dispose()


@pytest.fixture
def seeder(database: Database) -> SetSeeder:
    return SetSeeder(database.read_sessions, database.service_sessions)


@pytest.fixture
def sets_service(database: Database, seeder: SetSeeder) -> SetsService:
    return SetsService(database.read_sessions, seeder)


# ---------------------------------------------------------------------------
# TCGDex payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def make_tcgdex_sets() -> Callable[[int], list[dict[str, Any]]]:
    """
    Build a TCGDex /sets payload of `count` records.

    Names are zero-padded ("Set 000", "Set 001", ...) so alphabetical order
    equals index order. Even indexes belong to "Series A", odd to "Series B".
    """

    def _build(count: int) -> list[dict[str, Any]]:
        return [
            {
                "id": f"set{i:03d}",
                "name": f"Set {i:03d}",
                "series": "Series A" if i % 2 == 0 else "Series B",
                "total": 100 + i,
                "releaseDate": f"{2000 + i % 25}-01-15",
                "logo": f"https://assets.tcgdex.net/en/set{i:03d}/logo",
                "symbol": f"https://assets.tcgdex.net/univ/set{i:03d}/symbol",
            }
            for i in range(count)
        ]

    return _build


@pytest.fixture
def sv_sets() -> list[dict[str, Any]]:
    """A small, realistic TCGDex payload."""
    return [
        {
            "id": "sv08",
            "name": "Surging Sparks",
            "series": "Scarlet & Violet",
            "total": 252,
            "releaseDate": "2024-11-08",
            "logo": "https://assets.tcgdex.net/en/sv/sv08/logo",
            "symbol": "https://assets.tcgdex.net/univ/sv/sv08/symbol",
        },
        {
            "id": "sv05",
            "name": "Temporal Forces",
            "series": "Scarlet & Violet",
            "total": 218,
            "releaseDate": "2024-03-22",
            "logo": "https://assets.tcgdex.net/en/sv/sv05/logo",
            "symbol": "https://assets.tcgdex.net/univ/sv/sv05/symbol",
        },
        {
            "id": "base1",
            "name": "Base Set",
            "series": "Base",
            "total": 102,
            "releaseDate": "1999-01-09",
            "logo": "https://assets.tcgdex.net/en/base/base1/logo",
        },
    ]
