"""
Tests for the TCGDex API client (tcgcollectr/pipeline/tcgdex.py).

Covers:
- Client initialization and configuration
- fetch_sets: success, record normalization, every failure mode
- to_rows: defaults
- store_sets: ON CONFLICT upsert, monotonic last_synced_at
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
import respx
from sqlalchemy import func, select

from tcgcollectr.config import settings
from tcgcollectr.db import Database
from tcgcollectr.errors import UpstreamMalformed, UpstreamUnavailable
from tcgcollectr.models.catalog_set import CatalogSet
from tcgcollectr.pipeline.tcgdex import TCGDexClient, TCGDexSet, to_rows


# ---------------------------------------------------------------------------
# Client configuration
# ---------------------------------------------------------------------------


def test_tcgdex_client_init() -> None:
    """Client uses settings defaults when no overrides are given."""
    client = TCGDexClient()

    assert client._base_url == settings.TCGDEX_BASE_URL
    assert client._timeout == settings.TCGDEX_TIMEOUT_SECONDS
    assert client._client is None  # Not yet opened


def test_tcgdex_client_custom_url() -> None:
    client = TCGDexClient(base_url="https://api.tcgdex.net/v2/fr", timeout=2.5)

    assert client._base_url == "https://api.tcgdex.net/v2/fr"
    assert client._timeout == 2.5


# ---------------------------------------------------------------------------
# fetch_sets — success
# ---------------------------------------------------------------------------


async def test_fetch_sets_success(sv_sets) -> None:
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        route = mock.get("/sets").mock(return_value=httpx.Response(200, json=sv_sets))

        async with TCGDexClient() as client:
            result = await client.fetch_sets()

    assert route.call_count == 1
    assert route.calls.last.request.headers["Accept"] == "application/json"
    assert [s.id for s in result] == ["sv08", "sv05", "base1"]
    assert result[0].name == "Surging Sparks"
    assert result[0].total == 252
    assert result[0].get_release_date() == date(2024, 11, 8)
    assert result[2].symbol is None


async def test_fetch_sets_empty_list() -> None:
    """An empty listing is valid; the caller decides what to do with it."""
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(return_value=httpx.Response(200, json=[]))

        async with TCGDexClient() as client:
            result = await client.fetch_sets()

    assert result == []


def test_set_record_normalization() -> None:
    """Brief records (cardCount) and detailed records (series object) both parse."""
    record = TCGDexSet.model_validate(
        {
            "id": "sv03.5",
            "name": "151",
            "series": {"id": "sv", "name": "Scarlet & Violet"},
            "cardCount": {"total": 207, "official": 165},
            "releaseDate": "2023/09/22",
            "logo": "",
            "unexpected": "ignored",
        }
    )

    assert record.series == "Scarlet & Violet"
    assert record.total == 207
    assert record.get_release_date() == date(2023, 9, 22)
    assert record.logo is None


def test_invalid_release_date_becomes_none() -> None:
    record = TCGDexSet.model_validate({"id": "x1", "name": "X", "releaseDate": "soon"})

    assert record.get_release_date() is None


# ---------------------------------------------------------------------------
# fetch_sets — failures
# ---------------------------------------------------------------------------


async def test_fetch_sets_non_array_is_malformed() -> None:
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(
            return_value=httpx.Response(200, json={"data": [{"id": "sv08"}]})
        )

        with pytest.raises(UpstreamMalformed) as exc_info:
            async with TCGDexClient() as client:
                await client.fetch_sets()

    assert exc_info.value.details["received_type"] == "dict"


async def test_fetch_sets_record_missing_name_is_malformed() -> None:
    payload = [{"id": "sv08", "name": "Surging Sparks"}, {"id": "sv05"}]

    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(return_value=httpx.Response(200, json=payload))

        with pytest.raises(UpstreamMalformed) as exc_info:
            async with TCGDexClient() as client:
                await client.fetch_sets()

    assert exc_info.value.details["index"] == 1


async def test_fetch_sets_invalid_json_is_malformed() -> None:
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(return_value=httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(UpstreamMalformed):
            async with TCGDexClient() as client:
                await client.fetch_sets()


@pytest.mark.parametrize("status_code", [404, 500, 503])
async def test_fetch_sets_http_error_is_unavailable(status_code: int) -> None:
    """Non-2xx raises immediately; there is no retry at this layer."""
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        route = mock.get("/sets").mock(return_value=httpx.Response(status_code))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            async with TCGDexClient() as client:
                await client.fetch_sets()

    assert route.call_count == 1
    assert exc_info.value.details["status_code"] == status_code


async def test_fetch_sets_timeout_is_unavailable() -> None:
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(side_effect=httpx.ReadTimeout("stalled"))

        with pytest.raises(UpstreamUnavailable, match="timed out"):
            async with TCGDexClient(timeout=0.5) as client:
                await client.fetch_sets()


async def test_fetch_sets_connection_error_is_unavailable() -> None:
    with respx.mock(base_url=settings.TCGDEX_BASE_URL) as mock:
        mock.get("/sets").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(UpstreamUnavailable):
            async with TCGDexClient() as client:
                await client.fetch_sets()


# ---------------------------------------------------------------------------
# to_rows
# ---------------------------------------------------------------------------


def test_to_rows_defaults() -> None:
    synced_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = to_rows([TCGDexSet(id="p1", name="Promo")], synced_at)

    assert rows == [
        {
            "id": "p1",
            "name": "Promo",
            "series": None,
            "total_cards": 0,
            "release_date": None,
            "logo_url": None,
            "symbol_url": None,
            "tcg_type": settings.DEFAULT_TCG_TYPE,
            "last_synced_at": synced_at,
        }
    ]


# ---------------------------------------------------------------------------
# store_sets
# ---------------------------------------------------------------------------


async def test_store_sets_twice_keeps_one_row_per_id(database: Database, sv_sets) -> None:
    """Two seeds of the same payload (two racing processes) converge."""
    sets = [TCGDexSet.model_validate(s) for s in sv_sets]
    first = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    second = first + timedelta(minutes=5)

    client = TCGDexClient()
    async with database.service_sessions() as session:
        assert await client.store_sets(sets, session, synced_at=first) == 3
    async with database.service_sessions() as session:
        assert await client.store_sets(sets, session, synced_at=second) == 3

    async with database.read_sessions() as session:
        count = await session.scalar(select(func.count()).select_from(CatalogSet))
        synced = set(await session.scalars(select(CatalogSet.last_synced_at)))

    assert count == 3
    assert {s.replace(tzinfo=None) for s in synced} == {second.replace(tzinfo=None)}


async def test_store_sets_never_moves_last_synced_at_backwards(database: Database) -> None:
    client = TCGDexClient()
    newer = datetime(2026, 3, 1, tzinfo=timezone.utc)
    older = newer - timedelta(hours=1)

    async with database.service_sessions() as session:
        await client.store_sets(
            [TCGDexSet(id="sv08", name="Surging Sparks", total=252)], session, synced_at=newer
        )
    async with database.service_sessions() as session:
        await client.store_sets(
            [TCGDexSet(id="sv08", name="Stale Name", total=1)], session, synced_at=older
        )

    async with database.read_sessions() as session:
        row = await session.get(CatalogSet, "sv08")

    assert row.name == "Surging Sparks"
    assert row.total_cards == 252
    assert row.last_synced_at.replace(tzinfo=None) == newer.replace(tzinfo=None)


async def test_store_sets_updates_fields_on_newer_sync(database: Database) -> None:
    client = TCGDexClient()
    first = datetime(2026, 3, 1, tzinfo=timezone.utc)

    async with database.service_sessions() as session:
        await client.store_sets([TCGDexSet(id="sv08", name="Surging Sparks", total=191)], session, synced_at=first)
    async with database.service_sessions() as session:
        await client.store_sets(
            [TCGDexSet(id="sv08", name="Surging Sparks", total=252)],
            session,
            synced_at=first + timedelta(days=1),
        )

    async with database.read_sessions() as session:
        row = await session.get(CatalogSet, "sv08")

    assert row.total_cards == 252


async def test_store_sets_batches_large_payload(database: Database, make_tcgdex_sets) -> None:
    sets = [TCGDexSet.model_validate(s) for s in make_tcgdex_sets(250)]

    async with database.service_sessions() as session:
        stored = await TCGDexClient().store_sets(sets, session)

    async with database.read_sessions() as session:
        count = await session.scalar(select(func.count()).select_from(CatalogSet))

    assert stored == 250
    assert count == 250


async def test_store_sets_empty_is_noop(database: Database) -> None:
    async with database.service_sessions() as session:
        assert await TCGDexClient().store_sets([], session) == 0


async def test_store_sets_repeated_id_keeps_last_record(database: Database) -> None:
    sets = [
        TCGDexSet(id="sv08", name="Surging Sparks", total=191),
        TCGDexSet(id="sv05", name="Temporal Forces", total=218),
        TCGDexSet(id="sv08", name="Surging Sparks", total=252),
    ]

    async with database.service_sessions() as session:
        stored = await TCGDexClient().store_sets(sets, session)

    async with database.read_sessions() as session:
        count = await session.scalar(select(func.count()).select_from(CatalogSet))
        row = await session.get(CatalogSet, "sv08")

    assert stored == 2
    assert count == 2
    assert row.total_cards == 252
