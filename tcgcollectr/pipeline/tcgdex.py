"""
TCGCollectr — TCGDex API Client

Fetches the full set listing from TCGDex and upserts it into the `sets` table.
TCGDex is the only source of catalog data; nothing is authored locally.

Base URL: https://api.tcgdex.net/v2/en
Listing: GET /sets → JSON array of set briefs

The payload is treated as untyped JSON at the boundary and validated into
TCGDexSet records before anything is written. A single bad record rejects
the whole listing.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tcgcollectr.config import settings
from tcgcollectr.errors import PersistenceFailure, UpstreamMalformed, UpstreamUnavailable
from tcgcollectr.models.catalog_set import CatalogSet

logger = structlog.get_logger(__name__)

# Rows per INSERT statement; keeps bind parameters under SQLite's limit
UPSERT_BATCH_SIZE = 100

_UPDATABLE_COLUMNS = (
    "name",
    "series",
    "total_cards",
    "release_date",
    "logo_url",
    "symbol_url",
    "tcg_type",
    "last_synced_at",
)

# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class TCGDexSet(BaseModel):
    """
    A set record from the TCGDex listing.

    TCGDex brief records carry card counts under `cardCount`; detailed records
    carry `series` as an object. Both shapes are normalized here.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Set id (e.g., 'sv08')")
    name: str = Field(..., min_length=1, description="Set name (e.g., 'Surging Sparks')")
    series: str | None = Field(default=None, description="Series name")
    total: int | None = Field(default=None, ge=0, description="Total cards in set")
    releaseDate: str | None = Field(default=None, description="Release date YYYY-MM-DD")
    logo: str | None = None
    symbol: str | None = None
    tcgType: str | None = None

    @model_validator(mode="before")
    @classmethod
    def total_from_card_count(cls, data: Any) -> Any:
        """Fall back to cardCount.total when the flat total is absent."""
        if isinstance(data, dict) and data.get("total") is None:
            card_count = data.get("cardCount")
            if isinstance(card_count, dict) and card_count.get("total") is not None:
                data = {**data, "total": card_count["total"]}
        return data

    @field_validator("series", mode="before")
    @classmethod
    def flatten_series(cls, v: Any) -> str | None:
        if isinstance(v, dict):
            v = v.get("name")
        if v is None or v == "":
            return None
        return v

    @field_validator("releaseDate", "logo", "symbol", "tcgType", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    def get_release_date(self) -> date | None:
        """Parse release date string to date object."""
        if not self.releaseDate:
            return None
        try:
            return date.fromisoformat(self.releaseDate.replace("/", "-"))
        except ValueError:
            logger.warning(
                "tcgdex_invalid_release_date",
                set_id=self.id,
                raw_date=self.releaseDate,
            )
            return None


def to_rows(
    sets: list[TCGDexSet],
    synced_at: datetime,
    default_tcg_type: str | None = None,
) -> list[dict[str, Any]]:
    """
    Map TCGDex records to `sets` rows.

    Every row of one seed shares the same last_synced_at.
    """
    tcg_type = default_tcg_type or settings.DEFAULT_TCG_TYPE
    return [
        {
            "id": s.id,
            "name": s.name,
            "series": s.series,
            "total_cards": s.total or 0,
            "release_date": s.get_release_date(),
            "logo_url": s.logo,
            "symbol_url": s.symbol,
            "tcg_type": s.tcgType or tcg_type,
            "last_synced_at": synced_at,
        }
        for s in sets
    ]


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class TCGDexClient:
    """
    Async client for the TCGDex v2 API.

    No retries: a failed fetch surfaces immediately and the next request
    that finds the catalog empty tries again.

    Usage:
        async with TCGDexClient() as client:
            sets = await client.fetch_sets()
            await client.store_sets(sets, service_session)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self._base_url = base_url or settings.TCGDEX_BASE_URL
        self._timeout = timeout if timeout is not None else settings.TCGDEX_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TCGDexClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(self, path: str) -> Any:
        """GET a path and decode its JSON body, mapping failures to catalog errors."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        url = f"{self._base_url}{path}"
        try:
            response = await self._client.get(path)
        except httpx.TimeoutException as e:
            logger.error("tcgdex_timeout", path=path, timeout_seconds=self._timeout)
            raise UpstreamUnavailable(
                f"TCGDex API timed out after {self._timeout}s ({url})",
                details={"url": url, "error": str(e)},
            ) from e
        except httpx.RequestError as e:
            logger.error("tcgdex_request_error", path=path, error=str(e))
            raise UpstreamUnavailable(
                f"TCGDex API request failed ({url})",
                details={"url": url, "error": str(e)},
            ) from e

        if not response.is_success:
            logger.error(
                "tcgdex_http_error",
                status_code=response.status_code,
                path=path,
            )
            raise UpstreamUnavailable(
                f"TCGDex API error: {response.status_code} {response.reason_phrase} ({url})",
                details={"url": url, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("tcgdex_invalid_json", path=path)
            raise UpstreamMalformed(
                "TCGDex API returned a body that is not JSON",
                details={"url": url},
            ) from e

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch_sets(self) -> list[TCGDexSet]:
        """
        Fetch the full set listing.

        Returns:
            Validated set records, possibly empty.

        Raises:
            UpstreamUnavailable: network error, timeout, or non-2xx status.
            UpstreamMalformed: body is not a JSON array of valid set records.
        """
        logger.info("tcgdex_fetch_sets", base_url=self._base_url)

        data = await self._request("/sets")
        if not isinstance(data, list):
            raise UpstreamMalformed(
                "TCGDex API returned invalid response format (expected array)",
                details={"received_type": type(data).__name__},
            )

        sets: list[TCGDexSet] = []
        for index, item in enumerate(data):
            try:
                sets.append(TCGDexSet.model_validate(item))
            except ValidationError as e:
                logger.error("tcgdex_invalid_set_record", index=index, error=str(e))
                raise UpstreamMalformed(
                    f"TCGDex set record at index {index} is invalid",
                    details={"index": index, "error": str(e)},
                ) from e

        logger.info("tcgdex_fetch_sets_complete", total_sets=len(sets))
        return sets

    async def store_sets(
        self,
        sets: list[TCGDexSet],
        session: AsyncSession,
        synced_at: datetime | None = None,
    ) -> int:
        """
        Upsert sets into the `sets` table, keyed by id.

        Must be called with a session bound to the service role. Uses
        ON CONFLICT so concurrent seeds from other processes converge instead
        of failing on duplicate keys. A row already synced more recently than
        `synced_at` is left untouched, so last_synced_at never moves backwards.

        Args:
            sets: Validated set records.
            session: Async session on the service engine.
            synced_at: Sync timestamp for every row (defaults to now, UTC).

        Returns:
            Number of distinct set ids submitted.
        """
        if not sets:
            return 0

        synced_at = synced_at or datetime.now(timezone.utc)
        # One statement cannot touch the same id twice; the last record wins
        rows = list({row["id"]: row for row in to_rows(sets, synced_at)}.values())
        table = CatalogSet.__table__
        insert = _dialect_insert(session)

        try:
            for start in range(0, len(rows), UPSERT_BATCH_SIZE):
                stmt = insert(table).values(rows[start:start + UPSERT_BATCH_SIZE])
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.id],
                    set_={
                        **{col: stmt.excluded[col] for col in _UPDATABLE_COLUMNS},
                        "updated_at": func.now(),
                    },
                    where=table.c.last_synced_at <= stmt.excluded.last_synced_at,
                )
                await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("tcgdex_sets_store_failed", error=str(e), count=len(rows))
            raise PersistenceFailure(
                f"Database upsert failed: {e}",
                details={"original_error": str(e)},
            ) from e

        logger.info("tcgdex_sets_stored", count=len(rows), source="tcgdex")
        return len(rows)


def _dialect_insert(session: AsyncSession) -> Any:
    """Pick the INSERT construct that supports ON CONFLICT for the bound dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise PersistenceFailure(
        f"Upsert is not supported on dialect {dialect!r}",
        details={"dialect": dialect},
    )
