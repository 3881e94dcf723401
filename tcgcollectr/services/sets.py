"""
TCGCollectr — Sets Service

Filtered, paginated reads over the `sets` catalog. Every listing first asks
the seeder to make sure the catalog is populated; in steady state that is a
single existence query.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgcollectr.config import SortField, SortOrder, settings
from tcgcollectr.errors import PersistenceFailure
from tcgcollectr.models.catalog_set import CatalogSet
from tcgcollectr.services.seeder import SetSeeder

logger = structlog.get_logger(__name__)

# Public sort names → SortField values
_SORT_ALIASES = {"releaseDate": SortField.RELEASE_DATE.value}


# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------


class SetsQuery(BaseModel):
    """
    Validated parameters for a set listing.

    Rules:
    - page: integer >= 1 (default 1)
    - limit: integer between 1 and SETS_MAX_PAGE_SIZE (default SETS_DEFAULT_PAGE_SIZE)
    - sort: name | release_date | series (default name)
    - order: asc | desc, case-insensitive (default asc)
    - search: trimmed, non-empty; case-insensitive substring of the name
    - series: trimmed, non-empty; exact match
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    page: int = Field(default=1, ge=1)
    limit: int = Field(
        default=settings.SETS_DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.SETS_MAX_PAGE_SIZE,
    )
    sort: SortField = SortField.NAME
    order: SortOrder = SortOrder.ASC
    search: str | None = Field(default=None, min_length=1)
    series: str | None = Field(default=None, min_length=1)

    @field_validator("sort", mode="before")
    @classmethod
    def resolve_sort_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _SORT_ALIASES.get(v, v)
        return v

    @field_validator("order", mode="before")
    @classmethod
    def lowercase_order(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.lower()
        return v


# ---------------------------------------------------------------------------
# Response models (camelCase on the wire)
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SetSummary(_CamelModel):
    id: str
    name: str
    series: str | None = None
    total_cards: int
    release_date: date | None = None
    logo_url: str | None = None
    symbol_url: str | None = None


class SetDetail(SetSummary):
    # tcg_type is not exposed
    last_synced_at: datetime
    created_at: datetime
    updated_at: datetime


class Pagination(_CamelModel):
    page: int
    limit: int
    total_items: int
    total_pages: int


class PaginatedSets(_CamelModel):
    items: list[SetSummary]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SetsService:
    """
    Read side of the catalog.

    Usage:
        service = SetsService(db.read_sessions, seeder)
        page = await service.list_sets(SetsQuery(search="surging"))
    """

    def __init__(
        self,
        read_sessions: async_sessionmaker[AsyncSession],
        seeder: SetSeeder,
    ):
        self._read_sessions = read_sessions
        self._seeder = seeder

    @staticmethod
    def _filters(params: SetsQuery) -> list[Any]:
        filters: list[Any] = []
        if params.search:
            pattern = f"%{_escape_like(params.search)}%"
            filters.append(CatalogSet.name.ilike(pattern, escape="\\"))
        if params.series:
            filters.append(CatalogSet.series == params.series)
        return filters

    @staticmethod
    def _ordering(params: SetsQuery) -> list[Any]:
        column = getattr(CatalogSet, params.sort.value)
        primary = column.desc() if params.order is SortOrder.DESC else column.asc()
        # id breaks ties so paging is deterministic
        return [primary, CatalogSet.id.asc()]

    async def list_sets(self, params: SetsQuery | None = None) -> PaginatedSets:
        """
        Fetch one page of sets matching the filters.

        An out-of-range page is not an error: it yields no items alongside
        the true totals.

        Raises:
            SeedFailure: the catalog was empty and could not be seeded.
            PersistenceFailure: the count or data query failed.
        """
        params = params or SetsQuery()

        await self._seeder.ensure_seeded()

        filters = self._filters(params)
        offset = (params.page - 1) * params.limit

        try:
            async with self._read_sessions() as session:
                total_items = await session.scalar(
                    select(func.count()).select_from(CatalogSet).where(*filters)
                ) or 0
                rows: list[CatalogSet] = []
                # Past the last row there is nothing to fetch
                if offset < total_items:
                    result = await session.scalars(
                        select(CatalogSet)
                        .where(*filters)
                        .order_by(*self._ordering(params))
                        .offset(offset)
                        .limit(params.limit)
                    )
                    rows = list(result.all())
        except SQLAlchemyError as e:
            logger.error("sets_list_query_failed", error=str(e))
            raise PersistenceFailure(
                "Failed to fetch sets",
                details={"original_error": str(e)},
            ) from e

        pagination = Pagination(
            page=params.page,
            limit=params.limit,
            total_items=total_items,
            total_pages=math.ceil(total_items / params.limit),
        )

        logger.debug(
            "sets_list_served",
            page=params.page,
            limit=params.limit,
            returned=len(rows),
            total_items=total_items,
            search=params.search,
            series=params.series,
        )
        return PaginatedSets(
            items=[SetSummary.model_validate(row) for row in rows],
            pagination=pagination,
        )

    async def get_set(self, set_id: str) -> SetDetail | None:
        """Fetch one set with its sync metadata, or None if it is not cataloged."""
        try:
            async with self._read_sessions() as session:
                row = await session.get(CatalogSet, set_id)
        except SQLAlchemyError as e:
            logger.error("sets_get_query_failed", set_id=set_id, error=str(e))
            raise PersistenceFailure(
                "Failed to fetch set details",
                details={"original_error": str(e), "set_id": set_id},
            ) from e

        if row is None:
            return None
        return SetDetail.model_validate(row)
