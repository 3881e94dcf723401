"""
TCGCollectr — Catalog Set Model

Reference data for card sets, cached from the TCGDex API. Rows are only ever
written by a bulk seed through the service role; the public role reads them.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import DATE, INTEGER, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgcollectr.models.base import Base


class CatalogSet(Base):
    """
    A card set/expansion as served by the catalog.

    The id is the TCGDex set id (e.g., "sv08" = Surging Sparks) and is never
    generated locally.
    """

    __tablename__ = "sets"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="TCGDex set id (e.g., 'sv08')"
    )
    name: Mapped[str] = mapped_column(
        String, nullable=False, comment="Display name (e.g., 'Surging Sparks')"
    )
    series: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Series grouping (e.g., 'Scarlet & Violet')"
    )
    total_cards: Mapped[int] = mapped_column(
        INTEGER, nullable=False, default=0, comment="Nominal card count of the set"
    )
    release_date: Mapped[date | None] = mapped_column(DATE, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="TCGDex CDN logo asset"
    )
    symbol_url: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="TCGDex CDN symbol asset"
    )
    tcg_type: Mapped[str] = mapped_column(
        String, nullable=False, default="pokemon", server_default="pokemon"
    )
    last_synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Most recent successful upstream fetch for this row",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_sets_series", "series"),
        Index("ix_sets_release_date", "release_date"),
    )

    def __repr__(self) -> str:
        return f"<CatalogSet id={self.id!r} name={self.name!r} series={self.series!r}>"
