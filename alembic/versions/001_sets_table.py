"""Sets catalog table

Revision ID: 001_sets_table
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_sets_table"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- sets (TCGDex cache; written only by the service role) ---
    op.create_table(
        "sets",
        sa.Column("id", sa.String(), nullable=False, primary_key=True, comment="TCGDex set id"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("series", sa.String(), nullable=True),
        sa.Column("total_cards", sa.INTEGER(), nullable=False),
        sa.Column("release_date", sa.DATE(), nullable=True),
        sa.Column("logo_url", sa.String(), nullable=True),
        sa.Column("symbol_url", sa.String(), nullable=True),
        sa.Column("tcg_type", sa.String(), server_default="pokemon", nullable=False),
        sa.Column(
            "last_synced_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_sets_series", "sets", ["series"])
    op.create_index("ix_sets_release_date", "sets", ["release_date"])


def downgrade() -> None:
    op.drop_index("ix_sets_release_date", table_name="sets")
    op.drop_index("ix_sets_series", table_name="sets")
    op.drop_table("sets")
