"""
SQLAlchemy 2.0 async DeclarativeBase for TCGCollectr.

All models inherit from this Base. Constraint names follow a fixed
convention so Alembic autogenerate produces stable revisions.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all TCGCollectr database models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
