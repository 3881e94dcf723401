"""
Models package — export all SQLAlchemy models.
"""

from tcgcollectr.models.base import Base
from tcgcollectr.models.catalog_set import CatalogSet

__all__ = ["Base", "CatalogSet"]
