"""
TCGCollectr — Catalog error taxonomy.

Every error here is fatal for the request that triggered it and maps to a
500 at the HTTP boundary. None of them may be turned into an empty success.
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base class for catalog failures. Carries an error code and details."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SeedFailure(CatalogError):
    """The on-demand seed from the upstream catalog could not complete."""


class UpstreamUnavailable(SeedFailure):
    """Network error, timeout, or non-2xx response from TCGDex."""


class UpstreamMalformed(SeedFailure):
    """TCGDex answered, but not with a list of valid set records."""


class PersistenceFailure(CatalogError):
    """The catalog store rejected a read or an upsert."""
