"""TCGCollectr — Pokémon card set catalog with on-demand TCGDex seeding."""

__version__ = "0.1.0"
