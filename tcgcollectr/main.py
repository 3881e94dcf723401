"""
TCGCollectr — Application Entrypoint

Configures structlog, initializes the read and service database engines,
and serves the HTTP API with uvicorn.

Run via:
    python -m tcgcollectr.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
import uvicorn

from tcgcollectr import __version__
from tcgcollectr.api import create_app
from tcgcollectr.config import settings
from tcgcollectr.db import create_database


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create read + service engines
    3. Verify database connection (health check)
    4. Serve the API until shutdown
    """
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("tcgcollectr_startup_begin", version=__version__)

    database = create_database()

    try:
        await database.health_check()
        logger.info("database_health_check_passed")
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await database.dispose()
        raise

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(database),
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_config=None,
        )
    )

    try:
        await server.serve()
    except Exception as e:
        logger.error(
            "tcgcollectr_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await database.dispose()
        logger.info("tcgcollectr_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
