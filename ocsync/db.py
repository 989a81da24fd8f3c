# ocsync/db.py
# Async SQLAlchemy engine for the (read-only) OpenCart source database.
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ocsync.config import settings
from ocsync.exceptions import ConfigurationMissing, SourceConnectionError

logger = logging.getLogger("uvicorn.error")

_engine: Optional[AsyncEngine] = None


def _resolve_dsn() -> URL:
    """
    Prefer settings.OC_DATABASE_URL, else build a MySQL URL from the
    individual OC_DB_* settings. Raises ConfigurationMissing when the
    required pieces are blank.
    """
    if settings.OC_DATABASE_URL:
        return make_url(settings.OC_DATABASE_URL)

    missing = settings.missing_source_settings()
    if missing:
        raise ConfigurationMissing(missing)

    return URL.create(
        "mysql+aiomysql",
        username=settings.OC_DB_USER,
        password=settings.OC_DB_PASSWORD or None,
        host=settings.OC_DB_HOST,
        port=settings.OC_DB_PORT,
        database=settings.OC_DB_NAME,
        query={"charset": "utf8mb4"},
    )


def get_engine() -> AsyncEngine:
    """
    Lazily create the global AsyncEngine for the OpenCart database.
    """
    global _engine
    if _engine is None:
        dsn = _resolve_dsn()
        _engine = create_async_engine(
            dsn,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("[DB] engine initialized for %s", dsn.render_as_string(hide_password=True))
    return _engine


async def check_connection(engine: AsyncEngine) -> None:
    """
    Acquire a connection and run a trivial query.
    Raises SourceConnectionError when OpenCart is unreachable.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OperationalError, DBAPIError, OSError) as e:
        logger.error("[DB] OpenCart connect failed: %s", e)
        raise SourceConnectionError(f"OpenCart DB Error: {e}") from e


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("[DB] engine disposed")
