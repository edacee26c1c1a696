"""Connection pool lifecycle and the per-request connection dependency."""

from collections.abc import AsyncIterator

from fastapi import HTTPException
from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)

pool: AsyncConnectionPool | None = None


def database_status() -> str:
    """`"ready"` once the pool is open, otherwise `"not_configured"`."""
    return "ready" if pool is not None else "not_configured"


async def init_db_pool(conninfo: str | None = None) -> None:
    global pool

    conninfo = conninfo if conninfo is not None else settings.database_url
    if not conninfo:
        logger.warning("DATABASE_URL is not set; database-backed endpoints will return 503")
        return

    # Rows come back as dicts so pydantic models can validate them directly.
    pool = AsyncConnectionPool(
        conninfo=conninfo,
        open=False,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        kwargs={"autocommit": True, "row_factory": dict_row},
    )
    await pool.open()
    logger.info(
        "Database pool opened (min=%d, max=%d)",
        settings.db_pool_min_size,
        settings.db_pool_max_size,
    )


async def close_db_pool() -> None:
    global pool

    if pool is not None:
        await pool.close()
        pool = None
        logger.info("Database pool closed")


async def get_db_connection() -> AsyncIterator[AsyncConnection]:
    if pool is None:
        raise HTTPException(status_code=503, detail="Database is not configured")

    async with pool.connection() as connection:
        yield connection
