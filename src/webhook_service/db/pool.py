"""Process-wide asyncpg pool, opened and closed by aiohttp lifecycle hooks."""
from __future__ import annotations

from typing import Any

import asyncpg  # type: ignore[import-untyped]
import structlog

from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

_pool: asyncpg.Pool | None = None


async def init_pool(_app: Any = None) -> None:
    global _pool
    if _pool is not None:
        return
    _pool = await asyncpg.create_pool(
        dsn=str(settings.database_url),
        min_size=min(settings.db_pool_min_size, settings.db_pool_size),
        max_size=settings.db_pool_size,
    )
    logger.info("database pool opened", max_size=settings.db_pool_size)


async def close_pool(_app: Any = None) -> None:
    global _pool
    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("database pool closed")


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool, opening it on first use."""
    if _pool is None:
        await init_pool()
    assert _pool is not None
    return _pool
