"""Shared asyncpg helpers for repositories."""
from __future__ import annotations

from typing import Any, ClassVar, Generic, List, TypeVar

import asyncpg  # type: ignore[import-untyped]
from pydantic import BaseModel

from webhook_service.core.exceptions import NotFoundError

ModelT = TypeVar("ModelT", bound=BaseModel)


class BaseRepository(Generic[ModelT]):
    """Runs queries on an asyncpg pool and maps rows onto ``model``."""

    model: ClassVar[type[BaseModel]]
    not_found_message: ClassVar[str] = "Record not found"

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    def _to_model(self, record: asyncpg.Record) -> ModelT:
        return self.model.model_validate(dict(record))  # type: ignore[return-value]

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def _fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def _execute(self, query: str, *args: Any) -> str:
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def _fetch_model(self, query: str, *args: Any) -> ModelT | None:
        record = await self._fetchrow(query, *args)
        return None if record is None else self._to_model(record)

    async def _fetch_models(self, query: str, *args: Any) -> List[ModelT]:
        return [self._to_model(r) for r in await self._fetch(query, *args)]

    async def _require_row(self, query: str, *args: Any) -> asyncpg.Record:
        record = await self._fetchrow(query, *args)
        if record is None:
            raise NotFoundError(self.not_found_message)
        return record
