"""SQL migrations: discovery, checksum bookkeeping, startup hook."""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

_CONNECT_ATTEMPTS = 5
_CONNECT_RETRY_DELAY_SECONDS = 2.0


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    sql: str
    checksum: str


def find_migrations_dir(candidates: Iterable[Path]) -> Path | None:
    for path in candidates:
        if path.is_dir():
            return path
    return None


def load_migrations(directory: Path) -> list[Migration]:
    """Read ``*.sql`` files in lexicographic order; the file stem is the version."""
    migrations: list[Migration] = []
    seen: set[str] = set()
    for path in sorted(directory.glob("*.sql")):
        version = path.stem
        if version in seen:
            raise ValueError(f"Duplicate migration version detected: {version}")
        seen.add(version)
        sql = path.read_text(encoding="utf-8")
        checksum = hashlib.sha256(sql.encode("utf-8")).hexdigest()
        migrations.append(Migration(version=version, path=path, sql=sql, checksum=checksum))
    return migrations


async def ensure_schema_table(conn: asyncpg.Connection) -> None:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version text PRIMARY KEY,
            checksum text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


def select_pending(migrations: list[Migration], applied: dict[str, str]) -> list[Migration]:
    """Return migrations not yet applied; a changed applied file is an error."""
    pending: list[Migration] = []
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is None:
            pending.append(migration)
        elif recorded != migration.checksum:
            raise RuntimeError(
                f"Checksum mismatch for {migration.version}: "
                f"{recorded} (db) != {migration.checksum} (file)"
            )
    return pending


async def apply_migrations(
    conn: asyncpg.Connection, migrations: list[Migration], *, dry_run: bool = False
) -> list[Migration]:
    await ensure_schema_table(conn)
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    pending = select_pending(migrations, {row["version"]: row["checksum"] for row in rows})
    if dry_run:
        return pending
    for migration in pending:
        logger.info("applying migration", version=migration.version)
        async with conn.transaction():
            await conn.execute(migration.sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                migration.version,
                migration.checksum,
            )
    return pending


async def _connect(database_url: str) -> asyncpg.Connection | None:
    for attempt in range(1, _CONNECT_ATTEMPTS + 1):
        try:
            return await asyncpg.connect(database_url)
        except (OSError, asyncpg.PostgresError) as exc:
            logger.warning(
                "database connection failed",
                attempt=attempt,
                max_attempts=_CONNECT_ATTEMPTS,
                error=str(exc),
            )
            if attempt < _CONNECT_ATTEMPTS:
                await asyncio.sleep(_CONNECT_RETRY_DELAY_SECONDS)
    return None


def create_migration_runner(
    database_url: Callable[[], str],
    possible_paths: Iterable[Path],
) -> Callable[[web.Application], Awaitable[None]]:
    """Create an aiohttp startup hook that applies pending SQL migrations."""
    possible_paths_list = list(possible_paths)

    async def apply_migrations_on_startup(_app: web.Application) -> None:
        migrations_dir = find_migrations_dir(possible_paths_list)
        if migrations_dir is None:
            logger.warning(
                "migrations directory not found, skipping",
                tried=[str(p) for p in possible_paths_list],
            )
            return
        migrations = load_migrations(migrations_dir)
        if not migrations:
            logger.warning("no migrations found, skipping", directory=str(migrations_dir))
            return

        conn = await _connect(database_url())
        if conn is None:
            logger.error("could not connect to database, migrations skipped")
            return
        try:
            applied = await apply_migrations(conn, migrations)
        finally:
            await conn.close()
        logger.info("migrations applied", count=len(applied))

    return apply_migrations_on_startup
