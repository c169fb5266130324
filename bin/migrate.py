#!/usr/bin/env python3
"""Minimal SQL migration runner for Webhook Service."""
# pyright: reportMissingImports=false
from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path

import asyncpg

from webhook_service.db.migrations import apply_migrations, load_migrations


def _default_migrations_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "migrations"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply SQL migrations sequentially.")
    parser.add_argument(
        "--database-url",
        "-d",
        default=os.getenv("DATABASE_URL"),
        help="PostgreSQL connection string. Defaults to DATABASE_URL env variable.",
    )
    parser.add_argument(
        "--migrations-dir",
        "-m",
        type=Path,
        default=_default_migrations_dir(),
        help="Directory with *.sql migrations (sorted lexicographically).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list pending migrations without applying.",
    )
    return parser.parse_args()


async def main_async() -> None:
    args = parse_args()
    if not args.database_url:
        raise SystemExit("Database URL must be provided via --database-url or DATABASE_URL env.")
    if not args.migrations_dir.is_dir():
        raise SystemExit(f"Migrations directory does not exist: {args.migrations_dir}")
    migrations = load_migrations(args.migrations_dir)
    if not migrations:
        raise SystemExit(f"No *.sql files found in {args.migrations_dir}")

    conn = await asyncpg.connect(args.database_url)
    try:
        pending = await apply_migrations(conn, migrations, dry_run=args.dry_run)
    finally:
        await conn.close()

    if not pending:
        print("No pending migrations.")
    elif args.dry_run:
        for migration in pending:
            print(f"[dry-run] Pending migration: {migration.path.name}")
        print(f"{len(pending)} migration(s) pending.")
    else:
        print(f"Applied {len(pending)} migration(s).")


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
