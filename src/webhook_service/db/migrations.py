"""Checksum-tracked SQL migrations applied on startup."""
from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_CONNECT_ATTEMPTS = 5
_CONNECT_RETRY_DELAY_SECONDS = 2


class SettingsProtocol(Protocol):
    database_url: Any


def load_migrations(migrations_dir: Path) -> dict[str, str]:
    """Return ``{version: sql}`` ordered by file name."""
    migrations: dict[str, str] = {}
    for path in sorted(migrations_dir.glob("*.sql")):
        migrations[path.stem] = path.read_text(encoding="utf-8")
    return migrations


def checksum(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def _connect(dsn: str) -> asyncpg.Connection:
    for attempt in range(1, _CONNECT_ATTEMPTS + 1):
        try:
            return await asyncpg.connect(dsn)
        except (OSError, asyncpg.exceptions.CannotConnectNowError) as exc:
            if attempt == _CONNECT_ATTEMPTS:
                raise
            logger.warning(
                "database not reachable yet",
                attempt=attempt,
                max_attempts=_CONNECT_ATTEMPTS,
                error=str(exc),
            )
            await asyncio.sleep(_CONNECT_RETRY_DELAY_SECONDS)
    raise AssertionError("unreachable")


async def apply_migrations(conn: asyncpg.Connection, migrations: dict[str, str]) -> list[str]:
    """Apply pending migrations in order and return the applied versions."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version text PRIMARY KEY,
            checksum text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    applied = {row["version"]: row["checksum"] for row in rows}

    done: list[str] = []
    for version, sql in migrations.items():
        digest = checksum(sql)
        if version in applied:
            if applied[version] != digest:
                raise RuntimeError(
                    f"Checksum mismatch for {version}: {applied[version]} (db) != {digest} (file)"
                )
            continue
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                version,
                digest,
            )
        logger.info("migration applied", version=version)
        done.append(version)
    return done


def create_migration_runner(
    settings: SettingsProtocol,
    migrations_dir: Path = MIGRATIONS_DIR,
) -> Callable[[web.Application], Awaitable[None]]:
    """Create an aiohttp startup hook to apply SQL migrations."""

    async def apply_migrations_on_startup(_app: web.Application) -> None:
        migrations = load_migrations(migrations_dir)
        if not migrations:
            logger.warning("no migrations found", path=str(migrations_dir))
            return
        conn = await _connect(str(settings.database_url))
        try:
            applied = await apply_migrations(conn, migrations)
        finally:
            await conn.close()
        logger.info("migrations up to date", applied=len(applied), known=len(migrations))

    return apply_migrations_on_startup
