"""Database engine and session management utilities."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import event, func, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from edge_cache_warmer.config import Settings, get_settings
from edge_cache_warmer.models import Base, KeyValueEntry

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_database_health_logger = logging.getLogger("edge_cache_warmer.database.health")


@dataclass(slots=True, frozen=True)
class DatabaseHealthCheckResult:
    """Outcome details for startup database checks."""

    integrity_ok: bool
    stored_entries: int
    expired_entries: int

    @property
    def is_healthy(self) -> bool:
        return self.integrity_ok


def _is_sqlite_url(database_url: str) -> bool:
    parsed_url = make_url(database_url)
    return parsed_url.get_backend_name() == "sqlite"


def _is_sqlite_file_url(database_url: str) -> bool:
    if not _is_sqlite_url(database_url):
        return False
    database_path = make_url(database_url).database
    return database_path not in (None, "", ":memory:") and not str(
        database_path
    ).startswith("file:")


def _ensure_sqlite_database_file(database_url: str) -> None:
    if not _is_sqlite_file_url(database_url):
        return

    resolved_path = Path(str(make_url(database_url).database))
    if not resolved_path.is_absolute():
        resolved_path = Path.cwd() / resolved_path

    resolved_path.parent.mkdir(parents=True, exist_ok=True)
    resolved_path.touch(exist_ok=True)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, applying SQLite pragmas for file databases."""

    connect_args: dict[str, int] = {}
    if _is_sqlite_url(database_url):
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SECONDS

    engine = create_async_engine(
        database_url,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if _is_sqlite_file_url(database_url):
        _configure_sqlite_pragmas(engine)

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


def _configure_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def apply_sqlite_pragmas(dbapi_connection: Any, _: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.close()


settings: Settings = get_settings()
_ensure_sqlite_database_file(settings.DATABASE_URL)
engine = build_engine(settings.DATABASE_URL)

AsyncSessionFactory = build_session_factory(engine)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a transaction-scoped session with automatic commit/rollback."""

    session = AsyncSessionFactory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def initialize_database() -> None:
    """Create known tables and verify SQLite WAL mode for file databases."""

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
        await connection.execute(text("SELECT 1"))

        if not _is_sqlite_file_url(str(connection.engine.url)):
            return

        wal_mode_result = await connection.execute(text("PRAGMA journal_mode;"))
        wal_mode = wal_mode_result.scalar_one()
        if str(wal_mode).lower() != "wal":
            raise RuntimeError(
                f"SQLite WAL mode was not enabled. Current mode: {wal_mode}"
            )


async def run_startup_database_health_check(
    *,
    fail_fast_on_integrity_error: bool = True,
) -> DatabaseHealthCheckResult:
    """Validate database integrity and report key-value entry counts."""

    async with engine.connect() as connection:
        integrity_ok = True
        if _is_sqlite_url(str(connection.engine.url)):
            integrity_rows = (
                (await connection.execute(text("PRAGMA integrity_check;")))
                .scalars()
                .all()
            )
            integrity_ok = len(integrity_rows) == 1 and integrity_rows[0] == "ok"
            if integrity_ok:
                _database_health_logger.info("database_integrity_check_ok")
            else:
                _database_health_logger.error(
                    "database_integrity_check_failed",
                    extra={"integrity_rows": integrity_rows},
                )

        stored_entries = int(
            (
                await connection.execute(select(func.count(KeyValueEntry.key)))
            ).scalar_one()
        )
        expired_entries = int(
            (
                await connection.execute(
                    select(func.count(KeyValueEntry.key)).where(
                        KeyValueEntry.expires_at <= datetime.now(UTC)
                    )
                )
            ).scalar_one()
        )

    result = DatabaseHealthCheckResult(
        integrity_ok=integrity_ok,
        stored_entries=stored_entries,
        expired_entries=expired_entries,
    )
    _database_health_logger.info(
        "database_startup_health_check_completed",
        extra={
            "integrity_ok": result.integrity_ok,
            "stored_entries": result.stored_entries,
            "expired_entries": result.expired_entries,
        },
    )

    if fail_fast_on_integrity_error and not result.integrity_ok:
        raise RuntimeError(
            "Database integrity check failed. Review logs before restarting."
        )

    return result


async def close_database() -> None:
    """Dispose database engine and release pooled connections."""

    await engine.dispose()


__all__ = [
    "AsyncSessionFactory",
    "DatabaseHealthCheckResult",
    "build_engine",
    "build_session_factory",
    "close_database",
    "engine",
    "initialize_database",
    "run_startup_database_health_check",
    "session_scope",
]
