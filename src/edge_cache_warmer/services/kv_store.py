"""Key-value persistence for cursors, run summaries, and error records."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime, timedelta
import logging
from typing import Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from edge_cache_warmer.models import KeyValueEntry

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_logger = logging.getLogger("edge_cache_warmer.kv_store")


class KeyValueStore(Protocol):
    """Minimal string key-value contract shared by warmer components."""

    async def get(self, key: str) -> str | None: ...

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int | None = None,
    ) -> None: ...

    async def list_keys(self, *, prefix: str, limit: int) -> list[str]: ...


class SQLAlchemyKeyValueStore:
    """Key-value store over the ``kv_entries`` table.

    Expired entries are invisible to reads and listings as soon as their
    expiry passes; ``purge_expired`` removes them physically.
    """

    def __init__(
        self,
        *,
        session_factory: SessionScopeFactory | None = None,
        now_factory: Callable[[], datetime] | None = None,
    ) -> None:
        if session_factory is None:
            from edge_cache_warmer.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._now_factory = now_factory or self._default_now

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None or self._is_expired(entry):
                return None
            return entry.value

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int | None = None,
    ) -> None:
        if expiration_ttl is not None and expiration_ttl <= 0:
            raise ValueError("expiration_ttl must be greater than zero")

        now = self._now_factory()
        expires_at = (
            now + timedelta(seconds=expiration_ttl)
            if expiration_ttl is not None
            else None
        )
        async with self._session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(
                    KeyValueEntry(
                        key=key,
                        value=value,
                        expires_at=expires_at,
                        updated_at=now,
                    )
                )
            else:
                entry.value = value
                entry.expires_at = expires_at
                entry.updated_at = now
            await session.flush()

    async def list_keys(self, *, prefix: str, limit: int) -> list[str]:
        """Return live keys under ``prefix`` in descending key order."""

        if limit <= 0:
            raise ValueError("limit must be greater than zero")

        now = self._now_factory()
        async with self._session_factory() as session:
            keys = await session.scalars(
                select(KeyValueEntry.key)
                .where(KeyValueEntry.key.startswith(prefix, autoescape=True))
                .where(
                    or_(
                        KeyValueEntry.expires_at.is_(None),
                        KeyValueEntry.expires_at > now,
                    )
                )
                .order_by(KeyValueEntry.key.desc())
                .limit(limit)
            )
            return list(keys)

    async def purge_expired(self) -> int:
        now = self._now_factory()
        async with self._session_factory() as session:
            result = await session.execute(
                delete(KeyValueEntry).where(KeyValueEntry.expires_at <= now)
            )
            purged = int(result.rowcount or 0)

        _logger.info("kv_expired_entries_purged", extra={"purged": purged})
        return purged

    def _is_expired(self, entry: KeyValueEntry) -> bool:
        if entry.expires_at is None:
            return False
        expires_at = (
            entry.expires_at
            if entry.expires_at.tzinfo is not None
            else entry.expires_at.replace(tzinfo=UTC)
        )
        return expires_at <= self._normalized_now()

    def _normalized_now(self) -> datetime:
        now = self._now_factory()
        return now if now.tzinfo is not None else now.replace(tzinfo=UTC)

    @staticmethod
    def _default_now() -> datetime:
        return datetime.now(UTC)


__all__ = ["KeyValueStore", "SQLAlchemyKeyValueStore", "SessionScopeFactory"]
