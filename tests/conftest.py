"""Shared test configuration and fakes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_JOBSTORE_URL", "sqlite://")
os.environ.setdefault("SITEMAP_URLS", "[]")


class InMemoryKeyValueStore:
    """Dict-backed key-value store with the same listing order as SQLite."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.put_calls: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int | None = None,
    ) -> None:
        self.values[key] = value
        self.ttls[key] = expiration_ttl
        self.put_calls.append((key, value))

    async def list_keys(self, *, prefix: str, limit: int) -> list[str]:
        keys = sorted(
            (key for key in self.values if key.startswith(prefix)), reverse=True
        )
        return keys[:limit]


class SteppingClock:
    """Return a strictly increasing UTC time on every call."""

    def __init__(
        self,
        start: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self._current = start
        self._step = step

    def __call__(self) -> datetime:
        value = self._current
        self._current += self._step
        return value


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()
