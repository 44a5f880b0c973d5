"""Round-robin region selection persisted in the key-value store."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Final

from edge_cache_warmer.services.kv_store import KeyValueStore

ROTATION_CURSOR_KEY: Final[str] = "last_region_index"
NOT_STARTED_INDEX: Final[int] = -1

_logger = logging.getLogger("edge_cache_warmer.region_rotator")


class RegionRotator:
    """Select the next region to warm, one step per call."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        region_order: Sequence[str],
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._region_order = list(region_order)
        self._logger = logger or _logger

    @property
    def region_order(self) -> list[str]:
        return list(self._region_order)

    @property
    def first_region(self) -> str:
        self._ensure_regions()
        return self._region_order[0]

    async def next_region(self) -> str:
        """Advance the rotation cursor and return the region it now points at.

        Falls back to the first region when the cursor cannot be read or
        written, so the scheduler keeps running.
        """

        self._ensure_regions()
        try:
            last_index = self._parse_index(await self._store.get(ROTATION_CURSOR_KEY))
            next_index = (last_index + 1) % len(self._region_order)
            await self._store.put(ROTATION_CURSOR_KEY, str(next_index))
        except Exception:
            self._logger.exception(
                "region_rotation_cursor_unavailable",
                extra={"fallback_region": self._region_order[0]},
            )
            return self._region_order[0]

        return self._region_order[next_index]

    async def reset(self) -> None:
        """Point the cursor before the first region."""

        await self._store.put(ROTATION_CURSOR_KEY, str(NOT_STARTED_INDEX))
        self._logger.info("region_rotation_reset")

    def _parse_index(self, raw_value: str | None) -> int:
        if raw_value is None:
            return NOT_STARTED_INDEX

        try:
            return int(raw_value)
        except ValueError:
            self._logger.warning(
                "region_rotation_cursor_invalid",
                extra={"raw_value": raw_value},
            )
            return NOT_STARTED_INDEX

    def _ensure_regions(self) -> None:
        if not self._region_order:
            raise ValueError("No regions configured")


__all__ = ["NOT_STARTED_INDEX", "ROTATION_CURSOR_KEY", "RegionRotator"]
