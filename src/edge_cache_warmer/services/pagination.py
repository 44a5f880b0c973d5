"""Per-region pagination offsets into the URL catalog."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging

from edge_cache_warmer.services.kv_store import KeyValueStore

PROGRESS_KEY_PREFIX = "progress_"

_logger = logging.getLogger("edge_cache_warmer.pagination")


def progress_key(region: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}{region}"


@dataclass(slots=True, frozen=True)
class CatalogSlice:
    """One page of the catalog and the offset to persist after warming it."""

    region: str
    urls: list[str]
    start_offset: int
    end_offset: int
    total_urls: int
    new_offset: int
    is_final_page_of_cycle: bool

    @property
    def progress_percent(self) -> str:
        if self.total_urls == 0:
            return "100.0"
        return f"{self.end_offset / self.total_urls * 100:.1f}"


class PaginationCursor:
    """Track how far each region has progressed through the catalog."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._logger = logger or _logger

    async def current_offset(self, region: str) -> int:
        raw_value = await self._store.get(progress_key(region))
        if raw_value is None:
            return 0

        try:
            offset = int(raw_value)
        except ValueError:
            self._logger.warning(
                "pagination_offset_invalid",
                extra={"region": region, "raw_value": raw_value},
            )
            return 0
        return max(offset, 0)

    async def plan_slice(
        self,
        region: str,
        catalog: Sequence[str],
        page_size: int,
    ) -> CatalogSlice:
        """Compute the next slice without moving the persisted offset."""

        if page_size <= 0:
            raise ValueError("page_size must be greater than zero")

        total_urls = len(catalog)
        offset = await self.current_offset(region)
        if offset >= total_urls and total_urls > 0:
            # The catalog shrank below the stored offset; start a new cycle.
            self._logger.info(
                "pagination_offset_beyond_catalog",
                extra={"region": region, "offset": offset, "total_urls": total_urls},
            )
            offset = 0

        end_index = min(offset + page_size, total_urls)
        is_final_page = end_index >= total_urls
        return CatalogSlice(
            region=region,
            urls=list(catalog[offset:end_index]),
            start_offset=offset,
            end_offset=end_index,
            total_urls=total_urls,
            new_offset=0 if is_final_page else end_index,
            is_final_page_of_cycle=is_final_page,
        )

    async def commit(self, catalog_slice: CatalogSlice) -> None:
        """Persist the offset computed for ``catalog_slice``."""

        await self._store.put(
            progress_key(catalog_slice.region), str(catalog_slice.new_offset)
        )
        if catalog_slice.is_final_page_of_cycle:
            self._logger.info(
                "pagination_cycle_completed",
                extra={
                    "region": catalog_slice.region,
                    "total_urls": catalog_slice.total_urls,
                },
            )

    async def next_slice(
        self,
        region: str,
        catalog: Sequence[str],
        page_size: int,
    ) -> CatalogSlice:
        catalog_slice = await self.plan_slice(region, catalog, page_size)
        await self.commit(catalog_slice)
        return catalog_slice


__all__ = ["CatalogSlice", "PROGRESS_KEY_PREFIX", "PaginationCursor", "progress_key"]
