"""Run warming jobs in an execution context associated with a region."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import logging
from typing import Protocol, TypeVar

import httpx

from edge_cache_warmer.regions import SUPPORTED_LOCATION_HINTS

T = TypeVar("T")

RegionJob = Callable[[httpx.AsyncClient], Awaitable[T]]

_logger = logging.getLogger("edge_cache_warmer.region_dispatcher")


class RegionDispatchError(RuntimeError):
    """Raised when the regional execution context cannot be established."""


class RegionDispatcher(Protocol):
    async def run_in_region(self, hint: str | None, job: RegionJob[T]) -> T: ...


class EgressProxyDispatcher:
    """Run jobs with an HTTP client whose traffic leaves from the hinted region.

    Hints mapped in ``proxies`` send every request through that regional
    egress proxy; other supported hints use a direct client.
    """

    def __init__(
        self,
        *,
        proxies: Mapping[str, str] | None = None,
        timeout_seconds: float = 30.0,
        supported_hints: frozenset[str] = SUPPORTED_LOCATION_HINTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")

        self._proxies = dict(proxies or {})
        self._timeout_seconds = timeout_seconds
        self._supported_hints = supported_hints
        self._transport = transport

    async def run_in_region(self, hint: str | None, job: RegionJob[T]) -> T:
        if not hint:
            raise RegionDispatchError("No location hint defined for region")
        if hint not in self._supported_hints:
            raise RegionDispatchError(f"Unsupported location hint: {hint}")

        client = self._build_client(hint)
        _logger.info(
            "region_dispatch_started",
            extra={"placement_hint": hint, "via_proxy": hint in self._proxies},
        )
        async with client:
            return await job(client)

    def _build_client(self, hint: str) -> httpx.AsyncClient:
        proxy = self._proxies.get(hint)
        try:
            return httpx.AsyncClient(
                proxy=proxy,
                transport=self._transport,
                timeout=httpx.Timeout(self._timeout_seconds),
                follow_redirects=True,
            )
        except (ValueError, httpx.InvalidURL) as exc:
            raise RegionDispatchError(
                f"Invalid egress configuration for location hint {hint}: {exc}"
            ) from exc


__all__ = ["EgressProxyDispatcher", "RegionDispatchError", "RegionDispatcher", "RegionJob"]
