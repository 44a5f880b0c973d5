"""Tests for running warming jobs inside a regional HTTP client."""

from __future__ import annotations

import httpx
import pytest

from edge_cache_warmer.services.region_dispatcher import (
    EgressProxyDispatcher,
    RegionDispatchError,
)


def _handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"cf-ray": "abc-AMS"})


async def _fetch_status(client: httpx.AsyncClient) -> int:
    response = await client.get("https://example.com/")
    return response.status_code


@pytest.mark.asyncio
async def test_supported_hint_runs_job_with_client() -> None:
    dispatcher = EgressProxyDispatcher(transport=httpx.MockTransport(_handler))

    assert await dispatcher.run_in_region("weur", _fetch_status) == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("hint", [None, ""])
async def test_missing_hint_is_fatal(hint: str | None) -> None:
    dispatcher = EgressProxyDispatcher(transport=httpx.MockTransport(_handler))

    with pytest.raises(RegionDispatchError, match="No location hint"):
        await dispatcher.run_in_region(hint, _fetch_status)


@pytest.mark.asyncio
async def test_unsupported_hint_is_fatal() -> None:
    dispatcher = EgressProxyDispatcher(transport=httpx.MockTransport(_handler))

    with pytest.raises(RegionDispatchError, match="antarctica"):
        await dispatcher.run_in_region("antarctica", _fetch_status)


@pytest.mark.asyncio
async def test_invalid_proxy_is_reported_as_dispatch_error() -> None:
    dispatcher = EgressProxyDispatcher(proxies={"weur": "ftp://proxy.example:21"})

    with pytest.raises(RegionDispatchError, match="weur"):
        await dispatcher.run_in_region("weur", _fetch_status)


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ValueError, match="greater than zero"):
        EgressProxyDispatcher(timeout_seconds=0)
