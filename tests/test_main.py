"""Tests for the FastAPI application factory and CLI entry points."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from edge_cache_warmer import main as main_module
from edge_cache_warmer.main import create_app


@pytest.mark.asyncio
async def test_health_check() -> None:
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_app_registers_warmer_routes() -> None:
    app = create_app()

    paths = {getattr(route, "path", None) for route in app.routes}

    assert {
        "/",
        "/status",
        "/history",
        "/trigger",
        "/reset-region",
        "/dashboard",
        "/api/scheduler",
        "/health",
    } <= paths


@pytest.mark.asyncio
async def test_routes_report_unavailable_before_lifespan_startup() -> None:
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/status")

    assert response.status_code == 503


@pytest.mark.parametrize(
    ("argv", "expected_full"),
    [([], False), (["--full"], True)],
)
def test_run_once_selects_mode_and_prints_summary(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    argv: list[str],
    expected_full: bool,
) -> None:
    calls: list[bool] = []

    async def fake_run_single_cycle(*, full: bool) -> str:
        calls.append(full)
        return '{"region": "Western North America"}'

    monkeypatch.setattr(main_module, "_run_single_cycle", fake_run_single_cycle)
    monkeypatch.setattr(main_module, "setup_logging", lambda settings: None)

    main_module.run_once(argv)

    assert calls == [expected_full]
    assert "Western North America" in capsys.readouterr().out
