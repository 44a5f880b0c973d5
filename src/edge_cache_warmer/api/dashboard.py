"""Server-rendered dashboard route."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, Response
from fastapi.templating import Jinja2Templates

from edge_cache_warmer.api.warmer import get_cycle_service
from edge_cache_warmer.schemas import RunSummary
from edge_cache_warmer.services.result_store import format_rate
from edge_cache_warmer.services.warming_cycle import WarmingCycleService

router = APIRouter(tags=["dashboard"])

RECENT_RUNS_PER_REGION = 30


@dataclass(slots=True, frozen=True)
class LocationTotals:
    """Edge-location verification aggregated over many runs."""

    matched: int
    mismatched: int
    match_rate: str
    region_matched: int
    region_mismatched: int
    region_match_rate: str
    breakdown: list[tuple[str, int]]


def summarize_locations(results: list[RunSummary]) -> LocationTotals:
    matched = sum(result.location_matched for result in results)
    mismatched = sum(result.location_mismatched for result in results)
    region_matched = sum(result.region_matched for result in results)
    region_mismatched = sum(result.region_mismatched for result in results)
    breakdown: Counter[str] = Counter()
    for result in results:
        breakdown.update(result.location_breakdown)

    return LocationTotals(
        matched=matched,
        mismatched=mismatched,
        match_rate=format_rate(matched, matched + mismatched),
        region_matched=region_matched,
        region_mismatched=region_mismatched,
        region_match_rate=format_rate(
            region_matched, region_matched + region_mismatched
        ),
        breakdown=breakdown.most_common(),
    )


def _get_templates(request: Request) -> Jinja2Templates:
    templates = request.app.state.templates
    if isinstance(templates, Jinja2Templates):
        return templates
    raise RuntimeError("Template engine is not configured on application state.")


@router.get(
    "/dashboard", response_class=HTMLResponse, status_code=status.HTTP_200_OK
)
async def dashboard(
    request: Request,
    cycle_service: WarmingCycleService = Depends(get_cycle_service),
) -> Response:
    templates = _get_templates(request)
    result_store = cycle_service.result_store
    status_snapshot = await result_store.get_status()
    history = await result_store.get_history(limit=RECENT_RUNS_PER_REGION)

    recent_runs = {
        label: [result for result in history.results if result.region == label]
        for label in cycle_service.regions.labels
    }
    response = templates.TemplateResponse(
        request=request,
        name="dashboard.html",
        context={
            "page_title": "Edge Cache Warmer Dashboard",
            "status": status_snapshot,
            "totals": history.totals,
            "locations": summarize_locations(history.results),
            "recent_runs": recent_runs,
            "options": cycle_service.options,
            "region_count": len(cycle_service.regions),
        },
    )
    response.headers["Cache-Control"] = "no-cache"
    return response


__all__ = ["LocationTotals", "router", "summarize_locations"]
