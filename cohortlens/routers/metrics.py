"""
Metric card endpoints.

Wired to:
- Dashboard for range resolution and computation
- Metric catalog for lookups
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from cohortlens.dependencies import get_dashboard
from cohortlens.engine import Dashboard, MetricDefinition, get_definition
from cohortlens.engine.date_range import period_label
from cohortlens.engine.definitions import CATALOG
from cohortlens.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


def _lookup(metric_id: str) -> MetricDefinition:
    definition = get_definition(metric_id)
    if definition is None:
        raise HTTPException(status_code=404, detail=f"Unknown metric: {metric_id}")
    return definition


@router.get("")
async def list_metrics():
    """Catalog of every metric the dashboard can compute."""
    return {
        "metrics": [
            d.model_dump(
                mode="json",
                include={"id", "title", "description", "section", "polarity", "record_kind"},
            )
            for d in CATALOG
        ],
        "total": len(CATALOG),
    }


@router.get("/{metric_id}")
async def get_metric(
    metric_id: str,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    """
    Headline count and trend data points for one metric.

    Returns 403 with ``{error: RESTRICTED_<KIND>_DATA_ACCESS_DENIED}`` when
    the store has not granted access to protected data.
    """
    definition = _lookup(metric_id)
    resolved = dashboard.resolve(date_range)

    logger.info("metric_requested", metric=metric_id, date_range=resolved.token)

    result = await dashboard.computer.compute(definition, resolved)
    if not result.available:
        return JSONResponse(status_code=403, content=result.to_response())
    return result.to_response()


@router.get("/{metric_id}/trend")
async def get_metric_trend(
    metric_id: str,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    """Metric result plus its growth classification and indicator text."""
    definition = _lookup(metric_id)
    resolved = dashboard.resolve(date_range)

    report = await dashboard.report(definition, resolved)
    if not report.result.available:
        return JSONResponse(status_code=403, content=report.result.to_response())

    body = report.to_response()
    body.setdefault("trend", None)
    body["period"] = period_label(resolved.token)
    return body


@router.get("/{metric_id}/members")
async def get_metric_members(
    metric_id: str,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    """
    Drill-down: identifiers behind the headline count.

    Restricted access surfaces as 403 through the application's exception
    handler.
    """
    definition = _lookup(metric_id)
    resolved = dashboard.resolve(date_range)

    members = await dashboard.computer.resolve_members(definition, resolved)

    logger.info("metric_members_resolved", metric=metric_id, total=len(members))
    return {"ids": sorted(members), "total": len(members)}
