"""
Dashboard section and breakdown endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from cohortlens.dependencies import get_dashboard
from cohortlens.engine import Dashboard
from cohortlens.models import Breakdown, DashboardSection
from cohortlens.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()
breakdown_router = APIRouter()


@router.get("/{section}")
async def get_section(
    section: DashboardSection,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    """
    Every card in a dashboard section, computed concurrently.

    Each card carries its own count/data points or error, so one restricted
    metric does not hide the others.
    """
    reports = await dashboard.section(section, date_range)
    return {
        "section": section.value,
        "metrics": [r.to_response() for r in reports],
    }


@breakdown_router.get("/{breakdown}")
async def get_breakdown(
    breakdown: Breakdown,
    date_range: Optional[str] = Query(default=None, alias="dateRange"),
    dashboard: Dashboard = Depends(get_dashboard),
):
    """Distribution chart data: labels, member counts and percentage shares."""
    result = await dashboard.breakdown(breakdown, date_range)
    return {
        "breakdown": result.breakdown,
        "dateRange": result.date_range,
        "labels": result.labels,
        "values": result.values,
        "shares": result.shares,
        "total": result.total,
    }
