"""
Dashboard sections and breakdown charts.

A section computes every card in its group concurrently, one task per
metric; each card carries its own result, error and trend. A breakdown
turns the member counts of a fixed metric group into a distribution.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import structlog

from cohortlens.config import Settings, get_settings
from cohortlens.engine.computer import MetricComputer
from cohortlens.engine.date_range import period_label, resolve_date_range
from cohortlens.engine.definitions import BREAKDOWNS, SECTIONS, MetricDefinition, get_definition
from cohortlens.engine.failures import RestrictedAccessError, SourceError
from cohortlens.engine.trend import evaluate_trend
from cohortlens.models import Breakdown, BreakdownResult, DashboardSection, DateRange, MetricReport

logger = structlog.get_logger()

SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"


class Dashboard:
    """Entry point used by the API layer."""

    def __init__(
        self,
        computer: MetricComputer,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.computer = computer
        self.settings = settings or get_settings()
        self.clock = clock

    def resolve(self, token: Optional[str]) -> DateRange:
        """Resolve a range token in the configured timezone."""
        return resolve_date_range(
            token or self.settings.default_date_range,
            now=self.clock() if self.clock else None,
            tz=ZoneInfo(self.settings.timezone),
        )

    async def report(self, definition: MetricDefinition, date_range: DateRange) -> MetricReport:
        """
        Compute one card.

        Raises:
            SourceError: When a sub-query with a RAISE fallback fails
        """
        result = await self.computer.compute(definition, date_range)
        trend = None
        if result.available:
            trend = evaluate_trend(
                result.data_points,
                definition.polarity,
                definition.thresholds,
                period_label=period_label(date_range.token),
            )
        return MetricReport(
            metric_id=definition.id,
            title=definition.title,
            result=result,
            trend=trend,
        )

    async def section(self, section: DashboardSection, token: Optional[str]) -> list[MetricReport]:
        """Every card in ``section``; a failing card never fails its siblings."""
        date_range = self.resolve(token)
        definitions = [get_definition(metric_id) for metric_id in SECTIONS[section]]

        outcomes = await asyncio.gather(
            *(self.report(d, date_range) for d in definitions),
            return_exceptions=True,
        )

        reports = []
        for definition, outcome in zip(definitions, outcomes):
            if isinstance(outcome, SourceError):
                logger.error(
                    "section_metric_failed",
                    section=section.value,
                    metric=definition.id,
                    error=str(outcome),
                )
                reports.append(
                    MetricReport(
                        metric_id=definition.id,
                        title=definition.title,
                        failure=SOURCE_UNAVAILABLE,
                    )
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                reports.append(outcome)

        logger.info(
            "section_computed",
            section=section.value,
            date_range=date_range.token,
            unavailable=[r.metric_id for r in reports if r.result is None or not r.result.available],
        )
        return reports

    async def breakdown(self, breakdown: Breakdown, token: Optional[str]) -> BreakdownResult:
        """
        Distribution of a breakdown's member counts.

        A generic failure zeroes only the affected slice.

        Raises:
            RestrictedAccessError: If any member metric is restricted
        """
        date_range = self.resolve(token)
        members = BREAKDOWNS[breakdown]

        outcomes = await asyncio.gather(
            *(
                self.computer.resolve_members(get_definition(metric_id), date_range)
                for _, metric_id in members
            ),
            return_exceptions=True,
        )

        for outcome in outcomes:
            if isinstance(outcome, RestrictedAccessError):
                raise outcome

        values = []
        for (label, metric_id), outcome in zip(members, outcomes):
            if isinstance(outcome, SourceError):
                logger.warning(
                    "breakdown_slice_failed",
                    breakdown=breakdown.value,
                    metric=metric_id,
                    error=str(outcome),
                )
                values.append(0)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                values.append(len(outcome))

        total = sum(values)
        shares = [round(v / total * 100, 1) if total else 0.0 for v in values]

        logger.info(
            "breakdown_computed",
            breakdown=breakdown.value,
            date_range=date_range.token,
            total=total,
        )
        return BreakdownResult(
            breakdown=breakdown.value,
            date_range=date_range.token,
            labels=[label for label, _ in members],
            values=values,
            shares=shares,
        )
