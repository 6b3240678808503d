"""
Metric computation pipeline.

Runs one ``MetricDefinition`` against a resolved ``DateRange``:

1. Headline count from the full-range qualification (or the all-time set,
   or the last data point, per the definition's count policy).
2. One cumulative-to-date data point per sample instant.
3. A restricted-access refusal from any required sub-query makes the
   whole metric unavailable. A generic failure degrades only the affected
   count or data point to the definition's own fallback.

Within one metric the sub-queries run sequentially. Everything is scoped
to the call; nothing is cached.
"""

import math
from datetime import datetime
from typing import Optional

import structlog

from cohortlens.config import Settings, get_settings
from cohortlens.connectors.base import RecordSource
from cohortlens.engine.classifier import (
    classify,
    classify_inactive,
    classify_repeat_buyers,
    classify_returning,
)
from cohortlens.engine.collector import PagedCollector
from cohortlens.engine.definitions import MetricDefinition
from cohortlens.engine.failures import RestrictedAccessError, SourceError
from cohortlens.models import (
    CountPolicy,
    DataPoint,
    DateRange,
    Fallback,
    IdentitySet,
    MetricResult,
    MetricShape,
    PointScope,
    RawRecord,
    RecordKind,
    RecordQuery,
)
from cohortlens.models.metrics import MILLISECOND

logger = structlog.get_logger()


class MetricComputer:
    """
    Computes metric results and member sets from a record source.

    One instance may serve concurrent computations; per-call state lives
    on the stack.
    """

    def __init__(self, source: RecordSource, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.collector = PagedCollector(
            source,
            page_size=self.settings.page_size,
            timeout=self.settings.collect_timeout_seconds,
        )

    async def compute(self, definition: MetricDefinition, date_range: DateRange) -> MetricResult:
        """
        Compute count and trend points for one metric.

        Args:
            definition: Metric to compute
            date_range: Resolved range

        Returns:
            MetricResult with count and data points, or with ``error`` set
            when the source refused protected data

        Raises:
            SourceError: When a sub-query with a RAISE fallback fails
        """
        log = logger.bind(metric=definition.id, date_range=date_range.token)

        try:
            count = None
            if definition.count_policy is not CountPolicy.LAST_POINT:
                count = await self._count(definition, date_range)

            data_points = []
            for instant in date_range.sample_instants:
                value = await self._point(definition, date_range, instant)
                data_points.append(DataPoint(date=instant.date(), count=value))

            if count is None:
                count = data_points[-1].count
        except RestrictedAccessError as e:
            log.warning(
                "metric_unavailable",
                sentinel=e.signal.sentinel,
                dataset_kind=e.signal.dataset_kind.value,
            )
            return MetricResult(error=e.signal)

        log.info("metric_computed", count=count, points=[p.count for p in data_points])
        return MetricResult(count=count, data_points=data_points)

    async def resolve_members(
        self, definition: MetricDefinition, date_range: DateRange
    ) -> IdentitySet:
        """
        Identity set behind a metric's headline count.

        No fallbacks apply: both restricted and generic failures propagate.

        Raises:
            RestrictedAccessError: When the source refuses protected data
            SourceError: On any other failure
        """
        if definition.count_policy is CountPolicy.LAST_POINT:
            return await self._point_set(definition, date_range, date_range.end)
        return await self._count_set(definition, date_range)

    # =========================================================================
    # Headline count
    # =========================================================================

    async def _count(self, definition: MetricDefinition, date_range: DateRange) -> int:
        if definition.shape is MetricShape.INACTIVE:
            return await self._inactive_value(
                definition,
                customers_to=None,
                orders_from=date_range.start,
                orders_to=date_range.end,
                orders_cap=self._cap(definition.range_cap),
                fallback=definition.count_fallback,
            )
        try:
            return len(await self._count_set(definition, date_range))
        except SourceError as e:
            return self._degrade(definition, definition.count_fallback, "count", e)

    async def _count_set(self, definition: MetricDefinition, date_range: DateRange) -> IdentitySet:
        if definition.shape is MetricShape.RETURNING:
            return await self._returning_set(definition, date_range)

        if definition.shape is MetricShape.INACTIVE:
            return await self._inactive_set(
                definition,
                customers_to=None,
                orders_from=date_range.start,
                orders_to=date_range.end,
                orders_cap=self._cap(definition.range_cap),
            )

        if definition.count_policy is CountPolicy.ALL_TIME:
            created_from = created_to = None
        else:
            created_from, created_to = date_range.start, date_range.end
        return await self._single_pass_set(
            definition, created_from, created_to, self._cap(definition.range_cap)
        )

    async def _returning_set(
        self, definition: MetricDefinition, date_range: DateRange
    ) -> IdentitySet:
        in_range = await self._collect(
            definition,
            RecordKind.ORDER,
            date_range.start,
            date_range.end,
            self._cap(definition.range_cap),
        )
        try:
            before_range = await self._collect(
                definition,
                RecordKind.ORDER,
                None,
                date_range.start - MILLISECOND,
                self._cap(definition.reference_cap),
            )
        except SourceError as e:
            # No prior history means nobody qualifies as returning
            logger.warning("prior_orders_unavailable", metric=definition.id, error=str(e))
            before_range = []
        return classify_returning(in_range, before_range)

    # =========================================================================
    # Trend points
    # =========================================================================

    async def _point(
        self, definition: MetricDefinition, date_range: DateRange, instant: datetime
    ) -> int:
        if definition.shape is MetricShape.INACTIVE:
            return await self._inactive_value(
                definition,
                customers_to=instant,
                orders_from=self._point_start(definition, date_range),
                orders_to=instant,
                orders_cap=self._cap(definition.point_cap),
                fallback=definition.point_fallback,
            )
        try:
            return len(await self._point_set(definition, date_range, instant))
        except SourceError as e:
            return self._degrade(definition, definition.point_fallback, "data_point", e)

    async def _point_set(
        self, definition: MetricDefinition, date_range: DateRange, instant: datetime
    ) -> IdentitySet:
        created_from = self._point_start(definition, date_range)
        cap = self._cap(definition.point_cap)

        if definition.shape is MetricShape.RETURNING:
            orders = await self._collect(definition, RecordKind.ORDER, created_from, instant, cap)
            return classify_repeat_buyers(orders)

        if definition.shape is MetricShape.INACTIVE:
            return await self._inactive_set(
                definition,
                customers_to=instant,
                orders_from=created_from,
                orders_to=instant,
                orders_cap=cap,
            )

        return await self._single_pass_set(definition, created_from, instant, cap)

    # =========================================================================
    # Inactive customers
    # =========================================================================

    async def _customers_up_to(
        self,
        definition: MetricDefinition,
        customers_to: Optional[datetime],
    ) -> list[RawRecord]:
        return await self._collect(
            definition,
            RecordKind.CUSTOMER,
            None,
            customers_to,
            self._cap(definition.reference_cap),
        )

    async def _inactive_set(
        self,
        definition: MetricDefinition,
        customers_to: Optional[datetime],
        orders_from: Optional[datetime],
        orders_to: Optional[datetime],
        orders_cap: int,
    ) -> IdentitySet:
        customers = await self._customers_up_to(definition, customers_to)
        orders = await self._collect(
            definition, RecordKind.ORDER, orders_from, orders_to, orders_cap
        )
        return classify_inactive(customers, orders)

    async def _inactive_value(
        self,
        definition: MetricDefinition,
        customers_to: Optional[datetime],
        orders_from: Optional[datetime],
        orders_to: Optional[datetime],
        orders_cap: int,
        fallback: Fallback,
    ) -> int:
        """
        Inactive count with its two-stage degradation.

        Losing the customer list leaves nothing to subtract from, so it
        degrades to zero. Losing only the orders applies ``fallback``; for
        ESTIMATE that is a fixed share of the customer total.
        """
        try:
            customers = await self._customers_up_to(definition, customers_to)
        except SourceError as e:
            if fallback is Fallback.RAISE:
                raise
            logger.warning("inactive_customers_unavailable", metric=definition.id, error=str(e))
            return 0

        try:
            orders = await self._collect(
                definition, RecordKind.ORDER, orders_from, orders_to, orders_cap
            )
        except SourceError as e:
            if fallback is Fallback.ESTIMATE:
                estimate = math.ceil(len(customers) * definition.estimate_ratio)
                logger.warning(
                    "inactive_customers_estimated",
                    metric=definition.id,
                    total_customers=len(customers),
                    estimate=estimate,
                    error=str(e),
                )
                return estimate
            return self._degrade(definition, fallback, "inactive_orders", e)

        return len(classify_inactive(customers, orders))

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _single_pass_set(
        self,
        definition: MetricDefinition,
        created_from: Optional[datetime],
        created_to: Optional[datetime],
        cap: int,
    ) -> IdentitySet:
        records = await self._collect(
            definition, definition.record_kind, created_from, created_to, cap
        )
        return classify(records, definition.predicate, definition.identity, definition.record_kind)

    async def _collect(
        self,
        definition: MetricDefinition,
        kind: RecordKind,
        created_from: Optional[datetime],
        created_to: Optional[datetime],
        cap: int,
    ) -> list[RawRecord]:
        query = RecordQuery(kind=kind, created_from=created_from, created_to=created_to)
        return await self.collector.collect(query, cap=cap, feature=definition.id)

    @staticmethod
    def _point_start(definition: MetricDefinition, date_range: DateRange) -> Optional[datetime]:
        if definition.point_scope is PointScope.WINDOW:
            return date_range.start
        return None

    def _cap(self, cap: Optional[int]) -> int:
        return cap if cap is not None else self.settings.default_record_cap

    @staticmethod
    def _degrade(
        definition: MetricDefinition, fallback: Fallback, part: str, error: SourceError
    ) -> int:
        if fallback is Fallback.RAISE:
            logger.error("metric_query_failed", metric=definition.id, part=part, error=str(error))
            raise error
        logger.warning(
            "metric_degraded",
            metric=definition.id,
            part=part,
            fallback=fallback.value,
            error=str(error),
        )
        return 0
