"""
Segmentation & trend-aggregation engine.

This package turns paginated customer and order records into dashboard
metrics:

- Date ranges: symbolic range tokens to concrete local-day intervals
- Collection: exhaustive cursor pagination with a safety cap
- Classification: records to deduplicated identity sets
- Computation: declarative metric definitions run through one pipeline
- Trends: percentage change and status badges with per-metric polarity
- Failures: restricted-access refusals kept apart from ordinary errors
"""

__all__ = [
    "Dashboard",
    "MetricComputer",
    "MetricDefinition",
    "PagedCollector",
    "RestrictedAccessError",
    "SourceError",
    "evaluate_trend",
    "get_definition",
    "resolve_date_range",
]

from cohortlens.engine.collector import PagedCollector
from cohortlens.engine.computer import MetricComputer
from cohortlens.engine.dashboard import Dashboard
from cohortlens.engine.date_range import resolve_date_range
from cohortlens.engine.definitions import MetricDefinition, get_definition
from cohortlens.engine.failures import RestrictedAccessError, SourceError
from cohortlens.engine.trend import evaluate_trend
