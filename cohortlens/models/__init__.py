"""
Pydantic v2 data models for the segmentation engine.

Model Organization:
    - enums: Enumeration types for consistent classification
    - metrics: Records, pages, date ranges, results and trend models

Usage:
    >>> from cohortlens.models import DataPoint, MetricResult
    >>> result = MetricResult(count=3, data_points=[DataPoint(date=date(2026, 1, 1), count=3)])
    >>> result.to_response()
    {'count': 3, 'dataPoints': [{'date': '2026-01-01', 'count': 3}]}
"""

from .enums import (
    Breakdown,
    CountPolicy,
    DashboardSection,
    DatasetKind,
    Fallback,
    FailureKind,
    IdentityKind,
    MetricShape,
    PointScope,
    Polarity,
    RecordKind,
    TrendDirection,
    TrendStatus,
)
from .metrics import (
    BreakdownResult,
    CustomAttribute,
    DataPoint,
    DateRange,
    IdentitySet,
    MetricReport,
    MetricResult,
    Page,
    RawRecord,
    RecordQuery,
    RestrictedAccessSignal,
    TrendClassification,
    TrendThresholds,
)

__all__ = [
    # Enumerations
    "Breakdown",
    "CountPolicy",
    "DashboardSection",
    "DatasetKind",
    "Fallback",
    "FailureKind",
    "IdentityKind",
    "MetricShape",
    "PointScope",
    "Polarity",
    "RecordKind",
    "TrendDirection",
    "TrendStatus",
    # Models
    "BreakdownResult",
    "CustomAttribute",
    "DataPoint",
    "DateRange",
    "IdentitySet",
    "MetricReport",
    "MetricResult",
    "Page",
    "RawRecord",
    "RecordQuery",
    "RestrictedAccessSignal",
    "TrendClassification",
    "TrendThresholds",
]
