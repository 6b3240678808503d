"""
Enumeration types for the segmentation & trend-aggregation engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class RecordKind(str, Enum):
    """Entity collection a metric paginates over."""

    ORDER = "order"
    CUSTOMER = "customer"


class DatasetKind(str, Enum):
    """
    Protected dataset named by a restricted-access failure.

    BOTH is reported when the source refuses a query on the grounds of
    customer and order data at once.
    """

    CUSTOMER = "customer"
    ORDER = "order"
    BOTH = "both"


class IdentityKind(str, Enum):
    """What an identity set is deduplicated by."""

    CUSTOMER = "customer"
    ORDER = "order"


class Polarity(str, Enum):
    """Whether growth in a metric is favorable."""

    INCREASE_IS_GOOD = "increase_is_good"
    INCREASE_IS_BAD = "increase_is_bad"


class TrendStatus(str, Enum):
    """Qualitative status badge for a trend pair."""

    GOOD = "good"
    ATTENTION = "attention"
    ISSUE = "issue"


class TrendDirection(str, Enum):
    """Sign of the change between the two trend points."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class MetricShape(str, Enum):
    """
    Classification strategy of a metric.

    SINGLE_PASS metrics test each record's own fields. RETURNING and
    INACTIVE are cross-referential and need two independently collected
    record slices.
    """

    SINGLE_PASS = "single_pass"
    RETURNING = "returning"
    INACTIVE = "inactive"


class CountPolicy(str, Enum):
    """Where a metric's headline count comes from."""

    RANGE = "range"  # full-range identity set
    LAST_POINT = "last_point"  # count of the final data point
    ALL_TIME = "all_time"  # unbounded identity set (no date filter)


class PointScope(str, Enum):
    """Temporal scope of each trend data point."""

    WINDOW = "window"  # [range start, instant]
    HISTORY = "history"  # [-inf, instant]


class Fallback(str, Enum):
    """Degradation applied when a sub-query fails with a generic error."""

    ZERO = "zero"
    RAISE = "raise"
    ESTIMATE = "estimate"


class FailureKind(str, Enum):
    """Two-tier source failure taxonomy."""

    RESTRICTED = "restricted"
    GENERIC = "generic"


class DashboardSection(str, Enum):
    """Dashboard card groups."""

    CUSTOMERS_OVERVIEW = "customers-overview"
    ORDER_BEHAVIOR = "order-behavior"
    ENGAGEMENT_PATTERNS = "engagement-patterns"
    PURCHASE_TIMING = "purchase-timing"


class Breakdown(str, Enum):
    """Distribution charts built from a fixed group of metrics."""

    CUSTOMER_SEGMENTATION = "customer-segmentation"
    BEHAVIORAL_BREAKDOWN = "behavioral-breakdown"
