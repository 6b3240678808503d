"""
Declarative metric catalog.

Each dashboard card is one ``MetricDefinition``: which records to page
through, which predicate qualifies them, how the headline count and the
trend points are scoped, and how each sub-query degrades on a generic
failure. ``MetricComputer`` runs every definition through the same
pipeline.
"""

from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cohortlens.engine import classifier
from cohortlens.models import (
    Breakdown,
    CountPolicy,
    DashboardSection,
    Fallback,
    IdentityKind,
    MetricShape,
    PointScope,
    Polarity,
    RawRecord,
    RecordKind,
    TrendThresholds,
)

FIRST_PAGE_CAP = 250
INACTIVE_ESTIMATE_RATIO = 0.7


class MetricDefinition(BaseModel):
    """
    How one metric is collected, classified and degraded.

    Caps left as None use the configured ``default_record_cap``.
    ``reference_cap`` bounds the second slice of cross-referential metrics
    (orders before the range for RETURNING, the customer list for INACTIVE).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    section: DashboardSection
    record_kind: RecordKind
    identity: IdentityKind
    predicate: Callable[[RawRecord], bool] = Field(default=classifier.always, exclude=True)
    polarity: Polarity = Polarity.INCREASE_IS_GOOD
    thresholds: TrendThresholds = Field(default_factory=TrendThresholds)
    shape: MetricShape = MetricShape.SINGLE_PASS
    count_policy: CountPolicy = CountPolicy.RANGE
    point_scope: PointScope = PointScope.HISTORY
    range_cap: Optional[int] = Field(default=None, ge=1)
    point_cap: Optional[int] = Field(default=None, ge=1)
    reference_cap: Optional[int] = Field(default=None, ge=1)
    count_fallback: Fallback = Fallback.ZERO
    point_fallback: Fallback = Fallback.ZERO
    estimate_ratio: Optional[float] = Field(default=None, gt=0, le=1)

    @model_validator(mode="after")
    def check_estimate(self) -> "MetricDefinition":
        uses_estimate = Fallback.ESTIMATE in (self.count_fallback, self.point_fallback)
        if uses_estimate and self.shape is not MetricShape.INACTIVE:
            raise ValueError(f"{self.id}: ESTIMATE fallback only applies to inactive metrics")
        if uses_estimate and self.estimate_ratio is None:
            raise ValueError(f"{self.id}: ESTIMATE fallback needs an estimate_ratio")
        return self


# =============================================================================
# Catalog
# =============================================================================

_CUSTOMERS = DashboardSection.CUSTOMERS_OVERVIEW
_ORDERS = DashboardSection.ORDER_BEHAVIOR
_ENGAGEMENT = DashboardSection.ENGAGEMENT_PATTERNS
_TIMING = DashboardSection.PURCHASE_TIMING


def _order_metric(metric_id: str, title: str, description: str, predicate, **overrides):
    """Order-count card scoped to the range with cumulative history points."""
    options = dict(
        section=_ORDERS,
        record_kind=RecordKind.ORDER,
        identity=IdentityKind.ORDER,
        range_cap=FIRST_PAGE_CAP,
        point_cap=FIRST_PAGE_CAP,
    )
    options.update(overrides)
    return MetricDefinition(
        id=metric_id, title=title, description=description, predicate=predicate, **options
    )


def _timing_metric(metric_id: str, title: str, description: str, predicate):
    return MetricDefinition(
        id=metric_id,
        title=title,
        description=description,
        section=_TIMING,
        record_kind=RecordKind.ORDER,
        identity=IdentityKind.ORDER,
        predicate=predicate,
    )


def _engagement_metric(metric_id: str, title: str, description: str, predicate, **overrides):
    """Customer-identity card over fully paginated range slices."""
    options = dict(
        section=_ENGAGEMENT,
        record_kind=RecordKind.ORDER,
        identity=IdentityKind.CUSTOMER,
        point_scope=PointScope.WINDOW,
        count_fallback=Fallback.RAISE,
    )
    options.update(overrides)
    return MetricDefinition(
        id=metric_id, title=title, description=description, predicate=predicate, **options
    )


CATALOG: tuple[MetricDefinition, ...] = (
    # Customers overview
    MetricDefinition(
        id="total-customers",
        title="Total Customers",
        description="Every customer on record, regardless of the selected range",
        section=_CUSTOMERS,
        record_kind=RecordKind.CUSTOMER,
        identity=IdentityKind.CUSTOMER,
        count_policy=CountPolicy.ALL_TIME,
        count_fallback=Fallback.RAISE,
        point_fallback=Fallback.RAISE,
    ),
    MetricDefinition(
        id="new-customers",
        title="New Customers",
        description="Customers whose account was created in the selected range",
        section=_CUSTOMERS,
        record_kind=RecordKind.CUSTOMER,
        identity=IdentityKind.CUSTOMER,
        count_fallback=Fallback.RAISE,
        point_fallback=Fallback.RAISE,
    ),
    MetricDefinition(
        id="returning-customers",
        title="Returning Customers",
        description="Customers who ordered in the range and had ordered before it",
        section=_CUSTOMERS,
        record_kind=RecordKind.ORDER,
        identity=IdentityKind.CUSTOMER,
        shape=MetricShape.RETURNING,
        range_cap=FIRST_PAGE_CAP,
        point_cap=FIRST_PAGE_CAP,
    ),
    MetricDefinition(
        id="inactive-customers",
        title="Inactive Customers",
        description="Customers without an order in the selected range",
        section=_CUSTOMERS,
        record_kind=RecordKind.ORDER,
        identity=IdentityKind.CUSTOMER,
        polarity=Polarity.INCREASE_IS_BAD,
        shape=MetricShape.INACTIVE,
        range_cap=FIRST_PAGE_CAP,
        point_cap=FIRST_PAGE_CAP,
        count_fallback=Fallback.ESTIMATE,
        point_fallback=Fallback.ESTIMATE,
        estimate_ratio=INACTIVE_ESTIMATE_RATIO,
    ),
    # Purchase & order behavior
    _order_metric(
        "cod-orders",
        "COD Orders",
        "Orders awaiting cash-on-delivery style payment",
        classifier.financial_status_in(classifier.COD_STATUSES),
    ),
    _order_metric(
        "prepaid-orders",
        "Prepaid Orders",
        "Orders paid in full at checkout",
        classifier.financial_status_in(classifier.PREPAID_STATUSES),
    ),
    _order_metric(
        "cancelled-orders",
        "Cancelled Orders",
        "Orders cancelled after placement",
        classifier.is_cancelled,
        polarity=Polarity.INCREASE_IS_BAD,
    ),
    _order_metric(
        "abandoned-carts",
        "Abandoned Carts",
        "Orders that reached payment but were never completed",
        classifier.is_abandoned_checkout,
        polarity=Polarity.INCREASE_IS_BAD,
        count_policy=CountPolicy.LAST_POINT,
        point_scope=PointScope.WINDOW,
        range_cap=None,
        point_cap=None,
    ),
    # Engagement patterns
    _engagement_metric(
        "discount-users",
        "Discount Users",
        "Customers who applied a discount in the selected range",
        classifier.has_discount,
        count_policy=CountPolicy.LAST_POINT,
        count_fallback=Fallback.ZERO,
    ),
    _engagement_metric(
        "wishlist-users",
        "Wishlist Users",
        "Customers whose orders mention a wishlist",
        classifier.mentions("wishlist"),
    ),
    _engagement_metric(
        "reviewers",
        "Reviewers",
        "Customers whose orders mention a review",
        classifier.mentions("review"),
    ),
    _engagement_metric(
        "email-subscribers",
        "Email Subscribers",
        "Customers created in the range who subscribed to e-mail marketing",
        classifier.is_email_subscriber,
        record_kind=RecordKind.CUSTOMER,
    ),
    # Purchase timing (UTC hour of the order)
    _timing_metric(
        "morning-purchases",
        "Morning Purchases",
        "Orders placed between 06:00 and 12:00 UTC",
        classifier.created_between_hours(6, 12),
    ),
    _timing_metric(
        "afternoon-purchases",
        "Afternoon Purchases",
        "Orders placed between 12:00 and 18:00 UTC",
        classifier.created_between_hours(12, 18),
    ),
    _timing_metric(
        "evening-purchases",
        "Evening Purchases",
        "Orders placed between 18:00 and midnight UTC",
        classifier.created_between_hours(18, 24),
    ),
    _timing_metric(
        "weekend-purchases",
        "Weekend Purchases",
        "Orders placed on a Saturday or Sunday (UTC)",
        classifier.created_on_weekend,
    ),
)

METRICS: dict[str, MetricDefinition] = {d.id: d for d in CATALOG}

SECTIONS: dict[DashboardSection, tuple[str, ...]] = {
    section: tuple(d.id for d in CATALOG if d.section is section) for section in DashboardSection
}

# Breakdown -> (chart label, metric id)
BREAKDOWNS: dict[Breakdown, tuple[tuple[str, str], ...]] = {
    Breakdown.CUSTOMER_SEGMENTATION: (
        ("COD Orders", "cod-orders"),
        ("Prepaid Orders", "prepaid-orders"),
        ("Cancelled Orders", "cancelled-orders"),
        ("Abandoned Carts", "abandoned-carts"),
    ),
    Breakdown.BEHAVIORAL_BREAKDOWN: (
        ("Discount Users", "discount-users"),
        ("Wishlist Users", "wishlist-users"),
        ("Reviewers", "reviewers"),
        ("Email Subscribers", "email-subscribers"),
    ),
}


def get_definition(metric_id: str) -> Optional[MetricDefinition]:
    """Look up a metric by id; None if the catalog has no such metric."""
    return METRICS.get(metric_id)
