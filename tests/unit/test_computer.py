"""
Unit tests for MetricComputer.

The sample data in conftest places the 30-day window at
2026-02-16 00:00 .. 2026-03-18 23:59:59.999 UTC with:

    orders:    c1 (-45d PAID), c1 (-3d PENDING, gateway), c2 (-10d discount),
               c3 (-2d AUTHORIZED, wishlist tag), c4 (-1d cancelled, review note),
               guest (-5d PAID); all at 15:30 UTC
    customers: c1 (-90d, subscribed), c2 (-20d, newsletter tag), c3 (-4d),
               c4 (-2d, no e-mail), c5 (-1d)
"""

from datetime import date, timedelta

import pytest

from cohortlens.engine.computer import MetricComputer
from cohortlens.engine.date_range import resolve_date_range
from cohortlens.engine.definitions import MetricDefinition, get_definition
from cohortlens.engine.failures import RestrictedAccessError, SourceError
from cohortlens.models import (
    DashboardSection,
    DatasetKind,
    IdentityKind,
    MetricResult,
    RecordKind,
)
from cohortlens.models.metrics import MILLISECOND
from tests.conftest import NOW, InMemorySource, make_order

PROTECTED_CUSTOMER = "Access to protected customer data is not approved for this app"
PROTECTED_ORDER = "This app is not approved to access the Order object"


class TestComputeSampleData:
    """Expected counts and points for every catalog metric."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metric_id,count,points",
        [
            ("total-customers", 5, [1, 5]),
            ("new-customers", 4, [1, 5]),
            ("returning-customers", 1, [0, 1]),
            ("inactive-customers", 1, [0, 1]),
            ("cod-orders", 2, [0, 2]),
            ("prepaid-orders", 3, [1, 4]),
            ("cancelled-orders", 1, [0, 1]),
            ("abandoned-carts", 1, [0, 1]),
            ("discount-users", 1, [0, 1]),
            ("wishlist-users", 1, [0, 1]),
            ("reviewers", 1, [0, 1]),
            ("email-subscribers", 1, [0, 1]),
            ("morning-purchases", 0, [0, 0]),
            ("afternoon-purchases", 5, [1, 6]),
            ("evening-purchases", 0, [0, 0]),
            ("weekend-purchases", 2, [1, 3]),
        ],
    )
    async def test_metric_values(self, computer, thirty_days, metric_id, count, points):
        result = await computer.compute(get_definition(metric_id), thirty_days)
        assert result.available
        assert result.count == count
        assert [p.count for p in result.data_points] == points
        assert [p.date for p in result.data_points] == [date(2026, 2, 16), date(2026, 3, 18)]

    @pytest.mark.asyncio
    async def test_today_has_single_point(self, computer, today_range):
        result = await computer.compute(get_definition("new-customers"), today_range)
        assert len(result.data_points) == 1
        assert result.data_points[0].date == date(2026, 3, 18)

    @pytest.mark.asyncio
    async def test_wire_shape(self, computer, thirty_days):
        result = await computer.compute(get_definition("cod-orders"), thirty_days)
        assert result.to_response() == {
            "count": 2,
            "dataPoints": [
                {"date": "2026-02-16", "count": 0},
                {"date": "2026-03-18", "count": 2},
            ],
        }


class TestReturningCustomers:
    """Tests for the two-slice returning qualification."""

    @pytest.mark.asyncio
    async def test_prior_and_in_range_order_required(self, test_settings, thirty_days):
        source = InMemorySource(
            orders=[
                make_order("A", NOW - timedelta(days=40)),
                make_order("A", NOW - timedelta(days=5)),
                make_order("B", NOW - timedelta(days=5)),
            ]
        )
        computer = MetricComputer(source, test_settings)
        result = await computer.compute(get_definition("returning-customers"), thirty_days)
        assert result.count == 1

        members = await computer.resolve_members(get_definition("returning-customers"), thirty_days)
        assert members == frozenset({"A"})

    @pytest.mark.asyncio
    async def test_prior_slice_ends_before_range_start(self, computer, source, thirty_days):
        await computer.compute(get_definition("returning-customers"), thirty_days)
        prior = [q for q, _, _ in source.calls if q.created_to == thirty_days.start - MILLISECOND]
        assert prior
        assert all(q.created_from is None for q in prior)

    @pytest.mark.asyncio
    async def test_unavailable_prior_slice_counts_nobody(self, sample_orders, test_settings, thirty_days):
        def fail_prior(query):
            if query.created_to == thirty_days.start - MILLISECOND:
                return ["Throttled"]
            return None

        source = InMemorySource(orders=sample_orders, error_when=fail_prior)
        result = await MetricComputer(source, test_settings).compute(
            get_definition("returning-customers"), thirty_days
        )
        assert result.count == 0
        assert [p.count for p in result.data_points] == [0, 1]


class TestRestrictedAccess:
    """Restricted-access refusals make the whole metric unavailable."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metric_id",
        ["total-customers", "new-customers", "email-subscribers", "inactive-customers"],
    )
    async def test_customer_refusal(self, sample_orders, test_settings, thirty_days, metric_id):
        source = InMemorySource(
            orders=sample_orders, errors={RecordKind.CUSTOMER: [PROTECTED_CUSTOMER]}
        )
        result = await MetricComputer(source, test_settings).compute(
            get_definition(metric_id), thirty_days
        )
        assert not result.available
        assert result.count is None
        assert result.data_points == []
        assert result.error.dataset_kind is DatasetKind.CUSTOMER
        assert result.to_response() == {"error": "RESTRICTED_CUSTOMER_DATA_ACCESS_DENIED"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metric_id",
        ["returning-customers", "inactive-customers", "cod-orders", "discount-users"],
    )
    async def test_order_refusal(self, sample_customers, test_settings, thirty_days, metric_id):
        source = InMemorySource(
            customers=sample_customers, errors={RecordKind.ORDER: [PROTECTED_ORDER]}
        )
        result = await MetricComputer(source, test_settings).compute(
            get_definition(metric_id), thirty_days
        )
        assert result.error is not None
        assert result.error.sentinel == "RESTRICTED_ORDER_DATA_ACCESS_DENIED"
        assert result.error.feature == metric_id

    @pytest.mark.asyncio
    async def test_refusal_on_data_point_only(self, sample_orders, test_settings, thirty_days):
        # Only the cumulative point query at the range end is refused
        def refuse_end(query):
            if query.created_from is None and query.created_to == thirty_days.end:
                return [PROTECTED_ORDER]
            return None

        source = InMemorySource(orders=sample_orders, error_when=refuse_end)
        result = await MetricComputer(source, test_settings).compute(
            get_definition("cod-orders"), thirty_days
        )
        assert result.count is None
        assert result.error is not None

    @pytest.mark.asyncio
    async def test_members_raise_restricted(self, test_settings, thirty_days):
        source = InMemorySource(errors={RecordKind.ORDER: [PROTECTED_ORDER]})
        with pytest.raises(RestrictedAccessError):
            await MetricComputer(source, test_settings).resolve_members(
                get_definition("cod-orders"), thirty_days
            )


class TestFallbacks:
    """Generic failures degrade per metric."""

    @pytest.mark.asyncio
    async def test_zero_fallback(self, sample_customers, test_settings, thirty_days):
        source = InMemorySource(customers=sample_customers, errors={RecordKind.ORDER: ["Throttled"]})
        result = await MetricComputer(source, test_settings).compute(
            get_definition("cod-orders"), thirty_days
        )
        assert result.count == 0
        assert [p.count for p in result.data_points] == [0, 0]

    @pytest.mark.asyncio
    async def test_raise_fallback(self, test_settings, thirty_days):
        source = InMemorySource(errors={RecordKind.CUSTOMER: ["Throttled"]})
        with pytest.raises(SourceError):
            await MetricComputer(source, test_settings).compute(
                get_definition("total-customers"), thirty_days
            )

    @pytest.mark.asyncio
    async def test_count_raises_while_points_would_degrade(self, test_settings, thirty_days):
        source = InMemorySource(errors={RecordKind.ORDER: ["Throttled"]})
        with pytest.raises(SourceError):
            await MetricComputer(source, test_settings).compute(
                get_definition("wishlist-users"), thirty_days
            )

    @pytest.mark.asyncio
    async def test_last_point_count_follows_degraded_point(self, test_settings, thirty_days):
        source = InMemorySource(errors={RecordKind.ORDER: ["Throttled"]})
        result = await MetricComputer(source, test_settings).compute(
            get_definition("discount-users"), thirty_days
        )
        assert result.count == 0
        assert [p.count for p in result.data_points] == [0, 0]

    @pytest.mark.asyncio
    async def test_inactive_estimate_when_orders_fail(
        self, sample_customers, test_settings, thirty_days
    ):
        source = InMemorySource(customers=sample_customers, errors={RecordKind.ORDER: ["Throttled"]})
        result = await MetricComputer(source, test_settings).compute(
            get_definition("inactive-customers"), thirty_days
        )
        # ceil(5 * 0.7) for the count; the start point only sees c1
        assert result.count == 4
        assert [p.count for p in result.data_points] == [1, 4]

    @pytest.mark.asyncio
    async def test_inactive_zero_when_customers_fail(self, sample_orders, test_settings, thirty_days):
        source = InMemorySource(orders=sample_orders, errors={RecordKind.CUSTOMER: ["Throttled"]})
        result = await MetricComputer(source, test_settings).compute(
            get_definition("inactive-customers"), thirty_days
        )
        assert result.count == 0
        assert [p.count for p in result.data_points] == [0, 0]

    @pytest.mark.asyncio
    async def test_members_raise_generic(self, test_settings, thirty_days):
        source = InMemorySource(errors={RecordKind.ORDER: ["Throttled"]})
        with pytest.raises(SourceError):
            await MetricComputer(source, test_settings).resolve_members(
                get_definition("cod-orders"), thirty_days
            )


class TestComputerBehavior:
    """Idempotence, caps and member resolution."""

    @pytest.mark.asyncio
    async def test_idempotent(self, computer, thirty_days):
        for metric_id in ("returning-customers", "inactive-customers", "weekend-purchases"):
            definition = get_definition(metric_id)
            first = await computer.compute(definition, thirty_days)
            second = await computer.compute(definition, thirty_days)
            assert first == second

    @pytest.mark.asyncio
    async def test_cap_bounds_the_count(self, test_settings, thirty_days):
        orders = [make_order(f"c{i}", NOW - timedelta(hours=i + 1)) for i in range(10)]
        definition = MetricDefinition(
            id="capped-orders",
            title="Capped",
            section=DashboardSection.ORDER_BEHAVIOR,
            record_kind=RecordKind.ORDER,
            identity=IdentityKind.ORDER,
            range_cap=3,
        )
        result = await MetricComputer(InMemorySource(orders=orders), test_settings).compute(
            definition, thirty_days
        )
        assert result.count == 3
        assert result.data_points[-1].count == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metric_id", ["abandoned-carts", "discount-users", "wishlist-users", "reviewers"]
    )
    async def test_paginates_past_the_first_page(self, test_settings, metric_id):
        orders = [
            make_order(
                f"c{i}",
                NOW - timedelta(minutes=i + 1),
                financial_status="PENDING",
                payment_gateways=["manual"],
                discount_amount=5.0,
                note="added from wishlist, left a review",
            )
            for i in range(600)
        ]
        settings = test_settings.model_copy(update={"page_size": 250})
        computer = MetricComputer(InMemorySource(orders=orders), settings)

        result = await computer.compute(
            get_definition(metric_id), resolve_date_range("7days", now=NOW)
        )

        assert result.count == 600
        assert result.data_points[-1].count == 600

    @pytest.mark.asyncio
    async def test_members_for_order_metric(self, computer, thirty_days):
        members = await computer.resolve_members(get_definition("cod-orders"), thirty_days)
        assert len(members) == 2
        assert all(m.startswith("gid://shop/Order/") for m in members)

    @pytest.mark.asyncio
    async def test_members_for_last_point_metric(self, computer, thirty_days):
        members = await computer.resolve_members(get_definition("discount-users"), thirty_days)
        assert members == frozenset({"c2"})

    @pytest.mark.asyncio
    async def test_members_for_inactive(self, computer, thirty_days):
        members = await computer.resolve_members(get_definition("inactive-customers"), thirty_days)
        assert members == frozenset({"c5"})

    @pytest.mark.asyncio
    async def test_result_is_a_metric_result(self, computer):
        seven = resolve_date_range("7days", now=NOW)
        result = await computer.compute(get_definition("new-customers"), seven)
        assert isinstance(result, MetricResult)
        assert result.count == 3
