"""
Pytest configuration and shared fixtures for the CohortLens test suite.

Provides record factories, an in-memory cursor-paginated source and a
fixed reference clock so range-dependent tests are deterministic.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

# Set testing environment BEFORE importing app
os.environ["TESTING"] = "true"
os.environ["DEV_MODE"] = "true"

from cohortlens.config import Settings
from cohortlens.connectors.base import RecordSource
from cohortlens.engine.computer import MetricComputer
from cohortlens.engine.dashboard import Dashboard
from cohortlens.engine.date_range import resolve_date_range
from cohortlens.models import CustomAttribute, Page, RawRecord, RecordKind, RecordQuery

# Wednesday afternoon, UTC
NOW = datetime(2026, 3, 18, 15, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------

_sequence = {"order": 0, "customer": 0}


def _next_id(kind: str) -> str:
    _sequence[kind] += 1
    return f"gid://shop/{kind.capitalize()}/{_sequence[kind]}"


def make_order(
    customer_id: Optional[str] = "gid://shop/Customer/1",
    created_at: Optional[datetime] = None,
    financial_status: Optional[str] = "PAID",
    **overrides,
) -> RawRecord:
    """Factory function for creating order records."""
    defaults = dict(
        id=_next_id("order"),
        customer_id=customer_id,
        created_at=created_at or NOW - timedelta(days=1),
        financial_status=financial_status,
    )
    defaults.update(overrides)
    if "custom_attributes" in defaults:
        defaults["custom_attributes"] = [
            a if isinstance(a, CustomAttribute) else CustomAttribute(**a)
            for a in defaults["custom_attributes"]
        ]
    return RawRecord(**defaults)


def make_customer(
    customer_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    email: Optional[str] = "shopper@example.com",
    **overrides,
) -> RawRecord:
    """Factory function for creating customer records."""
    record_id = customer_id or _next_id("customer")
    defaults = dict(
        id=record_id,
        customer_id=record_id,
        created_at=created_at or NOW - timedelta(days=1),
        email=email,
    )
    defaults.update(overrides)
    return RawRecord(**defaults)


# ---------------------------------------------------------------------------
# In-memory record source
# ---------------------------------------------------------------------------


class InMemorySource(RecordSource):
    """
    Cursor-paginated source over fixed record lists.

    Filters by the inclusive created-at bounds of each query, pages in
    created-at order and records every call in ``calls``. ``errors`` maps a
    record kind to messages returned on every page of that kind;
    ``error_when`` allows finer, per-query control.
    """

    def __init__(
        self,
        orders: Optional[list[RawRecord]] = None,
        customers: Optional[list[RawRecord]] = None,
        errors: Optional[dict[RecordKind, list[str]]] = None,
        error_when: Optional[Callable[[RecordQuery], Optional[list[str]]]] = None,
    ):
        self.records = {
            RecordKind.ORDER: list(orders or []),
            RecordKind.CUSTOMER: list(customers or []),
        }
        self.errors = errors or {}
        self.error_when = error_when
        self.calls: list[tuple[RecordQuery, Optional[str], int]] = []

    def _matching(self, query: RecordQuery) -> list[RawRecord]:
        matched = []
        for record in self.records[query.kind]:
            created = record.created_at
            if query.created_from is not None and (created is None or created < query.created_from):
                continue
            if query.created_to is not None and (created is None or created > query.created_to):
                continue
            matched.append(record)
        return sorted(matched, key=lambda r: (r.created_at or NOW, r.id))

    async def fetch_page(
        self,
        query: RecordQuery,
        cursor: Optional[str] = None,
        first: int = 250,
    ) -> Page:
        self.calls.append((query, cursor, first))

        messages = list(self.errors.get(query.kind, []))
        if self.error_when is not None:
            messages.extend(self.error_when(query) or [])
        if messages:
            return Page(errors=messages)

        matched = self._matching(query)
        offset = int(cursor) if cursor else 0
        chunk = matched[offset : offset + first]
        next_offset = offset + len(chunk)
        has_next = next_offset < len(matched)
        return Page(
            records=chunk,
            has_next_page=has_next,
            end_cursor=str(next_offset) if has_next else None,
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small pages so pagination is exercised."""
    return Settings(
        testing=True,
        dev_mode=True,
        page_size=2,
        default_record_cap=10000,
        collect_timeout_seconds=None,
        timezone="UTC",
    )


@pytest.fixture
def thirty_days():
    return resolve_date_range("30days", now=NOW)


@pytest.fixture
def today_range():
    return resolve_date_range("today", now=NOW)


@pytest.fixture
def sample_orders() -> list[RawRecord]:
    """A small, varied order history spread over the last 60 days."""
    return [
        make_order("c1", NOW - timedelta(days=45), "PAID"),
        make_order("c1", NOW - timedelta(days=3), "PENDING", payment_gateways=["manual"]),
        make_order("c2", NOW - timedelta(days=10), "PARTIALLY_REFUNDED", discount_amount=5.0),
        make_order("c3", NOW - timedelta(days=2), "AUTHORIZED", tags=["Wishlist-Import"]),
        make_order(
            "c4",
            NOW - timedelta(days=1),
            "PAID",
            cancelled_at=NOW - timedelta(hours=12),
            note="left a review",
        ),
        make_order(None, NOW - timedelta(days=5), "PAID"),
    ]


@pytest.fixture
def sample_customers() -> list[RawRecord]:
    return [
        make_customer("c1", NOW - timedelta(days=90), marketing_state="SUBSCRIBED"),
        make_customer("c2", NOW - timedelta(days=20), tags=["newsletter"]),
        make_customer("c3", NOW - timedelta(days=4)),
        make_customer("c4", NOW - timedelta(days=2), email=None, marketing_state="SUBSCRIBED"),
        make_customer("c5", NOW - timedelta(days=1)),
    ]


@pytest.fixture
def source(sample_orders, sample_customers) -> InMemorySource:
    return InMemorySource(orders=sample_orders, customers=sample_customers)


@pytest.fixture
def computer(source, test_settings) -> MetricComputer:
    return MetricComputer(source, test_settings)


@pytest.fixture
def dashboard(computer, test_settings) -> Dashboard:
    return Dashboard(computer, test_settings, clock=lambda: NOW)
