"""
Request-scoped data models for metric computation.

Every model here lives for the duration of a single computation: records
are collected, classified, reduced to counts and discarded. Nothing is
cached between invocations.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import DatasetKind, RecordKind, TrendDirection, TrendStatus

IdentitySet = frozenset
"""Deduplicated identifiers satisfying a membership predicate."""

MILLISECOND = timedelta(milliseconds=1)


class CustomAttribute(BaseModel):
    """Free-form key/value pair attached to an order at checkout."""

    key: Optional[str] = None
    value: Optional[str] = None


class RawRecord(BaseModel):
    """
    Normalized record from the source.

    Only the fields predicates read are typed; anything else the source
    returns is kept as extra data and ignored by the engine.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    customer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    tags: list[str] = Field(default_factory=list)
    note: Optional[str] = None
    custom_attributes: list[CustomAttribute] = Field(default_factory=list)
    discount_amount: float = 0.0
    financial_status: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    payment_gateways: list[str] = Field(default_factory=list)
    email: Optional[str] = None
    marketing_state: Optional[str] = None
    marketing_opt_in_level: Optional[str] = None


class RecordQuery(BaseModel):
    """
    Collection request handed to the record source.

    Bounds are inclusive; ``None`` leaves that side open.
    """

    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class Page(BaseModel):
    """One page of a cursor-paginated response."""

    records: list[RawRecord] = Field(default_factory=list)
    has_next_page: bool = False
    end_cursor: Optional[str] = None
    errors: list[str] = Field(default_factory=list)


class DateRange(BaseModel):
    """
    Concrete interval for a range token.

    ``end`` is the last millisecond inside the window, so the window is the
    half-open interval ``[start, exclusive_end)``.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    start: datetime
    end: datetime
    sample_instants: list[datetime]

    @property
    def exclusive_end(self) -> datetime:
        return self.end + MILLISECOND

    @property
    def duration(self) -> timedelta:
        return self.exclusive_end - self.start


class DataPoint(BaseModel):
    """Cumulative count sampled at one instant."""

    date: date
    count: int = Field(ge=0)


class RestrictedAccessSignal(BaseModel):
    """Governance refusal: the caller lacks an approved scope for protected data."""

    model_config = ConfigDict(frozen=True)

    dataset_kind: DatasetKind
    feature: str

    @property
    def sentinel(self) -> str:
        """Fixed identifier reported at the API boundary."""
        return f"RESTRICTED_{self.dataset_kind.value.upper()}_DATA_ACCESS_DENIED"


class MetricResult(BaseModel):
    """
    Outcome of one metric computation.

    Either ``error`` is set and nothing else is, or ``count`` and
    ``data_points`` are both populated.
    """

    count: Optional[int] = None
    data_points: list[DataPoint] = Field(default_factory=list)
    error: Optional[RestrictedAccessSignal] = None

    @property
    def available(self) -> bool:
        return self.error is None

    def to_response(self) -> dict[str, Any]:
        """Wire shape: ``{count, dataPoints}`` or ``{error}``."""
        if self.error is not None:
            return {"error": self.error.sentinel}
        return {
            "count": self.count,
            "dataPoints": [
                {"date": p.date.isoformat(), "count": p.count} for p in self.data_points
            ],
        }


class TrendThresholds(BaseModel):
    """Percent tiers separating attention from good/issue."""

    model_config = ConfigDict(frozen=True)

    minor: float = Field(default=5.0, gt=0)
    major: float = Field(default=10.0, gt=0)


class TrendClassification(BaseModel):
    """Growth classification of a trend pair."""

    status: TrendStatus
    direction: TrendDirection
    magnitude_percent: float = Field(ge=0)
    change_percent: float
    indicator: Optional[str] = None


class MetricReport(BaseModel):
    """One dashboard card: the metric result plus its trend badge."""

    metric_id: str
    title: str
    result: Optional[MetricResult] = None
    trend: Optional[TrendClassification] = None
    failure: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"id": self.metric_id, "title": self.title}
        if self.result is None:
            body["error"] = self.failure or "METRIC_UNAVAILABLE"
            return body
        body.update(self.result.to_response())
        if self.trend is not None:
            body["trend"] = self.trend.model_dump(mode="json")
        return body


class BreakdownResult(BaseModel):
    """Distribution of a fixed metric group over one range."""

    breakdown: str
    date_range: str
    labels: list[str]
    values: list[int]
    shares: list[float]

    @property
    def total(self) -> int:
        return sum(self.values)
