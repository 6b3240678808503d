"""
Trend evaluation for two-point metric series.

Compares the first and last data point, computes the percentage change
and maps it to a status badge. Polarity decides whether growth is good
(new customers) or bad (cancelled orders). The two tables are not
mirror images: a flat series is only "good" for favorable metrics.
"""

from typing import Optional, Sequence

from cohortlens.models import (
    DataPoint,
    Polarity,
    TrendClassification,
    TrendDirection,
    TrendStatus,
    TrendThresholds,
)

ARROWS = {
    TrendDirection.UP: "↑",
    TrendDirection.DOWN: "↓",
    TrendDirection.FLAT: "→",
}

VERBS = {
    TrendDirection.UP: "increase",
    TrendDirection.DOWN: "decrease",
    TrendDirection.FLAT: "change",
}


def percent_change(start: float, end: float) -> float:
    """
    Percentage change from ``start`` to ``end``.

    A zero baseline reports 0 when nothing changed and 100 for any growth.
    """
    if start == 0:
        return 0.0 if end == 0 else 100.0
    return (end - start) / start * 100


def classify_change(
    change: float,
    polarity: Polarity,
    thresholds: TrendThresholds = TrendThresholds(),
) -> TrendStatus:
    """Map a percentage change to a status badge for the given polarity."""
    magnitude = abs(change)

    if polarity is Polarity.INCREASE_IS_GOOD:
        if change == 0:
            return TrendStatus.GOOD
        if change > 0:
            return TrendStatus.GOOD if magnitude >= thresholds.minor else TrendStatus.ATTENTION
        return TrendStatus.ISSUE if magnitude >= thresholds.major else TrendStatus.ATTENTION

    if change == 0:
        return TrendStatus.ATTENTION
    if change < 0:
        return TrendStatus.GOOD if magnitude >= thresholds.minor else TrendStatus.ATTENTION
    return TrendStatus.ISSUE if magnitude >= thresholds.major else TrendStatus.ATTENTION


def direction_of(change: float) -> TrendDirection:
    if change > 0:
        return TrendDirection.UP
    if change < 0:
        return TrendDirection.DOWN
    return TrendDirection.FLAT


def format_indicator(change: float, period_label: str) -> str:
    """Indicator text such as ``"↑ 12% increase in the last 30 days"``."""
    direction = direction_of(change)
    return f"{ARROWS[direction]} {abs(change):.0f}% {VERBS[direction]} in {period_label}"


def evaluate_trend(
    data_points: Sequence[DataPoint],
    polarity: Polarity,
    thresholds: TrendThresholds = TrendThresholds(),
    period_label: Optional[str] = None,
) -> Optional[TrendClassification]:
    """
    Classify the growth between the first and last data point.

    Args:
        data_points: Series ordered ascending by date
        polarity: Whether growth is favorable for this metric
        thresholds: Percent tiers for attention vs good/issue
        period_label: Human period used in the indicator text

    Returns:
        TrendClassification, or None when fewer than two points exist
    """
    if len(data_points) < 2:
        return None

    change = percent_change(data_points[0].count, data_points[-1].count)
    indicator = format_indicator(change, period_label) if period_label else None

    return TrendClassification(
        status=classify_change(change, polarity, thresholds),
        direction=direction_of(change),
        magnitude_percent=round(abs(change), 2),
        change_percent=round(change, 2),
        indicator=indicator,
    )
