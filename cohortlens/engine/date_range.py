"""
Date range resolution for dashboard range tokens.

Maps a symbolic token (``today``, ``7days``, ``lastMonth`` ...) to a
concrete, local-day-aligned interval plus the instants sampled for the
trend series. Every metric resolves its range exactly once.
"""

from datetime import datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from cohortlens.models import DateRange

FALLBACK_TOKEN = "30days"

# Alias spelling -> canonical token
CANONICAL_TOKENS = {
    "today": "today",
    "yesterday": "yesterday",
    "7days": "7days",
    "last7Days": "7days",
    "30days": "30days",
    "last30Days": "30days",
    "90days": "90days",
    "last90Days": "90days",
    "thisMonth": "thisMonth",
    "lastMonth": "lastMonth",
}

WINDOW_DAYS = {"7days": 7, "30days": 30, "90days": 90}

PERIOD_LABELS = {
    "today": "today",
    "yesterday": "yesterday",
    "7days": "the last 7 days",
    "30days": "the last 30 days",
    "90days": "the last 90 days",
    "thisMonth": "this month",
    "lastMonth": "last month",
}


def canonical_token(token: Optional[str]) -> str:
    """Canonical spelling of ``token``; unrecognized tokens map to the 30-day window."""
    if token is None:
        return FALLBACK_TOKEN
    return CANONICAL_TOKENS.get(token, FALLBACK_TOKEN)


def is_known_token(token: Optional[str]) -> bool:
    return token in CANONICAL_TOKENS


def period_label(token: Optional[str]) -> str:
    """Human label for a range token, used in trend indicator text."""
    if not is_known_token(token):
        return "the selected period"
    return PERIOD_LABELS[CANONICAL_TOKENS[token]]


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def resolve_date_range(
    token: Optional[str],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> DateRange:
    """
    Resolve a range token against ``now``.

    Args:
        token: Range token; unknown or missing tokens fall back to 30 days
        now: Reference instant (default: current time in ``tz``)
        tz: Zone whose calendar days align the range (default: UTC, or the
            zone of an aware ``now``)

    Returns:
        DateRange whose ``end`` is the last millisecond of the window
    """
    zone = tz or (now.tzinfo if now is not None and now.tzinfo else ZoneInfo("UTC"))
    if now is None:
        now = datetime.now(zone)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    else:
        now = now.astimezone(zone)

    canonical = canonical_token(token)
    today_start = _start_of_day(now)
    end = _end_of_day(now)

    if canonical == "today":
        start = today_start
    elif canonical == "yesterday":
        start = today_start - timedelta(days=1)
        end = _end_of_day(start)
    elif canonical in WINDOW_DAYS:
        # N whole days back from the start of today, plus today itself
        start = today_start - timedelta(days=WINDOW_DAYS[canonical])
    elif canonical == "thisMonth":
        start = today_start.replace(day=1)
    else:  # lastMonth
        last_day_prev = today_start.replace(day=1) - timedelta(days=1)
        start = last_day_prev.replace(day=1)
        end = _end_of_day(last_day_prev)

    instants = [end] if canonical == "today" else [start, end]

    return DateRange(
        token=token if token is not None else FALLBACK_TOKEN,
        start=start,
        end=end,
        sample_instants=instants,
    )
