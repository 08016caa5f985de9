"""
Period ranges and consumption aggregation for the usage charts.

Provides the date range of each selectable time period (current week,
current month, current billing period) and splits the raw per-day rows
returned by :func:`energyshare.services.usage.get_usage_data` into the
caller's own series and the household total, bucketed by period.

All boundaries are computed in UTC. Weeks start on Sunday.

CHANGELOG:
- 2026-10-06: Clamp bucket starts to the range start (STORY-109)
- 2026-10-02: Initial creation (STORY-106)

TODO:
- None
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Literal, get_args

from energyshare.services.time_utils import ensure_utc, round_up_2dp, utc_now

TimePeriod = Literal["current week", "current month", "current billing period"]
TIME_PERIODS: tuple[str, ...] = get_args(TimePeriod)

# Display format of range boundaries, e.g. "Jan 05, 2025".
_DISPLAY_FORMAT = "%b %d, %Y"
_BILLING_DATE_FORMATS = ("%Y-%m-%d", "%d-%b-%Y")


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range of a time period.

    Attributes:
        start: First instant of the range (UTC).
        end: Last instant of the range (UTC).
        formatted_start: ``start`` as ``Mon DD, YYYY``.
        formatted_end: ``end`` as ``Mon DD, YYYY``.
    """

    start: datetime
    end: datetime
    formatted_start: str
    formatted_end: str

    @classmethod
    def build(cls, start: datetime, end: datetime) -> "DateRange":
        return cls(
            start=start,
            end=end,
            formatted_start=start.strftime(_DISPLAY_FORMAT),
            formatted_end=end.strftime(_DISPLAY_FORMAT),
        )


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _start_of_week(value: datetime) -> datetime:
    # weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (value.weekday() + 1) % 7
    return _start_of_day(value) - timedelta(days=days_since_sunday)


def _start_of_month(value: datetime) -> datetime:
    return _start_of_day(value).replace(day=1)


def get_current_week_range(now: datetime | None = None) -> DateRange:
    """Sunday 00:00 to Saturday 23:59:59.999999 of the week containing *now*."""
    now = ensure_utc(now or utc_now())
    start = _start_of_week(now)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return DateRange.build(start, end)


def get_current_month_range(now: datetime | None = None) -> DateRange:
    """First to last instant of the calendar month containing *now*."""
    now = ensure_utc(now or utc_now())
    start = _start_of_month(now)
    _, last_day = calendar.monthrange(now.year, now.month)
    end = start.replace(day=last_day) + timedelta(days=1) - timedelta(microseconds=1)
    return DateRange.build(start, end)


def parse_billing_start_date(value: str) -> datetime:
    """Parse a billing start date given as ``YYYY-MM-DD`` or ``DD-MON-YYYY``.

    Args:
        value: Configured billing start date, e.g. ``2025-01-15`` or
            ``15-JAN-2025``.

    Returns:
        datetime: Midnight UTC of that date.

    Raises:
        ValueError: If *value* matches neither format.
    """
    for fmt in _BILLING_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    raise ValueError(f"Invalid billing start date '{value}'")


def get_current_billing_period_range(
    billing_start: str | datetime,
    now: datetime | None = None,
) -> DateRange:
    """From the configured billing start date up to *now*."""
    if isinstance(billing_start, str):
        start = parse_billing_start_date(billing_start)
    else:
        start = ensure_utc(billing_start)
    end = ensure_utc(now or utc_now())
    return DateRange.build(start, end)


def get_date_range_for_time_period(
    period: str,
    billing_start: str | None = None,
    now: datetime | None = None,
) -> DateRange:
    """Return the date range of a selectable time period.

    Args:
        period: One of :data:`TIME_PERIODS`.
        billing_start: Configured billing start date, required for
            ``current billing period``.
        now: Reference instant; defaults to the current time.

    Returns:
        DateRange: The period's range.

    Raises:
        ValueError: Unknown period, or billing period without a start date.
    """
    if period == "current week":
        return get_current_week_range(now)
    if period == "current month":
        return get_current_month_range(now)
    if period == "current billing period":
        if not billing_start:
            raise ValueError("BILLING_START_DATE is not set")
        return get_current_billing_period_range(billing_start, now)
    raise ValueError(
        f"Invalid time period '{period}'. Must be one of: {', '.join(TIME_PERIODS)}"
    )


def get_period_start(date: datetime, period: str, range_start: datetime) -> datetime:
    """Return the bucket start of *date* for a time period.

    The bucket start never precedes *range_start*, so a partial first
    week or month inside the range is not attributed to an earlier
    boundary.

    Args:
        date: Truncated date of a usage row.
        period: Selected time period.
        range_start: Start of the queried range.

    Returns:
        datetime: Bucket start; *date* unchanged for unknown periods.
    """
    date = ensure_utc(date)
    range_start = ensure_utc(range_start)
    if period == "current week":
        return max(_start_of_week(date), range_start)
    if period in ("current month", "current billing period"):
        return max(_start_of_month(date), range_start)
    return date


def _to_series(buckets: dict[tuple[datetime, str], Decimal]) -> list[dict]:
    return [
        {"date": bucket, "device_id": device_id, "consumption": round_up_2dp(total)}
        for (bucket, device_id), total in sorted(buckets.items())
    ]


def split_consumption(
    rows: list[dict],
    user_email: str,
    period: str,
    range_start: datetime,
) -> tuple[list[dict], list[dict]]:
    """Split raw usage rows into the user's series and the household total.

    Rows are keyed by ``(bucket start, device)``; same-key rows are summed.
    The user series only holds rows of *user_email* (case-insensitive); the
    total series holds every row. Values are rounded up to two decimals.

    Args:
        rows: Output of ``get_usage_data``.
        user_email: Email of the caller.
        period: Selected time period.
        range_start: Start of the queried range.

    Returns:
        Tuple of (user series, total series); each a list of dicts with
        ``date``, ``device_id`` and ``consumption``, sorted by date then
        device.
    """
    email = user_email.strip().lower()
    user_buckets: dict[tuple[datetime, str], Decimal] = defaultdict(Decimal)
    total_buckets: dict[tuple[datetime, str], Decimal] = defaultdict(Decimal)

    for row in rows:
        key = (get_period_start(row["date"], period, range_start), row["device_id"])
        consumption = round_up_2dp(row["consumption"])
        total_buckets[key] += consumption
        if str(row["user_email"]).strip().lower() == email:
            user_buckets[key] += consumption

    return _to_series(user_buckets), _to_series(total_buckets)
