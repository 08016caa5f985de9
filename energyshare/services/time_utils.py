"""
Time-window and rounding helpers for usage sessions.

All comparisons on user-entered times happen at minute granularity:
seconds and microseconds are dropped before comparing. Consumption
values are always rounded up (ceiling) to two decimals.

CHANGELOG:
- 2026-10-19: Out-of-range local times convert to None (STORY-110)
- 2026-10-01: Add datetime-local conversion helpers (STORY-105)
- 2026-09-29: Initial creation (STORY-104)

TODO:
- None
"""

from datetime import UTC, datetime, timedelta
from decimal import ROUND_CEILING, Decimal

# Maximum distance between a session start and its estimated end.
MAX_SESSION_HOURS = 8

_TWO_PLACES = Decimal("0.01")
_LOCAL_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S")


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime.

    Naive values (as read back from SQLite) are taken to be UTC already.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def normalize_to_minute(value: datetime) -> datetime:
    """Drop seconds and microseconds from *value*."""
    return value.replace(second=0, microsecond=0)


def are_dates_equal_to_minute(first: datetime, second: datetime) -> bool:
    """Return True if both instants fall in the same minute."""
    return normalize_to_minute(ensure_utc(first)) == normalize_to_minute(ensure_utc(second))


def is_date_in_future(value: datetime, now: datetime | None = None) -> bool:
    """Return True if *value* is strictly after *now* at minute granularity.

    Args:
        value: Instant to check.
        now: Reference instant; defaults to the current time.

    Returns:
        bool: False for any instant within the current minute or earlier.
    """
    if now is None:
        now = utc_now()
    return normalize_to_minute(ensure_utc(value)) > normalize_to_minute(ensure_utc(now))


def is_within_eight_hours_from_date(value: datetime, start: datetime) -> bool:
    """Return True if *value* is at most eight hours after *start* (to the minute)."""
    limit = ensure_utc(start) + timedelta(hours=MAX_SESSION_HOURS)
    return normalize_to_minute(ensure_utc(value)) <= normalize_to_minute(limit)


def get_current_date_plus_one_min(now: datetime | None = None) -> datetime:
    """Earliest value accepted by the estimated-time picker."""
    return (now or utc_now()) + timedelta(minutes=1)


def get_current_date_plus_eight_hours(now: datetime | None = None) -> datetime:
    """Latest value offered by the estimated-time picker at turn-on."""
    return (now or utc_now()) + timedelta(hours=MAX_SESSION_HOURS)


def is_within_eight_hours(value: datetime, now: datetime | None = None) -> bool:
    """Return True if *value* is at most eight hours from *now* (to the minute)."""
    limit = get_current_date_plus_eight_hours(now)
    return normalize_to_minute(ensure_utc(value)) <= normalize_to_minute(ensure_utc(limit))


def convert_datetime_local_to_utc(
    value: str,
    tz_offset_minutes: int | str | None,
) -> datetime | None:
    """Combine a browser datetime-local string with its timezone offset.

    The offset follows ``Date.getTimezoneOffset()`` semantics: minutes to
    add to local time to obtain UTC (``-120`` for UTC+2).

    Args:
        value: Local wall-clock time, ``YYYY-MM-DDTHH:MM`` (seconds optional).
        tz_offset_minutes: Client offset in minutes, as int or decimal string.

    Returns:
        datetime or None: Aware UTC instant, or None if either part is
        unparseable or the shifted instant falls outside the datetime range.
    """
    try:
        offset = int(tz_offset_minutes)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None

    local = None
    for fmt in _LOCAL_FORMATS:
        try:
            local = datetime.strptime(value.strip(), fmt)
            break
        except ValueError:
            continue
    if local is None:
        return None

    try:
        return local.replace(tzinfo=UTC) + timedelta(minutes=offset)
    except OverflowError:
        return None


def get_datetime_local_value(
    value: datetime | None,
    tz_offset_minutes: int = 0,
) -> str:
    """Format an instant as a ``YYYY-MM-DDTHH:MM`` local string.

    Inverse of :func:`convert_datetime_local_to_utc`, used to pre-fill a
    datetime-local input. Returns an empty string for None.
    """
    if value is None:
        return ""
    local = ensure_utc(value) - timedelta(minutes=tz_offset_minutes)
    return local.strftime("%Y-%m-%dT%H:%M")


def round_up_2dp(value: Decimal | float | int) -> Decimal:
    """Round *value* up (towards +infinity) to two decimal places.

    Floats go through ``str`` so that binary artefacts do not push a value
    into the next cent: ``0.1`` rounds to ``0.10``, not ``0.11``.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_TWO_PLACES, rounding=ROUND_CEILING)
