"""
Usage-record queries and updates.

``get_usage_data`` aggregates closed usage sessions per truncated period,
device and user with a single PostgreSQL query; the remaining helpers are
plain ORM lookups used by listings and the estimated-time update.

CHANGELOG:
- 2026-10-06: Exclude open sessions from aggregated usage (STORY-109)
- 2026-10-02: Add get_usage_data aggregation query (STORY-106)
- 2026-09-29: Initial creation (STORY-104)

TODO:
- None
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from energyshare.db.models import ActiveDevice, Usage

# date_trunc() fields accepted for grouping.
GROUP_BY_FIELDS = ("day", "week", "month")

# Open sessions are skipped: their consumption column still holds the
# meter reading taken at turn-on, not energy used.
_USAGE_DATA_SQL = (
    "SELECT date_trunc(:group_by, u.start_date) AS date, "
    "u.device_id AS device_id, "
    "u.user_email AS user_email, "
    "SUM(u.consumption) AS consumption "
    "FROM usage u "
    "WHERE u.start_date >= :start AND u.start_date <= :end "
    "AND u.end_date <= :end "
    "AND NOT EXISTS ("
    "SELECT 1 FROM active_device a WHERE a.usage_record_id = u.id"
    ")"
)


async def update_estimated_time(
    session: AsyncSession,
    usage_id: int,
    new_time: datetime,
) -> Usage:
    """Persist a new estimated end time on a usage record.

    Args:
        session: Async SQLAlchemy session.
        usage_id: Usage record to update.
        new_time: New estimated end (UTC).

    Returns:
        Usage: The updated record.

    Raises:
        LookupError: No usage record with *usage_id* exists.
    """
    usage = await session.get(Usage, usage_id)
    if usage is None:
        raise LookupError(f"Usage record {usage_id} not found")
    usage.estimated_use_time = new_time
    await session.commit()
    return usage


async def get_recent_usage(session: AsyncSession, limit: int = 10) -> list[Usage]:
    """Return the *limit* most recent usage records with their device."""
    stmt = (
        select(Usage)
        .options(selectinload(Usage.device))
        .order_by(Usage.start_date.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_user_usage(session: AsyncSession, user_email: str) -> list[Usage]:
    """Return every usage record of a user, newest first, with its device."""
    stmt = (
        select(Usage)
        .where(Usage.user_email == user_email)
        .options(selectinload(Usage.device))
        .order_by(Usage.start_date.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_total_consumption(session: AsyncSession) -> Decimal:
    """Return the sum of consumption over all usage records (0 when empty)."""
    result = await session.execute(select(func.sum(Usage.consumption)))
    total = result.scalar_one_or_none()
    return Decimal(total) if total is not None else Decimal(0)


async def get_active_usages(session: AsyncSession) -> list[ActiveDevice]:
    """Return every active marker with its device and usage loaded."""
    stmt = select(ActiveDevice).options(
        selectinload(ActiveDevice.device),
        selectinload(ActiveDevice.usage),
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_usage_data(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    device_id: str | None = None,
    group_by: str = "day",
) -> list[dict]:
    """Sum closed-session consumption per period, device and user.

    Rows are included when their start lies in ``[start, end]`` and their
    end is not after *end*.

    Args:
        session: Async SQLAlchemy session for database operations.
        start: Range start (inclusive).
        end: Range end (inclusive).
        device_id: Restrict to one device when given.
        group_by: ``date_trunc`` field: ``day``, ``week`` or ``month``.

    Returns:
        List of dicts with ``date``, ``device_id``, ``user_email`` and
        ``consumption`` (Decimal), ordered by date, device and user.

    Raises:
        ValueError: If *group_by* is not a supported field.
    """
    if group_by not in GROUP_BY_FIELDS:
        raise ValueError(
            f"Invalid group_by '{group_by}'. Must be one of: {', '.join(GROUP_BY_FIELDS)}"
        )

    params: dict = {"group_by": group_by, "start": start, "end": end}
    sql = _USAGE_DATA_SQL
    if device_id is not None:
        sql += " AND u.device_id = :device_id"
        params["device_id"] = device_id
    sql += " GROUP BY 1, 2, 3 ORDER BY 1, 2, 3"

    result = await session.execute(text(sql), params)
    rows = result.fetchall()

    return [
        {
            "date": row._mapping["date"],
            "device_id": row._mapping["device_id"],
            "user_email": row._mapping["user_email"],
            "consumption": Decimal(row._mapping["consumption"] or 0),
        }
        for row in rows
    ]
