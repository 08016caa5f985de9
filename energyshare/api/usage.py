"""
Usage API endpoints: recent sessions, estimated-time edits and charts.

CHANGELOG:
- 2026-10-06: Add consumption chart endpoint (STORY-109)
- 2026-10-05: Add estimated-time form endpoint (STORY-108)
- 2026-09-29: Initial creation (STORY-104)

TODO:
- None
"""

import logging

from fastapi import APIRouter, Form, Query
from fastapi.responses import JSONResponse

from energyshare.api.deps import CurrentUser, DbSession, OptionalUser
from energyshare.config import get_settings
from energyshare.errors import ErrorTag
from energyshare.schemas import UsageWithDeviceView
from energyshare.services.actions import get_usage_data_action, update_estimated_time_action
from energyshare.services.aggregation import TIME_PERIODS, get_date_range_for_time_period
from energyshare.services.estimated_time import EstimatedTimeForm
from energyshare.services.usage import get_recent_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("")
async def list_recent_usage(db: DbSession, user: CurrentUser) -> JSONResponse:
    """Return the ten most recent usage sessions with their device.

    Returns:
        JSONResponse: List of usage rows, or HTTP 500 with
            ``{"error": "Failed to fetch usage data"}``.
    """
    try:
        rows = await get_recent_usage(db)
        data = [
            UsageWithDeviceView.model_validate(row).model_dump(mode="json") for row in rows
        ]
    except Exception:
        logger.error("Error fetching usage", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch usage data"})
    return JSONResponse(content=data)


@router.post("/estimated-time")
async def update_estimated_time(
    db: DbSession,
    user: OptionalUser,
    device_id: str | None = Form(default=None, alias="deviceId"),
    estimated_datetime_local: str | None = Form(default=None, alias="estimatedDateTimeLocal"),
    timezone_offset: str | None = Form(default=None, alias="timezoneOffset"),
) -> JSONResponse:
    """Update the estimated end time of the caller's open session.

    Form fields are optional here so that missing values reach the guard
    chain and come back as ``Invalid form data`` rather than a 422.

    Returns:
        JSONResponse: ``{"message", "updatedTime"}`` or ``{"message", "error"}``.
    """
    form = EstimatedTimeForm(
        device_id=device_id,
        estimated_datetime_local=estimated_datetime_local,
        timezone_offset=timezone_offset,
    )
    result = await update_estimated_time_action(db, user, form)
    status_code = 401 if user is None else 200
    return JSONResponse(status_code=status_code, content=result)


@router.get("/consumption")
async def get_consumption(
    db: DbSession,
    user: CurrentUser,
    time_period: str = Query("current week", alias="timePeriod"),
    device_id: str | None = Query(None, alias="deviceId"),
) -> JSONResponse:
    """Return the caller's and the household's consumption series.

    Args:
        db: Async database session.
        user: Signed-in user.
        time_period: One of ``current week``, ``current month``,
            ``current billing period``.
        device_id: Restrict to one device; ``All`` or omitted means every
            device.

    Returns:
        JSONResponse: Usage-data action result extended with the
            formatted date range.
    """
    if time_period not in TIME_PERIODS:
        return JSONResponse(
            status_code=400,
            content={
                "message": f"Invalid time period. Must be one of: {', '.join(TIME_PERIODS)}",
                "error": ErrorTag.VALIDATION.value,
            },
        )

    try:
        date_range = get_date_range_for_time_period(
            time_period, billing_start=get_settings().BILLING_START_DATE,
        )
    except ValueError as exc:
        logger.error(
            "Cannot resolve date range: %s", exc, extra={"time_period": time_period},
        )
        return JSONResponse(
            status_code=500,
            content={"message": str(exc), "error": ErrorTag.SERVER.value},
        )

    if device_id == "All":
        device_id = None
    result = await get_usage_data_action(db, user, time_period, date_range, device_id)
    result["dateRange"] = {
        "start": date_range.start.isoformat(),
        "end": date_range.end.isoformat(),
        "formattedStart": date_range.formatted_start,
        "formattedEnd": date_range.formatted_end,
    }
    status_code = 500 if result.get("error") == ErrorTag.SERVER.value else 200
    return JSONResponse(status_code=status_code, content=result)
