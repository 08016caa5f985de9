"""
Server actions invoked by the device and usage routes.

Actions sit between the HTTP layer and the service functions: they check
the caller, run the service call, and always return a structured result
instead of raising. Device actions return ``{"success", "data"|"error"}``;
usage actions return ``{"message", "error"?, ...}`` with ``error`` one of
the :class:`~energyshare.errors.ErrorTag` values.

CHANGELOG:
- 2026-10-19: Bound the turn-on estimate to the next eight hours (STORY-110)
- 2026-10-06: Add usage-data action for the consumption chart (STORY-109)
- 2026-10-05: Add estimated-time update action (STORY-108)
- 2026-10-01: Initial creation (STORY-105)

TODO:
- None
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from energyshare.auth.session import SessionUser
from energyshare.cache.redis_client import invalidate_devices_cache
from energyshare.errors import ErrorTag, describe_error
from energyshare.schemas import ActiveDeviceView
from energyshare.services.aggregation import TIME_PERIODS, DateRange, split_consumption
from energyshare.services.devices import get_active_device, turn_off_device, turn_on_device
from energyshare.services.estimated_time import (
    SERVER_ERROR_MESSAGE,
    SUCCESS_MESSAGE,
    EstimatedTimeForm,
    GuardFailure,
    check_changed,
    check_session_owner,
    check_within_session_window,
    precheck_estimated_time,
)
from energyshare.services.time_utils import is_date_in_future, is_within_eight_hours
from energyshare.services.usage import get_usage_data, update_estimated_time

logger = logging.getLogger(__name__)

SIGN_IN_REQUIRED = "Unauthorized. Please sign in."
ESTIMATE_IN_PAST = "Time must be in the future"
ESTIMATE_TOO_FAR = "A device cannot be blocked for more than 8 hours"


def _check_device_request(
    user: SessionUser | None,
    device_id: str | None,
    device_ip: str | None,
) -> dict | None:
    if user is None or not user.email:
        return {"success": False, "error": SIGN_IN_REQUIRED}
    if not device_id:
        return {"success": False, "error": "Device ID is required"}
    if not device_ip:
        return {"success": False, "error": "Device ip is required"}
    return None


def _check_estimated_use_time(
    estimated_use_time: datetime | None,
    now: datetime | None,
) -> dict | None:
    if estimated_use_time is None:
        return None
    if not is_date_in_future(estimated_use_time, now):
        return {"success": False, "error": ESTIMATE_IN_PAST}
    if not is_within_eight_hours(estimated_use_time, now):
        return {"success": False, "error": ESTIMATE_TOO_FAR}
    return None


async def turn_on_device_action(
    session: AsyncSession,
    user: SessionUser | None,
    device_id: str | None,
    device_ip: str | None,
    estimated_use_time: datetime | None = None,
    now: datetime | None = None,
) -> dict:
    """Turn a device on for the caller.

    An estimated end, when given, must lie after the current minute and at
    most eight hours ahead.

    Args:
        session: Async SQLAlchemy session.
        user: Caller, or None when not signed in.
        device_id: Device to turn on.
        device_ip: LAN address of the device.
        estimated_use_time: Optional estimated session end (UTC).
        now: Reference instant for the estimate; defaults to the current time.

    Returns:
        dict: ``{"success": True, "data": <active device>}`` or
        ``{"success": False, "error": <message>}``.
    """
    rejected = _check_device_request(user, device_id, device_ip)
    if rejected is None:
        rejected = _check_estimated_use_time(estimated_use_time, now)
    if rejected is not None:
        return rejected

    try:
        active = await turn_on_device(
            session, device_id, device_ip, user.email, estimated_use_time,
        )
        data = ActiveDeviceView.model_validate(active).model_dump(mode="json")
    except Exception as exc:
        logger.error("Error turning on device: %s", exc)
        return {"success": False, "error": describe_error(exc, "Failed to turn on device")}

    await invalidate_devices_cache()
    return {"success": True, "data": data}


async def turn_off_device_action(
    session: AsyncSession,
    user: SessionUser | None,
    device_id: str | None,
    device_ip: str | None,
) -> dict:
    """Turn a device off. Any signed-in user may close any open session.

    Returns:
        dict: Same shape as :func:`turn_on_device_action`.
    """
    rejected = _check_device_request(user, device_id, device_ip)
    if rejected is not None:
        return rejected

    try:
        active = await turn_off_device(session, device_id, device_ip)
        data = ActiveDeviceView.model_validate(active).model_dump(mode="json")
    except Exception as exc:
        logger.error("Error turning off device: %s", exc)
        return {"success": False, "error": describe_error(exc, "Failed to turn off device")}

    await invalidate_devices_cache()
    return {"success": True, "data": data}


async def update_estimated_time_action(
    session: AsyncSession,
    user: SessionUser | None,
    form: EstimatedTimeForm,
    now: datetime | None = None,
) -> dict:
    """Validate and store a new estimated end time for the caller's session.

    Runs the guards of :mod:`energyshare.services.estimated_time` in order
    and stops at the first failure.

    Args:
        session: Async SQLAlchemy session.
        user: Caller, or None when not signed in.
        form: Submitted form.
        now: Reference instant; defaults to the current time.

    Returns:
        dict: ``{"message", "updatedTime"}`` on success, otherwise
        ``{"message", "error"}``.
    """
    try:
        checked = precheck_estimated_time(user, form, now)
        if isinstance(checked, GuardFailure):
            return checked.as_result()
        estimated = checked

        active = await get_active_device(session, form.device_id.strip())
        failure = check_session_owner(active, user)
        if failure is None:
            failure = check_changed(estimated, active.usage.estimated_use_time)
        if failure is None:
            failure = check_within_session_window(estimated, active.usage.start_date)
        if failure is not None:
            return failure.as_result()

        await update_estimated_time(session, active.usage.id, estimated)
        logger.info(
            "Estimated time of usage %s set to %s", active.usage.id, estimated.isoformat(),
            extra={
                "device_id": active.device_id,
                "usage_id": active.usage.id,
                "user_email": user.email,
            },
        )
    except Exception as exc:
        logger.error("Failed to update date: %s", exc)
        await session.rollback()
        return {
            "message": describe_error(exc, SERVER_ERROR_MESSAGE),
            "error": ErrorTag.SERVER.value,
        }

    await invalidate_devices_cache()
    return {"message": SUCCESS_MESSAGE, "updatedTime": estimated.isoformat()}


def _series_to_json(series: list[dict]) -> list[dict]:
    return [
        {
            "date": item["date"].isoformat(),
            "deviceId": item["device_id"],
            "consumption": float(item["consumption"]),
        }
        for item in series
    ]


async def get_usage_data_action(
    session: AsyncSession,
    user: SessionUser | None,
    period: str,
    date_range: DateRange,
    device_id: str | None = None,
) -> dict:
    """Build the caller's and the household's consumption series.

    Args:
        session: Async SQLAlchemy session.
        user: Caller, or None when not signed in.
        period: Selected time period.
        date_range: Range of the selected period.
        device_id: Restrict to one device when given.

    Returns:
        dict: ``{"message", "data": {"userConsumption", "totalConsumption"}}``
        or ``{"message", "error"}``.
    """
    if user is None or not user.email:
        return {"message": "You must be logged in", "error": ErrorTag.UNAUTHORIZED.value}
    if period not in TIME_PERIODS:
        return {"message": "Invalid time period", "error": ErrorTag.VALIDATION.value}

    try:
        rows = await get_usage_data(
            session, date_range.start, date_range.end, device_id=device_id,
        )
    except Exception as exc:
        logger.error("Failed to fetch usage data: %s", exc)
        return {"message": "Failed to fetch usage data", "error": ErrorTag.SERVER.value}

    user_series, total_series = split_consumption(
        rows, user.email, period, date_range.start,
    )
    return {
        "message": "Success",
        "data": {
            "userConsumption": _series_to_json(user_series),
            "totalConsumption": _series_to_json(total_series),
        },
    }
