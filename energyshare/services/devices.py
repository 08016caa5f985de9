"""
Device queries and the turn-on/turn-off usage-session lifecycle.

A device is busy exactly when an ``active_device`` row references it.
Turning a device on reads its meter, then inserts the open ``usage`` row
and the ``active_device`` marker in one transaction. Turning it off reads
the meter again, stores the consumed delta on the usage row and removes
the marker in one transaction.

The reading fetch happens before any write, so a failing device endpoint
leaves the database untouched. The primary key on
``active_device.device_id`` is the only guard against two concurrent
turn-ons of the same device; the loser fails at insert time.

CHANGELOG:
- 2026-10-19: Wrap turn-off lookup failures (STORY-110)
- 2026-10-04: Add free/busy status listing (STORY-107)
- 2026-10-01: Fail fast on turn-off of an inactive device (STORY-105)
- 2026-09-29: Initial creation (STORY-104)

TODO:
- None
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from energyshare.config import get_settings
from energyshare.db.models import ActiveDevice, Device, Usage
from energyshare.errors import (
    DeviceNotActiveError,
    DeviceOperationError,
    describe_error,
)
from energyshare.services.readings import DeviceReadingSource, select_reading_source
from energyshare.services.time_utils import round_up_2dp, utc_now

logger = logging.getLogger(__name__)

DEVICE_NOT_ACTIVE_MESSAGE = "Device is not currently active or missing usage record"


@dataclass
class DevicesWithStatus:
    """Non-archived devices split by whether they have an open session.

    Attributes:
        free_devices: Devices without an active marker, ordered by alias.
        busy_devices: Devices with an active marker, ordered by alias. Their
            ``active_device.usage`` is loaded.
    """

    free_devices: list[Device] = field(default_factory=list)
    busy_devices: list[Device] = field(default_factory=list)


async def get_all_devices(session: AsyncSession) -> list[Device]:
    """Return all non-archived devices ordered by alias."""
    stmt = select(Device).where(Device.is_archived.is_(False)).order_by(Device.alias)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_all_devices_only_id_and_alias(session: AsyncSession) -> list[tuple[str, str]]:
    """Return ``(id, alias)`` pairs of non-archived devices for selectors."""
    stmt = (
        select(Device.id, Device.alias)
        .where(Device.is_archived.is_(False))
        .order_by(Device.alias)
    )
    result = await session.execute(stmt)
    return [(row.id, row.alias) for row in result.all()]


async def get_device_by_id(session: AsyncSession, device_id: str) -> Device | None:
    """Return the device with *device_id*, archived or not."""
    return await session.get(Device, device_id)


async def get_device_usage(session: AsyncSession, device_id: str) -> list[Usage]:
    """Return the usage history of a device, newest first."""
    stmt = (
        select(Usage)
        .where(Usage.device_id == device_id)
        .order_by(Usage.start_date.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_active_device(session: AsyncSession, device_id: str) -> ActiveDevice | None:
    """Return the active marker of a device with its usage and device loaded.

    Args:
        session: Async SQLAlchemy session.
        device_id: Device to look up.

    Returns:
        ActiveDevice or None: None when the device has no open session.
    """
    stmt = (
        select(ActiveDevice)
        .where(ActiveDevice.device_id == device_id)
        .options(selectinload(ActiveDevice.usage), selectinload(ActiveDevice.device))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_devices_with_status(session: AsyncSession) -> DevicesWithStatus:
    """Split non-archived devices into free and busy, each ordered by alias."""
    stmt = (
        select(Device)
        .where(Device.is_archived.is_(False))
        .options(selectinload(Device.active_device).selectinload(ActiveDevice.usage))
        .order_by(Device.alias)
    )
    result = await session.execute(stmt)

    status = DevicesWithStatus()
    for device in result.scalars().all():
        if device.active_device is not None:
            status.busy_devices.append(device)
        else:
            status.free_devices.append(device)
    return status


async def turn_on_device(
    session: AsyncSession,
    device_id: str,
    device_ip: str,
    user_email: str,
    estimated_use_time: datetime | None = None,
    *,
    reading_source: DeviceReadingSource | None = None,
) -> ActiveDevice:
    """Open a usage session for a device.

    Reads the meter, then inserts a ``usage`` row (start = end = now,
    consumption = the reading rounded up to two decimals, charge 0) and the
    ``active_device`` marker pointing at it, committing both together.

    Args:
        session: Async SQLAlchemy session.
        device_id: Device to turn on.
        device_ip: LAN address used to reach the device.
        user_email: Email of the user opening the session.
        estimated_use_time: Optional estimated session end.
        reading_source: Meter source; chosen from settings when omitted.

    Returns:
        ActiveDevice: The new marker with ``usage`` and ``device`` loaded.

    Raises:
        DeviceOperationError: On any failure, including a concurrent
            turn-on of the same device. Nothing is persisted.
    """
    try:
        device = await get_device_by_id(session, device_id)
        if device is None or device.is_archived:
            raise DeviceOperationError(f"Device {device_id} not found")

        if reading_source is None:
            reading_source = select_reading_source(get_settings(), device_ip)

        started_at = utc_now()
        reading = await reading_source.turn_on(device_ip, started_at)

        usage = Usage(
            user_email=user_email,
            start_date=started_at,
            end_date=started_at,
            estimated_use_time=estimated_use_time,
            consumption=round_up_2dp(reading),
            charge=Decimal("0.00"),
            device_id=device_id,
        )
        session.add(usage)
        await session.flush()

        session.add(ActiveDevice(device_id=device_id, usage_record_id=usage.id))
        await session.flush()
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.error("Error turning on device: %s", exc)
        raise DeviceOperationError(
            f"Failed to turn on device: {describe_error(exc)}"
        ) from exc

    logger.info(
        "Device %s turned on by %s (usage %s)", device_id, user_email, usage.id,
        extra={"device_id": device_id, "usage_id": usage.id, "user_email": user_email},
    )
    return await get_active_device(session, device_id)


async def turn_off_device(
    session: AsyncSession,
    device_id: str,
    device_ip: str,
    *,
    reading_source: DeviceReadingSource | None = None,
) -> ActiveDevice:
    """Close the open usage session of a device.

    The final meter reading is taken with the session start so simulated
    sources can reproduce the initial value. The consumed energy is
    ``max(0, final - initial)`` rounded up to two decimals.

    Args:
        session: Async SQLAlchemy session.
        device_id: Device to turn off.
        device_ip: LAN address used to reach the device.
        reading_source: Meter source; chosen from settings when omitted.

    Returns:
        ActiveDevice: The removed marker, with the closed usage row embedded.

    Raises:
        DeviceNotActiveError: The device has no open session. No reading is
            taken and nothing is written.
        DeviceOperationError: Any later failure. Nothing is persisted.
    """
    try:
        active = await get_active_device(session, device_id)
    except Exception as exc:
        await session.rollback()
        logger.error("Error turning off device: %s", exc)
        raise DeviceOperationError(
            f"Failed to turn off device: {describe_error(exc)}"
        ) from exc
    if active is None or active.usage is None:
        logger.error("Error turning off device: %s (%s)", DEVICE_NOT_ACTIVE_MESSAGE, device_id)
        raise DeviceNotActiveError(DEVICE_NOT_ACTIVE_MESSAGE)

    usage = active.usage
    try:
        if reading_source is None:
            reading_source = select_reading_source(get_settings(), device_ip)

        final_reading = await reading_source.turn_off(device_ip, usage.start_date)
        consumed = max(Decimal(0), Decimal(final_reading) - Decimal(usage.consumption))

        usage.end_date = utc_now()
        usage.consumption = round_up_2dp(consumed)
        await session.delete(active)
        await session.flush()
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.error("Error turning off device: %s", exc)
        raise DeviceOperationError(
            f"Failed to turn off device: {describe_error(exc)}"
        ) from exc

    logger.info(
        "Device %s turned off (usage %s, %s kWh)", device_id, usage.id, usage.consumption,
        extra={"device_id": device_id, "usage_id": usage.id},
    )
    return active
