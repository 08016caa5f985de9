"""
Device meter reading sources used by the turn-on/turn-off lifecycle.

A reading source switches a smart plug on or off and reports its meter
reading (``month_energy``, kWh). Two variants exist:

- :class:`HttpReadingSource` calls the device-control endpoint
  ``GET {DEVICE_API_URL}/on/{ip}`` or ``/off/{ip}``.
- :class:`SimulatedReadingSource` returns deterministic fake readings for
  devices that are not wired to the endpoint.

:func:`select_reading_source` picks the variant from settings and the
device IP.

CHANGELOG:
- 2026-10-03: Validate endpoint payloads with pydantic models (STORY-105)
- 2026-09-28: Initial creation (STORY-103)

TODO:
- None
"""

import asyncio
import base64
import logging
import math
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from energyshare.config import Settings
from energyshare.errors import ReadingSourceError
from energyshare.services.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Simulated accrual while a device is on.
_SIMULATED_KWH_PER_HOUR = Decimal("10")
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class DeviceUsage(BaseModel):
    """Meter block of a device-control response."""

    month_energy: Decimal


class DeviceOnResponse(BaseModel):
    """Payload returned by ``GET /on/{ip}``."""

    status: Literal[1]
    usage: DeviceUsage


class DeviceOffResponse(BaseModel):
    """Payload returned by ``GET /off/{ip}``."""

    status: Literal[0]
    usage: DeviceUsage


class DeviceReadingSource(Protocol):
    """Switch a device and report its meter reading in kWh."""

    async def turn_on(self, device_ip: str, requested_at: datetime) -> Decimal:
        """Switch the device on and return the reading at *requested_at*."""
        ...

    async def turn_off(self, device_ip: str, started_at: datetime) -> Decimal:
        """Switch the device off and return the final reading."""
        ...


class HttpReadingSource:
    """Reading source backed by the device-control HTTP endpoint.

    Args:
        base_url: Endpoint base URL, without trailing slash.
        user: Basic-auth user.
        password: Basic-auth password.
        timeout: Request timeout in seconds.
    """

    def __init__(self, base_url: str, user: str, password: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        credentials = base64.b64encode(f"{user}:{password}".encode()).decode()
        self._headers = {
            "x-forwarded-authybasic": f"Basic {credentials}",
            "Cache-Control": "no-cache",
        }

    async def _get(self, path: str) -> dict:
        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=self._headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Device API HTTP error %s for %s",
                exc.response.status_code,
                url,
            )
            raise ReadingSourceError(
                f"Device API returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Device API request failed for %s: %s", url, exc)
            raise ReadingSourceError(f"Device API request failed: {exc}") from exc
        except ValueError as exc:
            raise ReadingSourceError("Device API returned invalid JSON") from exc

    async def turn_on(self, device_ip: str, requested_at: datetime) -> Decimal:
        """Call ``/on/{ip}`` and return ``usage.month_energy``.

        ``requested_at`` is unused: the meter reports an absolute reading.
        """
        payload = await self._get(f"on/{device_ip}")
        try:
            return DeviceOnResponse.model_validate(payload).usage.month_energy
        except ValidationError as exc:
            raise ReadingSourceError("Unexpected response from device API") from exc

    async def turn_off(self, device_ip: str, started_at: datetime) -> Decimal:
        """Call ``/off/{ip}`` and return ``usage.month_energy``.

        ``started_at`` is unused: the meter reports an absolute reading.
        """
        payload = await self._get(f"off/{device_ip}")
        try:
            return DeviceOffResponse.model_validate(payload).usage.month_energy
        except ValidationError as exc:
            raise ReadingSourceError("Unexpected response from device API") from exc


def seeded_reading(moment: datetime) -> Decimal:
    """Deterministic pseudo-random reading in ``[0, 100)`` for *moment*.

    Seeded by the epoch milliseconds of *moment*, so the turn-off side can
    reproduce the value that was returned at turn-on.
    """
    seed = (ensure_utc(moment) - _EPOCH) // timedelta(milliseconds=1)
    x = math.sin(seed) * 10000
    return Decimal(math.floor((x - math.floor(x)) * 100))


class SimulatedReadingSource:
    """Fake reading source for devices without a control endpoint.

    Args:
        delay: Seconds to sleep before answering, to mimic network latency.
    """

    def __init__(self, delay: float = 0.2):
        self.delay = delay

    async def _wait(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)

    async def turn_on(self, device_ip: str, requested_at: datetime) -> Decimal:
        await self._wait()
        return seeded_reading(requested_at)

    async def turn_off(self, device_ip: str, started_at: datetime) -> Decimal:
        """Return the turn-on reading plus 10 kWh per hour the device was on."""
        if started_at is None:
            raise ReadingSourceError("started_at must be provided for turn-off")
        await self._wait()
        started_at = ensure_utc(started_at)
        hours = Decimal(str((utc_now() - started_at).total_seconds() / 3600))
        return seeded_reading(started_at) + max(hours, Decimal(0)) * _SIMULATED_KWH_PER_HOUR


def select_reading_source(settings: Settings, device_ip: str) -> DeviceReadingSource:
    """Return the reading source to use for *device_ip*.

    The HTTP endpoint is used when ``USE_REAL_DEVICE_API`` is set or when the
    IP is listed in ``SPECIAL_DEVICE_IPS``; every other device is simulated.
    """
    if settings.USE_REAL_DEVICE_API or device_ip in settings.special_device_ips:
        return HttpReadingSource(
            settings.DEVICE_API_URL,
            settings.DEVICE_API_USER,
            settings.DEVICE_API_PWD,
            timeout=settings.DEVICE_API_TIMEOUT_S,
        )
    return SimulatedReadingSource(delay=settings.SIMULATED_DELAY_S)
