"""
Device API endpoints: status listing, selector options and switching.

``GET /api/devices`` serves the free/busy split through the Redis cache,
keyed by the generation current before the query; turn-on and turn-off
bump the generation on success. The switching routes return the action
result body unchanged, with HTTP 401 when the caller is not signed in.

CHANGELOG:
- 2026-10-19: Read and write the listing under one cache generation (STORY-110)
- 2026-10-04: Cache the status listing in Redis (STORY-107)
- 2026-10-01: Add turn-on/turn-off routes (STORY-105)
- 2026-09-29: Initial creation (STORY-104)

TODO:
- None
"""

import logging
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from energyshare.api.deps import CurrentUser, DbSession, OptionalUser
from energyshare.cache.redis_client import cache_get_json, cache_set_json, devices_status_key
from energyshare.schemas import DeviceOptionView, DevicesWithStatusView
from energyshare.services.actions import (
    SIGN_IN_REQUIRED,
    turn_off_device_action,
    turn_on_device_action,
)
from energyshare.services.devices import (
    get_all_devices_only_id_and_alias,
    get_devices_with_status,
)
from energyshare.services.time_utils import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


# ---------------------------------------------------------------------------
# Pydantic request schemas
# ---------------------------------------------------------------------------


class TurnOnRequest(BaseModel):
    """Body of ``POST /api/devices/{device_id}/on``.

    Attributes:
        device_ip: LAN address of the device.
        estimated_use_time: Optional estimated session end.
    """

    device_ip: str = Field(alias="deviceIp")
    estimated_use_time: datetime | None = Field(default=None, alias="estimatedUseTime")


class TurnOffRequest(BaseModel):
    """Body of ``POST /api/devices/{device_id}/off``."""

    device_ip: str = Field(alias="deviceIp")


def _action_response(result: dict) -> JSONResponse:
    status_code = 401 if result.get("error") == SIGN_IN_REQUIRED else 200
    return JSONResponse(status_code=status_code, content=result)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("")
async def list_devices(db: DbSession, user: CurrentUser) -> JSONResponse:
    """Return non-archived devices split into free and busy.

    Returns:
        JSONResponse: ``{"freeDevices": [...], "busyDevices": [...]}``, or
            HTTP 500 with ``{"error": "Failed to fetch devices"}``.
    """
    cache_key = await devices_status_key()
    if cache_key is not None:
        cached = await cache_get_json(cache_key)
        if cached is not None:
            return JSONResponse(content=cached)

    try:
        status = await get_devices_with_status(db)
        data = DevicesWithStatusView.model_validate(status).model_dump(
            mode="json", by_alias=True,
        )
    except Exception:
        logger.error("Error fetching devices", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch devices"})

    if cache_key is not None:
        await cache_set_json(cache_key, data)
    return JSONResponse(content=data)


@router.get("/options", response_model=list[DeviceOptionView])
async def list_device_options(db: DbSession, user: CurrentUser) -> list[DeviceOptionView]:
    """Return ``{id, alias}`` pairs of non-archived devices for selectors."""
    pairs = await get_all_devices_only_id_and_alias(db)
    return [DeviceOptionView(id=device_id, alias=alias) for device_id, alias in pairs]


@router.post("/{device_id}/on")
async def turn_on(
    device_id: str,
    request: TurnOnRequest,
    db: DbSession,
    user: OptionalUser,
) -> JSONResponse:
    """Turn a device on for the signed-in user.

    Args:
        device_id: Device to turn on.
        request: Device IP and optional estimated end.
        db: Async database session.
        user: Signed-in user, or None.

    Returns:
        JSONResponse: The turn-on action result.
    """
    estimated = request.estimated_use_time
    if estimated is not None:
        estimated = ensure_utc(estimated)
    result = await turn_on_device_action(db, user, device_id, request.device_ip, estimated)
    return _action_response(result)


@router.post("/{device_id}/off")
async def turn_off(
    device_id: str,
    request: TurnOffRequest,
    db: DbSession,
    user: OptionalUser,
) -> JSONResponse:
    """Turn a device off.

    Returns:
        JSONResponse: The turn-off action result.
    """
    result = await turn_off_device_action(db, user, device_id, request.device_ip)
    return _action_response(result)
