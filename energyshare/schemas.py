"""
Pydantic views of the ORM models.

Used by actions and routes to turn ORM rows into JSON-safe dicts. Big
integer usage ids are emitted as strings, decimals as strings, and
timestamps as ISO-8601 UTC.

CHANGELOG:
- 2026-10-04: Add busy-device and status listing views (STORY-107)
- 2026-09-30: Initial creation (STORY-104)

TODO:
- None
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

from energyshare.services.time_utils import ensure_utc

BigIntId = Annotated[int, PlainSerializer(str, return_type=str)]
UtcDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class DeviceView(BaseModel):
    """A device row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    mac_address: str
    ip_address: str
    alias: str
    is_archived: bool
    previous_aliases: list[str] | None = None


class DeviceOptionView(BaseModel):
    """Device entry for selectors."""

    id: str
    alias: str


class UsageView(BaseModel):
    """A usage row."""

    model_config = ConfigDict(from_attributes=True)

    id: BigIntId
    user_email: str
    start_date: UtcDateTime
    end_date: UtcDateTime
    estimated_use_time: UtcDateTime | None = None
    consumption: Decimal
    charge: Decimal
    device_id: str


class UsageWithDeviceView(UsageView):
    """A usage row with its device, as listed by ``GET /api/usage``."""

    device: DeviceView


class ActiveUsageView(BaseModel):
    """Active marker nested in a busy device."""

    model_config = ConfigDict(from_attributes=True)

    device_id: str
    usage_record_id: BigIntId
    usage: UsageView


class ActiveDeviceView(ActiveUsageView):
    """Active marker with its device, returned by turn-on and turn-off."""

    device: DeviceView


class BusyDeviceView(DeviceView):
    """A device with an open usage session."""

    active_device: ActiveUsageView


class DevicesWithStatusView(BaseModel):
    """Free/busy split of the non-archived devices."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    free_devices: list[DeviceView] = Field(alias="freeDevices")
    busy_devices: list[BusyDeviceView] = Field(alias="busyDevices")
