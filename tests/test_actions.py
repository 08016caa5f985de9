"""
Tests for the device and usage-data actions (STORY-105, STORY-109).

Device actions run against in-memory SQLite with the simulated reading
source; cache invalidation is patched out. The usage-data action is
checked with a patched query.

CHANGELOG:
- 2026-10-19: Turn-on estimate window tests (STORY-110)
- 2026-10-06: Add usage-data action tests (STORY-109)
- 2026-10-01: Initial creation (STORY-105)

TODO:
- None
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from conftest import MEMBER_EMAIL, OTHER_MEMBER_EMAIL, open_session
from energyshare.auth.roles import Role
from energyshare.auth.session import SessionUser
from energyshare.services.actions import (
    ESTIMATE_IN_PAST,
    ESTIMATE_TOO_FAR,
    SIGN_IN_REQUIRED,
    get_usage_data_action,
    turn_off_device_action,
    turn_on_device_action,
)
from energyshare.services.aggregation import DateRange
from energyshare.services.devices import DEVICE_NOT_ACTIVE_MESSAGE, get_active_device

MEMBER = SessionUser(email=MEMBER_EMAIL, name="Member", role=Role.MEMBER)
GUEST = SessionUser(email="guest@example.com", name="Guest", role=Role.GUEST)
NOW = datetime(2026, 3, 10, 12, 0, 20, tzinfo=UTC)
WEEK = DateRange.build(
    datetime(2026, 3, 8, tzinfo=UTC),
    datetime(2026, 3, 14, 23, 59, 59, 999999, tzinfo=UTC),
)


@pytest.fixture(autouse=True)
def invalidate():
    """Patch cache invalidation for every test."""
    with patch(
        "energyshare.services.actions.invalidate_devices_cache", new_callable=AsyncMock,
    ) as mock:
        yield mock


# ---------------------------------------------------------------------------
# Request checks
# ---------------------------------------------------------------------------


class TestDeviceRequestChecks:
    """Both switching actions reject incomplete requests without side effects."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [turn_on_device_action, turn_off_device_action])
    async def test_signed_out(self, action, invalidate) -> None:
        session = AsyncMock()
        result = await action(session, None, "dev-kettle", "192.168.1.11")
        assert result == {"success": False, "error": SIGN_IN_REQUIRED}
        session.execute.assert_not_awaited()
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [turn_on_device_action, turn_off_device_action])
    async def test_missing_device_id(self, action) -> None:
        result = await action(AsyncMock(), MEMBER, "", "192.168.1.11")
        assert result == {"success": False, "error": "Device ID is required"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [turn_on_device_action, turn_off_device_action])
    async def test_missing_device_ip(self, action) -> None:
        result = await action(AsyncMock(), MEMBER, "dev-kettle", None)
        assert result == {"success": False, "error": "Device ip is required"}


# ---------------------------------------------------------------------------
# Turn on / turn off
# ---------------------------------------------------------------------------


class TestSwitchingActions:
    """Tests for the switching actions against SQLite."""

    @pytest.mark.asyncio
    async def test_turn_on_returns_serialized_active_device(
        self, db_session, devices, invalidate,
    ) -> None:
        estimate = datetime.now(UTC) + timedelta(hours=1)

        result = await turn_on_device_action(
            db_session, MEMBER, "dev-kettle", "192.168.1.11", estimate,
        )

        assert result["success"] is True
        data = result["data"]
        assert data["device_id"] == "dev-kettle"
        assert isinstance(data["usage_record_id"], str)
        assert data["usage"]["id"] == data["usage_record_id"]
        assert data["usage"]["user_email"] == MEMBER_EMAIL
        assert data["device"]["alias"] == "Kettle"
        assert Decimal(data["usage"]["consumption"]) >= 0
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("offset", "error"),
        [
            (timedelta(days=-1), ESTIMATE_IN_PAST),
            (timedelta(seconds=30), ESTIMATE_IN_PAST),
            (timedelta(hours=8, minutes=1), ESTIMATE_TOO_FAR),
            (timedelta(days=30), ESTIMATE_TOO_FAR),
        ],
    )
    async def test_turn_on_rejects_estimate_outside_window(
        self, db_session, devices, invalidate, offset, error,
    ) -> None:
        result = await turn_on_device_action(
            db_session, MEMBER, "dev-kettle", "192.168.1.11", NOW + offset, now=NOW,
        )

        assert result == {"success": False, "error": error}
        assert await get_active_device(db_session, "dev-kettle") is None
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "offset", [timedelta(minutes=1), timedelta(hours=8, seconds=30)],
    )
    async def test_turn_on_accepts_estimate_at_window_bounds(
        self, db_session, devices, offset,
    ) -> None:
        result = await turn_on_device_action(
            db_session, MEMBER, "dev-kettle", "192.168.1.11", NOW + offset, now=NOW,
        )

        assert result["success"] is True
        assert result["data"]["usage"]["estimated_use_time"] is not None

    @pytest.mark.asyncio
    async def test_turn_on_busy_device_reports_failure(
        self, db_session, devices, invalidate,
    ) -> None:
        await open_session(db_session, "dev-kettle", OTHER_MEMBER_EMAIL, datetime.now(UTC))

        result = await turn_on_device_action(db_session, MEMBER, "dev-kettle", "192.168.1.11")

        assert result["success"] is False
        assert result["error"].startswith("Failed to turn on device")
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_turn_off_inactive_device(self, db_session, devices, invalidate) -> None:
        result = await turn_off_device_action(db_session, MEMBER, "dev-kettle", "192.168.1.11")

        assert result == {"success": False, "error": DEVICE_NOT_ACTIVE_MESSAGE}
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_any_user_may_turn_off(self, db_session, devices, invalidate) -> None:
        start = datetime.now(UTC) - timedelta(minutes=20)
        await open_session(db_session, "dev-dryer", OTHER_MEMBER_EMAIL, start)

        result = await turn_off_device_action(db_session, GUEST, "dev-dryer", "192.168.1.12")

        assert result["success"] is True
        assert result["data"]["usage"]["user_email"] == OTHER_MEMBER_EMAIL
        assert await get_active_device(db_session, "dev-dryer") is None
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_service_error_without_message_uses_fallback(self) -> None:
        with patch(
            "energyshare.services.actions.turn_off_device",
            new_callable=AsyncMock,
            side_effect=RuntimeError(),
        ):
            result = await turn_off_device_action(
                AsyncMock(), MEMBER, "dev-kettle", "192.168.1.11",
            )

        assert result == {"success": False, "error": "Failed to turn off device"}


# ---------------------------------------------------------------------------
# Usage data
# ---------------------------------------------------------------------------


class TestUsageDataAction:
    """Tests for get_usage_data_action."""

    @pytest.mark.asyncio
    async def test_signed_out(self) -> None:
        result = await get_usage_data_action(AsyncMock(), None, "current week", WEEK)
        assert result == {"message": "You must be logged in", "error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_invalid_period(self) -> None:
        result = await get_usage_data_action(AsyncMock(), MEMBER, "last year", WEEK)
        assert result == {"message": "Invalid time period", "error": "Validation Error"}

    @pytest.mark.asyncio
    async def test_query_failure(self) -> None:
        with patch(
            "energyshare.services.actions.get_usage_data",
            new_callable=AsyncMock,
            side_effect=RuntimeError("boom"),
        ):
            result = await get_usage_data_action(AsyncMock(), MEMBER, "current week", WEEK)

        assert result == {"message": "Failed to fetch usage data", "error": "Server Error"}

    @pytest.mark.asyncio
    async def test_series_shape(self) -> None:
        day = datetime(2026, 3, 10, tzinfo=UTC)
        rows = [
            {"date": day, "device_id": "dev-kettle", "user_email": MEMBER_EMAIL,
             "consumption": Decimal("1.25")},
            {"date": day, "device_id": "dev-kettle", "user_email": OTHER_MEMBER_EMAIL,
             "consumption": Decimal("2.00")},
        ]
        with patch(
            "energyshare.services.actions.get_usage_data",
            new_callable=AsyncMock,
            return_value=rows,
        ) as query:
            result = await get_usage_data_action(
                AsyncMock(), MEMBER, "current week", WEEK, device_id="dev-kettle",
            )

        assert query.await_args.kwargs["device_id"] == "dev-kettle"
        assert result["message"] == "Success"
        week_start = "2026-03-08T00:00:00+00:00"
        assert result["data"] == {
            "userConsumption": [
                {"date": week_start, "deviceId": "dev-kettle", "consumption": 1.25},
            ],
            "totalConsumption": [
                {"date": week_start, "deviceId": "dev-kettle", "consumption": 3.25},
            ],
        }
