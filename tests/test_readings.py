"""
Tests for device reading sources (STORY-103).

Covers the HTTP device-control client (URL, headers, payload validation,
error mapping), the simulated source, and source selection.

CHANGELOG:
- 2026-10-03: Add payload validation tests (STORY-105)
- 2026-09-28: Initial creation (STORY-103)

TODO:
- None
"""

import base64
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from energyshare.config import Settings
from energyshare.errors import ReadingSourceError
from energyshare.services.readings import (
    HttpReadingSource,
    SimulatedReadingSource,
    seeded_reading,
    select_reading_source,
)

BASE_URL = "https://plugs.example.com/api"
DEVICE_IP = "192.168.1.50"
STARTED_AT = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _mock_client(response: MagicMock | None = None, side_effect: Exception | None = None):
    """Build a patched httpx.AsyncClient class and its instance."""
    instance = AsyncMock()
    if side_effect is not None:
        instance.get.side_effect = side_effect
    else:
        instance.get.return_value = response
    client_cls = MagicMock()
    client_cls.return_value.__aenter__.return_value = instance
    client_cls.return_value.__aexit__.return_value = False
    return client_cls, instance


def _response(payload=None, status_code: int = 200, json_error: bool = False) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if status_code >= 400:
        request = httpx.Request("GET", BASE_URL)
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error",
            request=request,
            response=httpx.Response(status_code, request=request),
        )
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


# ---------------------------------------------------------------------------
# HTTP reading source
# ---------------------------------------------------------------------------


class TestHttpReadingSource:
    """Tests for the device-control endpoint client."""

    @pytest.mark.asyncio
    async def test_turn_on_calls_on_endpoint_with_basic_header(self) -> None:
        client_cls, instance = _mock_client(
            _response({"status": 1, "usage": {"month_energy": 123.45}})
        )
        source = HttpReadingSource(BASE_URL + "/", "plug", "s3cret", timeout=3.0)

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            reading = await source.turn_on(DEVICE_IP, STARTED_AT)

        assert reading == Decimal("123.45")
        client_cls.assert_called_once_with(timeout=3.0)
        url = instance.get.call_args.args[0]
        headers = instance.get.call_args.kwargs["headers"]
        assert url == f"{BASE_URL}/on/{DEVICE_IP}"
        expected = base64.b64encode(b"plug:s3cret").decode()
        assert headers["x-forwarded-authybasic"] == f"Basic {expected}"
        assert headers["Cache-Control"] == "no-cache"

    @pytest.mark.asyncio
    async def test_turn_off_calls_off_endpoint(self) -> None:
        client_cls, instance = _mock_client(
            _response({"status": 0, "usage": {"month_energy": 130}})
        )
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            reading = await source.turn_off(DEVICE_IP, STARTED_AT)

        assert reading == Decimal("130")
        assert instance.get.call_args.args[0] == f"{BASE_URL}/off/{DEVICE_IP}"

    @pytest.mark.asyncio
    async def test_wrong_status_flag_rejected(self) -> None:
        client_cls, _ = _mock_client(_response({"status": 0, "usage": {"month_energy": 1}}))
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            with pytest.raises(ReadingSourceError, match="Unexpected response"):
                await source.turn_on(DEVICE_IP, STARTED_AT)

    @pytest.mark.asyncio
    async def test_missing_usage_block_rejected(self) -> None:
        client_cls, _ = _mock_client(_response({"status": 1}))
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            with pytest.raises(ReadingSourceError):
                await source.turn_on(DEVICE_IP, STARTED_AT)

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self) -> None:
        client_cls, _ = _mock_client(_response(status_code=502))
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            with pytest.raises(ReadingSourceError, match="HTTP 502"):
                await source.turn_on(DEVICE_IP, STARTED_AT)

    @pytest.mark.asyncio
    async def test_connection_error_raises(self) -> None:
        client_cls, _ = _mock_client(side_effect=httpx.ConnectError("refused"))
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            with pytest.raises(ReadingSourceError, match="request failed"):
                await source.turn_off(DEVICE_IP, STARTED_AT)

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        client_cls, _ = _mock_client(_response(json_error=True))
        source = HttpReadingSource(BASE_URL, "plug", "s3cret")

        with patch("energyshare.services.readings.httpx.AsyncClient", client_cls):
            with pytest.raises(ReadingSourceError, match="invalid JSON"):
                await source.turn_on(DEVICE_IP, STARTED_AT)


# ---------------------------------------------------------------------------
# Simulated reading source
# ---------------------------------------------------------------------------


class TestSimulatedReadingSource:
    """Tests for the deterministic fake source."""

    def test_seeded_reading_is_deterministic_and_bounded(self) -> None:
        first = seeded_reading(STARTED_AT)
        assert first == seeded_reading(STARTED_AT)
        assert Decimal(0) <= first < Decimal(100)
        assert first == first.to_integral_value()

    def test_seed_ignores_timezone_representation(self) -> None:
        naive = STARTED_AT.replace(tzinfo=None)
        assert seeded_reading(naive) == seeded_reading(STARTED_AT)

    @pytest.mark.asyncio
    async def test_turn_on_returns_seeded_value(self) -> None:
        source = SimulatedReadingSource(delay=0)
        assert await source.turn_on(DEVICE_IP, STARTED_AT) == seeded_reading(STARTED_AT)

    @pytest.mark.asyncio
    async def test_turn_off_adds_ten_kwh_per_hour(self) -> None:
        source = SimulatedReadingSource(delay=0)
        now = STARTED_AT + timedelta(hours=2)

        with patch("energyshare.services.readings.utc_now", return_value=now):
            reading = await source.turn_off(DEVICE_IP, STARTED_AT)

        assert reading == seeded_reading(STARTED_AT) + Decimal(20)

    @pytest.mark.asyncio
    async def test_turn_off_before_start_adds_nothing(self) -> None:
        source = SimulatedReadingSource(delay=0)
        now = STARTED_AT - timedelta(minutes=5)

        with patch("energyshare.services.readings.utc_now", return_value=now):
            reading = await source.turn_off(DEVICE_IP, STARTED_AT)

        assert reading == seeded_reading(STARTED_AT)

    @pytest.mark.asyncio
    async def test_turn_off_requires_start(self) -> None:
        with pytest.raises(ReadingSourceError):
            await SimulatedReadingSource(delay=0).turn_off(DEVICE_IP, None)

    @pytest.mark.asyncio
    async def test_delay_is_awaited(self) -> None:
        with patch("energyshare.services.readings.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await SimulatedReadingSource(delay=0.2).turn_on(DEVICE_IP, STARTED_AT)
        sleep.assert_awaited_once_with(0.2)


# ---------------------------------------------------------------------------
# Source selection
# ---------------------------------------------------------------------------


class TestSelectReadingSource:
    """Tests for select_reading_source."""

    def test_defaults_to_simulated(self) -> None:
        source = select_reading_source(Settings(), DEVICE_IP)
        assert isinstance(source, SimulatedReadingSource)
        assert source.delay == 0

    def test_special_ip_uses_http(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPECIAL_DEVICE_IPS", f"10.0.0.1, {DEVICE_IP}")
        monkeypatch.setenv("DEVICE_API_URL", BASE_URL)
        source = select_reading_source(Settings(), DEVICE_IP)
        assert isinstance(source, HttpReadingSource)
        assert source.base_url == BASE_URL

    def test_other_ip_stays_simulated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPECIAL_DEVICE_IPS", "10.0.0.1")
        assert isinstance(select_reading_source(Settings(), DEVICE_IP), SimulatedReadingSource)

    def test_global_flag_uses_http(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("USE_REAL_DEVICE_API", "true")
        monkeypatch.setenv("DEVICE_API_TIMEOUT_S", "2.5")
        source = select_reading_source(Settings(), DEVICE_IP)
        assert isinstance(source, HttpReadingSource)
        assert source.timeout == 2.5
