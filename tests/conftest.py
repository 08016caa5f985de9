"""
Shared test fixtures for energyshare tests.

Provides environment defaults, an in-memory SQLite database built from the
ORM metadata, seeded devices, and session-token helpers.

CHANGELOG:
- 2026-10-04: Add seeded device fixtures (STORY-107)
- 2026-09-30: Add aiosqlite engine and session fixtures (STORY-104)
- 2026-09-26: Initial creation (STORY-101)

TODO:
- None
"""

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from energyshare.config import get_settings
from energyshare.db.models import ActiveDevice, Base, Device, Usage
from energyshare.db.session import create_session_factory

MEMBER_EMAIL = "member@example.com"
OTHER_MEMBER_EMAIL = "other@example.com"
ADMIN_EMAIL = "admin@example.com"
GUEST_EMAIL = "guest@example.com"


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure required env vars are set for every test."""
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/db")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("AUTH_SECRET", "test-secret-with-at-least-32-bytes!!")
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setenv("MEMBER_EMAILS", f"{MEMBER_EMAIL}, {OTHER_MEMBER_EMAIL}")
    monkeypatch.setenv("USE_REAL_DEVICE_API", "false")
    monkeypatch.setenv("SPECIAL_DEVICE_IPS", "")
    monkeypatch.setenv("SIMULATED_DELAY_S", "0")
    monkeypatch.delenv("BILLING_START_DATE", raising=False)


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncSession:
    """Create a session on the in-memory database."""
    factory = create_session_factory(db_engine)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def devices(db_session: AsyncSession) -> list[Device]:
    """Seed two live devices and one archived device."""
    rows = [
        Device(
            id="dev-kettle",
            mac_address="AA:BB:CC:DD:EE:01",
            ip_address="192.168.1.11",
            alias="Kettle",
        ),
        Device(
            id="dev-dryer",
            mac_address="AA:BB:CC:DD:EE:02",
            ip_address="192.168.1.12",
            alias="Dryer",
            previous_aliases=["Tumble"],
        ),
        Device(
            id="dev-heater",
            mac_address="AA:BB:CC:DD:EE:03",
            ip_address="192.168.1.13",
            alias="Heater",
            is_archived=True,
        ),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


async def open_session(
    session: AsyncSession,
    device_id: str,
    user_email: str,
    start: datetime,
    consumption: Decimal = Decimal("42.00"),
    estimated_use_time: datetime | None = None,
) -> Usage:
    """Insert an open usage row and its active marker directly."""
    usage = Usage(
        user_email=user_email,
        start_date=start,
        end_date=start,
        estimated_use_time=estimated_use_time,
        consumption=consumption,
        charge=Decimal("0.00"),
        device_id=device_id,
    )
    session.add(usage)
    await session.flush()
    session.add(ActiveDevice(device_id=device_id, usage_record_id=usage.id))
    await session.commit()
    return usage


def bearer(email: str, name: str = "Test User") -> dict:
    """Return an Authorization header carrying a session token for *email*."""
    from energyshare.auth.session import create_session_token

    token = create_session_token(email, name, get_settings())
    return {"Authorization": f"Bearer {token}"}
