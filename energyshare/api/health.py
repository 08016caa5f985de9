"""
Liveness of the API's backing services.

``GET /health`` probes PostgreSQL and Redis concurrently, each bounded by
``_PROBE_TIMEOUT_S``. A failed cache probe also degrades the result: while
Redis is down the device listing falls back to the database on every call.

CHANGELOG:
- 2026-10-06: Run probes concurrently with a timeout (STORY-109)
- 2026-10-04: Probe Redis now that the status listing is cached (STORY-107)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

import asyncio
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from energyshare.cache.redis_client import get_redis
from energyshare.db.session import session_scope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_PROBE_TIMEOUT_S = 2.0


async def _ping_db() -> None:
    async with session_scope() as session:
        await session.execute(text("SELECT 1"))


async def _ping_redis() -> None:
    client = await get_redis()
    try:
        await client.ping()
    finally:
        await client.aclose()


async def _check_db() -> str:
    try:
        await asyncio.wait_for(_ping_db(), _PROBE_TIMEOUT_S)
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        return "error"
    return "ok"


async def _check_redis() -> str:
    try:
        await asyncio.wait_for(_ping_redis(), _PROBE_TIMEOUT_S)
    except Exception:
        logger.warning("Health check: Redis unreachable", exc_info=True)
        return "error"
    return "ok"


@router.get("/health")
async def health_check() -> JSONResponse:
    """Report database and cache reachability.

    Returns:
        JSONResponse: ``{"status": "ok"|"degraded", "db", "redis"}`` with
            HTTP 200 when every probe passed, 503 otherwise.
    """
    db_status, redis_status = await asyncio.gather(_check_db(), _check_redis())
    healthy = db_status == redis_status == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "db": db_status,
            "redis": redis_status,
        },
    )
