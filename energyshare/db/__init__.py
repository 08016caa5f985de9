"""
Database package: ORM models, engine and sessions.

CHANGELOG:
- 2026-10-04: Export session_scope (STORY-107)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

from energyshare.db.models import ActiveDevice, Base, Device, Usage
from energyshare.db.session import (
    create_engine,
    create_session_factory,
    dispose_engine,
    get_async_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    "ActiveDevice",
    "Base",
    "Device",
    "Usage",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "get_async_session",
    "get_session_factory",
    "session_scope",
]
