"""
Authentication package: roles, permissions and session tokens.

CHANGELOG:
- 2026-09-30: Initial creation (STORY-104)
- 2026-10-01: Export SessionUser and token helpers (STORY-105)

TODO:
- None
"""

from energyshare.auth.permissions import Permission, has_permission
from energyshare.auth.roles import Role, get_user_role
from energyshare.auth.session import SessionUser, create_session_token, decode_session_token

__all__ = [
    "Permission",
    "Role",
    "SessionUser",
    "create_session_token",
    "decode_session_token",
    "get_user_role",
    "has_permission",
]
