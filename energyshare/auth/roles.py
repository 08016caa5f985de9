"""
User roles derived from configured email allowlists.

A signed-in email is an admin when listed in ``ADMIN_EMAILS``, a member
when listed in ``MEMBER_EMAILS``, and a guest otherwise. Matching is
case-insensitive and ignores surrounding whitespace.

CHANGELOG:
- 2026-09-30: Initial creation (STORY-104)

TODO:
- None
"""

from enum import Enum

from energyshare.config import Settings, get_settings


class Role(str, Enum):
    """Role of a signed-in user."""

    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


def get_user_role(email: str | None, settings: Settings | None = None) -> Role:
    """Return the role of *email*; admin list wins over member list.

    Args:
        email: Email of the signed-in user. Empty or None yields GUEST.
        settings: Settings holding the allowlists; loaded when omitted.

    Returns:
        Role: ADMIN, MEMBER or GUEST.
    """
    if not email:
        return Role.GUEST
    if settings is None:
        settings = get_settings()

    normalized = email.strip().lower()
    if normalized in settings.admin_emails:
        return Role.ADMIN
    if normalized in settings.member_emails:
        return Role.MEMBER
    return Role.GUEST


def is_role_admin(role: Role) -> bool:
    return role == Role.ADMIN


def is_role_member(role: Role) -> bool:
    return role == Role.MEMBER


def is_role_guest(role: Role) -> bool:
    return role == Role.GUEST
