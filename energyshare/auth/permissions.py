"""
Role to permission mapping.

Only members may switch devices or edit usage times; admins manage the
device inventory but do not control devices themselves.

CHANGELOG:
- 2026-09-30: Initial creation (STORY-104)

TODO:
- None
"""

from enum import Enum

from energyshare.auth.roles import Role


class Permission(str, Enum):
    """Capability checked before a protected operation."""

    VIEW_DEVICES = "view_devices"
    CONTROL_DEVICES = "control_devices"
    VIEW_USAGE_DATA = "view_usage_data"
    MANAGE_DEVICES = "manage_devices"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(
        {Permission.VIEW_DEVICES, Permission.VIEW_USAGE_DATA, Permission.MANAGE_DEVICES}
    ),
    Role.MEMBER: frozenset(
        {Permission.VIEW_DEVICES, Permission.CONTROL_DEVICES, Permission.VIEW_USAGE_DATA}
    ),
    Role.GUEST: frozenset({Permission.VIEW_DEVICES, Permission.VIEW_USAGE_DATA}),
}


def has_permission(role: Role, permission: Permission) -> bool:
    """Return True if *role* grants *permission*."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())
