"""
Role-Based Access Control (RBAC) Module

Maps portal roles to the inventory permissions they hold. Engineers act on
their own claims only; supervisors and admins may act on anyone's claims,
see everyone's activity and manage stock.
"""

from enum import Enum
from typing import Set
import logging

from workshop_portal.exceptions import ForbiddenError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """User roles."""
    ENGINEER = "ENGINEER"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


class Permission(str, Enum):
    """Fine-grained permissions."""
    CLAIM_ITEMS = "claim_items"
    REQUEST_ITEMS = "request_items"
    STRIP_DEVICES = "strip_devices"
    ACT_FOR_OTHERS = "act_for_others"
    VIEW_ALL_ACTIVITY = "view_all_activity"
    MANAGE_INVENTORY = "manage_inventory"
    LOG_ARRIVALS = "log_arrivals"
    REMOVE_DEVICES = "remove_devices"
    VIEW_USERS = "view_users"


ENGINEER_PERMISSIONS: Set[Permission] = {
    Permission.CLAIM_ITEMS,
    Permission.REQUEST_ITEMS,
    Permission.STRIP_DEVICES,
}

# Role-to-permissions mapping
ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.ENGINEER: ENGINEER_PERMISSIONS,
    Role.SUPERVISOR: set(Permission),
    Role.ADMIN: set(Permission),
}


def get_user_role(user) -> Role:
    """Determine the role of a user or actor, defaulting to ENGINEER."""
    try:
        return Role(getattr(user, "role", None) or Role.ENGINEER)
    except ValueError:
        logger.warning(f"Unknown role {user.role!r} for user {user.id}, treating as engineer")
        return Role.ENGINEER


def get_user_permissions(user) -> Set[Permission]:
    """Get all permissions for a user based on their role."""
    return ROLE_PERMISSIONS.get(get_user_role(user), set())


def has_permission(user, permission: Permission) -> bool:
    """Check if user has a specific permission."""
    return permission in get_user_permissions(user)


def is_admin(user) -> bool:
    """Admins and supervisors may confirm or return anyone's claims."""
    return has_permission(user, Permission.ACT_FOR_OTHERS)


def ensure_permission(user, permission: Permission) -> None:
    """Raise ForbiddenError unless the user holds the permission."""
    if not has_permission(user, permission):
        logger.warning(
            f"Permission denied: user {user.id} lacks {permission.value}",
            extra={"user_id": user.id, "permission": permission.value}
        )
        raise ForbiddenError(f"Permission denied: requires {permission.value}")
