"""Security modules: role-based access control."""

from .rbac import Role, Permission, has_permission, ensure_permission, is_admin

__all__ = ["Role", "Permission", "has_permission", "ensure_permission", "is_admin"]
