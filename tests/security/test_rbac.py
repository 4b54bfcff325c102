"""
Tests for the RBAC (Role-Based Access Control) module.
"""
from types import SimpleNamespace

import pytest

from workshop_portal.exceptions import ForbiddenError
from workshop_portal.security.rbac import (
    Role, Permission, ROLE_PERMISSIONS,
    get_user_role, get_user_permissions, has_permission,
    is_admin, ensure_permission,
)


class TestRole:
    """Test Role enum."""

    def test_role_values(self):
        assert Role.ENGINEER == "ENGINEER"
        assert Role.SUPERVISOR == "SUPERVISOR"
        assert Role.ADMIN == "ADMIN"


class TestRolePermissions:
    """Test role-to-permissions mapping."""

    def test_engineer_has_basic_permissions(self):
        perms = ROLE_PERMISSIONS[Role.ENGINEER]
        assert Permission.CLAIM_ITEMS in perms
        assert Permission.REQUEST_ITEMS in perms
        assert Permission.STRIP_DEVICES in perms
        assert Permission.MANAGE_INVENTORY not in perms
        assert Permission.ACT_FOR_OTHERS not in perms

    @pytest.mark.parametrize("role", [Role.SUPERVISOR, Role.ADMIN])
    def test_elevated_roles_have_all_permissions(self, role):
        assert ROLE_PERMISSIONS[role] == set(Permission)


class TestGetUserRole:
    """Test get_user_role function."""

    def test_reads_role_attribute(self):
        assert get_user_role(SimpleNamespace(id=1, role="SUPERVISOR")) == Role.SUPERVISOR

    def test_missing_role_defaults_to_engineer(self):
        assert get_user_role(SimpleNamespace(id=1, role=None)) == Role.ENGINEER

    def test_unknown_role_defaults_to_engineer(self):
        assert get_user_role(SimpleNamespace(id=1, role="janitor")) == Role.ENGINEER


class TestPermissionChecks:
    def test_has_permission(self):
        engineer = SimpleNamespace(id=1, role="ENGINEER")
        assert has_permission(engineer, Permission.CLAIM_ITEMS)
        assert not has_permission(engineer, Permission.REMOVE_DEVICES)
        assert get_user_permissions(engineer) == ROLE_PERMISSIONS[Role.ENGINEER]

    def test_is_admin(self):
        assert is_admin(SimpleNamespace(id=1, role="ADMIN"))
        assert is_admin(SimpleNamespace(id=2, role="SUPERVISOR"))
        assert not is_admin(SimpleNamespace(id=3, role="ENGINEER"))

    def test_ensure_permission_raises_forbidden(self, engineer_a):
        with pytest.raises(ForbiddenError) as exc:
            ensure_permission(engineer_a, Permission.LOG_ARRIVALS)
        assert exc.value.status_code == 403

    def test_ensure_permission_passes(self, admin):
        ensure_permission(admin, Permission.LOG_ARRIVALS)
