"""Tests for role-based admin capabilities."""
from __future__ import annotations

import pytest

from context_composer.admin.permissions import (
    NO_PERMISSIONS,
    Actor,
    Capability,
    RolePermissionOracle,
    UserRole,
    get_permissions,
    require,
)
from context_composer.errors import ExitCode, PermissionDeniedError


def test_admin_has_every_capability() -> None:
    permissions = get_permissions(UserRole.ADMIN)
    assert all(permissions.allows(c) for c in Capability)


def test_user_has_none() -> None:
    permissions = get_permissions("user")
    assert not any(permissions.allows(c) for c in Capability)


@pytest.mark.parametrize("role", [None, "superuser", ""])
def test_unknown_or_missing_role_has_none(role: str | None) -> None:
    assert get_permissions(role) == NO_PERMISSIONS


def test_require_returns_actor(admin: Actor) -> None:
    assert require(RolePermissionOracle(), admin, Capability.RESTORE_VERSIONS) is admin


def test_require_denies_reader(reader: Actor) -> None:
    with pytest.raises(PermissionDeniedError) as info:
        require(RolePermissionOracle(), reader, Capability.DELETE_CONTENT)
    assert info.value.capability == "can_delete_content"
    assert info.value.exit_code is ExitCode.NOT_PERMITTED


def test_require_denies_anonymous() -> None:
    with pytest.raises(PermissionDeniedError) as info:
        require(RolePermissionOracle(), None, Capability.VIEW_ADMIN)
    assert info.value.actor_id is None
