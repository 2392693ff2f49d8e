"""Role-based capabilities for the admin surface.

The ledger only ever asks a ``PermissionOracle``; ``RolePermissionOracle``
is the built-in one (admins can do everything, users nothing).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from context_composer.errors import PermissionDeniedError


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Capability(str, Enum):
    VIEW_ADMIN = "can_view_admin"
    EDIT_CONTENT = "can_edit_content"
    DELETE_CONTENT = "can_delete_content"
    MANAGE_USERS = "can_manage_users"
    VIEW_AUDIT_LOGS = "can_view_audit_logs"
    RESTORE_VERSIONS = "can_restore_versions"


@dataclass(frozen=True)
class Permissions:
    can_view_admin: bool = False
    can_edit_content: bool = False
    can_delete_content: bool = False
    can_manage_users: bool = False
    can_view_audit_logs: bool = False
    can_restore_versions: bool = False

    def allows(self, capability: Capability) -> bool:
        return bool(getattr(self, capability.value))


NO_PERMISSIONS = Permissions()


def get_permissions(role: UserRole | str | None) -> Permissions:
    if role is None:
        return NO_PERMISSIONS
    try:
        role = UserRole(role)
    except ValueError:
        return NO_PERMISSIONS
    is_admin = role is UserRole.ADMIN
    return Permissions(
        can_view_admin=is_admin,
        can_edit_content=is_admin,
        can_delete_content=is_admin,
        can_manage_users=is_admin,
        can_view_audit_logs=is_admin,
        can_restore_versions=is_admin,
    )


@dataclass(frozen=True)
class Actor:
    """Who is performing an admin action; recorded on every audit entry."""
    id: str
    email: Optional[str] = None
    role: UserRole = UserRole.USER


class PermissionOracle(Protocol):
    def permissions_for(self, actor: Actor | None) -> Permissions: ...


class RolePermissionOracle:
    def permissions_for(self, actor: Actor | None) -> Permissions:
        return get_permissions(actor.role if actor is not None else None)


def require(oracle: PermissionOracle, actor: Actor | None, capability: Capability) -> Actor:
    """Return ``actor`` if allowed, else raise ``PermissionDeniedError``."""
    if actor is None or not oracle.permissions_for(actor).allows(capability):
        raise PermissionDeniedError(actor.id if actor is not None else None, capability.value)
    return actor
