"""Administrative content editing: entity variants, permissions, audit ledger."""
from __future__ import annotations

from context_composer.admin.entities import (
    ENTITY_MODELS,
    ContentFields,
    EntityType,
    entity_name,
    validate_fields,
)
from context_composer.admin.ledger import (
    AuditAction,
    AuditEntry,
    ContentAuditLedger,
    ContentRecord,
    ContentVersion,
)
from context_composer.admin.permissions import (
    Actor,
    Capability,
    PermissionOracle,
    Permissions,
    RolePermissionOracle,
    UserRole,
    get_permissions,
)

__all__ = [
    "Actor",
    "AuditAction",
    "AuditEntry",
    "Capability",
    "ContentAuditLedger",
    "ContentFields",
    "ContentRecord",
    "ContentVersion",
    "ENTITY_MODELS",
    "EntityType",
    "PermissionOracle",
    "Permissions",
    "RolePermissionOracle",
    "UserRole",
    "entity_name",
    "get_permissions",
    "validate_fields",
]
