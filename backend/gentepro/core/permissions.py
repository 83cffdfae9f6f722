"""Role-Based Access Control (RBAC) permissions."""

from enum import Enum
from typing import List

from fastapi import Depends, HTTPException, status

from gentepro.core.security import TokenData, get_current_user


class UserRole(str, Enum):
    """User roles in the system."""

    ADMIN = "admin"
    RECRUITER = "recrutador"
    MANAGER = "gestor"
    HR = "rh"


class Permission(str, Enum):
    """Available permissions in the system."""

    # Pipeline models and templates
    PIPELINE_VIEW = "pipeline:view"
    PIPELINE_MANAGE = "pipeline:manage"
    TEMPLATES_APPLY = "templates:apply"
    REJECTION_REASONS_MANAGE = "rejection_reasons:manage"

    # Candidate stage movement
    CANDIDATES_ADD = "candidates:add"
    CANDIDATES_MOVE_STAGE = "candidates:move_stage"
    CANDIDATES_EDIT_FIELDS = "candidates:edit_fields"
    CANDIDATES_REJECT = "candidates:reject"

    # SLA alerts
    SLA_ALERTS_VIEW = "sla_alerts:view"
    SLA_ALERTS_MANAGE = "sla_alerts:manage"

    # Automations
    AUTOMATIONS_VIEW = "automations:view"


ROLE_PERMISSIONS: dict[UserRole, set[Permission]] = {
    UserRole.ADMIN: set(Permission),
    UserRole.RECRUITER: {
        Permission.PIPELINE_VIEW,
        Permission.CANDIDATES_ADD,
        Permission.CANDIDATES_MOVE_STAGE,
        Permission.CANDIDATES_EDIT_FIELDS,
        Permission.CANDIDATES_REJECT,
        Permission.SLA_ALERTS_VIEW,
        Permission.SLA_ALERTS_MANAGE,
    },
    UserRole.MANAGER: {
        Permission.PIPELINE_VIEW,
        Permission.CANDIDATES_MOVE_STAGE,
        Permission.CANDIDATES_REJECT,
        Permission.SLA_ALERTS_VIEW,
        Permission.SLA_ALERTS_MANAGE,
        Permission.AUTOMATIONS_VIEW,
    },
    UserRole.HR: {
        Permission.PIPELINE_VIEW,
        Permission.PIPELINE_MANAGE,
        Permission.TEMPLATES_APPLY,
        Permission.REJECTION_REASONS_MANAGE,
        Permission.CANDIDATES_EDIT_FIELDS,
        Permission.SLA_ALERTS_VIEW,
        Permission.AUTOMATIONS_VIEW,
    },
}


def get_role_permissions(role: UserRole) -> set[Permission]:
    """Get all permissions for a given role."""
    return ROLE_PERMISSIONS.get(role, set())


def has_permission(role: str, permission: Permission) -> bool:
    """Check if a role has a specific permission."""
    try:
        user_role = UserRole(role)
        return permission in get_role_permissions(user_role)
    except ValueError:
        return False


def has_all_permissions(role: str, permissions: List[Permission]) -> bool:
    """Check if a role has all of the specified permissions."""
    return all(has_permission(role, p) for p in permissions)


class PermissionChecker:
    """Dependency class for checking permissions."""

    def __init__(self, required_permissions: List[Permission]):
        self.required_permissions = required_permissions

    async def __call__(self, current_user: TokenData = Depends(get_current_user)) -> TokenData:
        """Check if the current user has the required permissions."""
        if not has_all_permissions(current_user.role, self.required_permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

        return current_user


def require_permission(permission: Permission):
    """Dependency factory for requiring a single permission."""
    return PermissionChecker([permission])
