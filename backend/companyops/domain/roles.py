from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional

from django.db import models

from companyops.domain.errors import Forbidden, ValidationError
from companyops.domain.models import Personnel, Role

# =========================
# Permissions
# =========================

class Permission(models.TextChoices):
    VIEW_ASSIGNED_DETAILS = "view_assigned_details", "View assigned details"
    SIGN_OTHERS_ON_PASS = "sign_others_on_pass", "Sign others on pass"
    VIEW_UPDATES = "view_updates", "View updates"

    MODIFY_UOTD = "modify_uotd", "Modify uniform of the day"
    APPROVE_WEATHER_UOTD = "approve_weather_uotd", "Approve weather UOTD"
    MODIFY_UNIFORMS = "modify_uniforms", "Modify uniforms"

    APPROVE_PASS_REQUESTS = "approve_pass_requests", "Approve pass requests"
    VIEW_PASS_REQUESTS = "view_pass_requests", "View pass requests"
    CREATE_LEAVE_FOR_OTHERS = "create_leave_for_others", "Create leave for others"

    MANAGE_CQ_OPERATIONS = "manage_cq_operations", "Manage CQ operations"

    MANAGE_PERSONNEL = "manage_personnel", "Manage personnel"
    MANAGE_ROLES = "manage_roles", "Manage roles"
    MANAGE_CQ = "manage_cq", "Manage CQ"
    MANAGE_CONFIG = "manage_config", "Manage config"


ROLE_HIERARCHY: List[str] = [
    Role.USER,
    Role.UNIFORM_ADMIN,
    Role.LEAVE_ADMIN,
    Role.CANDIDATE_LEADERSHIP,
    Role.ADMIN,
]

_BASE = frozenset({
    Permission.VIEW_ASSIGNED_DETAILS,
    Permission.SIGN_OTHERS_ON_PASS,
    Permission.VIEW_UPDATES,
})
_PASS_REVIEW = frozenset({
    Permission.APPROVE_PASS_REQUESTS,
    Permission.VIEW_PASS_REQUESTS,
    Permission.CREATE_LEAVE_FOR_OTHERS,
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    Role.USER: _BASE,
    Role.UNIFORM_ADMIN: _BASE | {
        Permission.MODIFY_UOTD,
        Permission.APPROVE_WEATHER_UOTD,
        Permission.MODIFY_UNIFORMS,
    },
    Role.LEAVE_ADMIN: _BASE | _PASS_REVIEW,
    Role.CANDIDATE_LEADERSHIP: _BASE | _PASS_REVIEW | {
        Permission.MANAGE_CQ_OPERATIONS,
        Permission.MANAGE_CQ,
    },
    Role.ADMIN: frozenset(Permission.values),
}

# Who gets pushed when something waits for approval.
PASS_APPROVER_ROLES = (Role.ADMIN, Role.CANDIDATE_LEADERSHIP)
UOTD_APPROVER_ROLES = (Role.ADMIN, Role.UNIFORM_ADMIN)
CQ_MANAGER_ROLES = (Role.ADMIN, Role.CANDIDATE_LEADERSHIP)

# =========================
# Helpers
# =========================

def normalize_role(role: Optional[str]) -> str:
    """Lower-case and validate a role string; anything unknown becomes ``user``."""
    if not role or not isinstance(role, str):
        return Role.USER
    value = role.strip().lower()
    return value if value in Role.values else Role.USER


def has_permission(role: Optional[str], permission: str) -> bool:
    if not role or not permission:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def is_role_at_least(role_a: Optional[str], role_b: Optional[str]) -> bool:
    """True if ``role_a`` sits at or above ``role_b`` in the hierarchy."""
    if role_a not in ROLE_HIERARCHY or role_b not in ROLE_HIERARCHY:
        return False
    return ROLE_HIERARCHY.index(role_a) >= ROLE_HIERARCHY.index(role_b)


def assignable_roles(actor_role: Optional[str]) -> List[str]:
    """Roles an actor may hand out: none without MANAGE_ROLES, otherwise up to their own."""
    if not has_permission(actor_role, Permission.MANAGE_ROLES):
        return []
    return [r for r in ROLE_HIERARCHY if is_role_at_least(actor_role, r)]


def actor_has(actor: Optional[Personnel], permission: str) -> bool:
    return actor is not None and actor.active and has_permission(actor.role, permission)


def require_permission(actor: Optional[Personnel], permission: str, message: Optional[str] = None) -> None:
    """Raise Forbidden unless the actor's role grants ``permission``.

    Args:
        actor (Optional[Personnel]): The person attempting the action.
        permission (str): A value of Permission.
        message (Optional[str], optional): Message for the user. Defaults to a generic one.

    Raises:
        Forbidden: When the actor is missing, inactive, or lacks the permission.
    """
    if not actor_has(actor, permission):
        raise Forbidden(message or "You do not have permission to perform this action", permission=permission)


def assign_role(person: Personnel, role: Optional[str], actor: Optional[Personnel]) -> Personnel:
    """Give ``person`` a new role.

    The role string is matched case-insensitively. Saving fires the role-group sync.

    Raises:
        ValidationError: ``role`` names no known role.
        Forbidden: The actor may not hand out that role.
    """
    value = normalize_role(role)
    if value != str(role or "").strip().lower():
        raise ValidationError({"role": [f"Unknown role {role!r}."]})
    if actor is None or not actor.active or value not in assignable_roles(actor.role):
        raise Forbidden("You cannot assign that role", permission=Permission.MANAGE_ROLES)
    if person.role != value:
        person.role = value
        person.save(update_fields=["role", "updated_at"])
    return person
