"""
Role-based permission matrix for households.
Defines what each membership role is allowed to do with a household's data.
"""
from typing import Optional

from sqlalchemy.orm import Session

from ..models.household import Membership, MembershipRole
from ..services.exceptions import AccessDenied

# Permission constants
PERM_VIEW_HOUSEHOLD = "view_household"
PERM_RECORD_ADMINISTRATIONS = "record_administrations"
PERM_MANAGE_INVENTORY = "manage_inventory"
PERM_COSIGN = "cosign"
PERM_MANAGE_MEMBERS = "manage_members"
PERM_VIEW_AUDIT_LOGS = "view_audit_logs"

# Role permission matrix
ROLE_PERMISSIONS: dict = {
    MembershipRole.OWNER: {
        PERM_VIEW_HOUSEHOLD,
        PERM_RECORD_ADMINISTRATIONS,
        PERM_MANAGE_INVENTORY,
        PERM_COSIGN,
        PERM_MANAGE_MEMBERS,
        PERM_VIEW_AUDIT_LOGS,
    },
    MembershipRole.CAREGIVER: {
        PERM_VIEW_HOUSEHOLD,
        PERM_RECORD_ADMINISTRATIONS,
        PERM_MANAGE_INVENTORY,
        PERM_COSIGN,
    },
    MembershipRole.VETREADONLY: {
        PERM_VIEW_HOUSEHOLD,
        # Veterinarians can read the record but never write to it
    },
}


def has_permission(role: str, permission: str) -> bool:
    """Check if a role has a specific permission."""
    return permission in ROLE_PERMISSIONS.get(role, set())


def get_membership(db: Session, user_id: str, household_id: str) -> Optional[Membership]:
    return (
        db.query(Membership)
        .filter(Membership.user_id == user_id, Membership.household_id == household_id)
        .first()
    )


def require_household_permission(db: Session, user, household_id: str, permission: str) -> Membership:
    """Return the caller's membership, or raise AccessDenied."""
    membership = get_membership(db, user.id, household_id)
    if membership is None:
        raise AccessDenied("Not a member of this household")
    if not has_permission(membership.role, permission):
        raise AccessDenied("Insufficient permissions for this household")
    return membership
