"""Role-based permission policy for family members."""

from dataclasses import dataclass, asdict
from enum import Enum

from family_access.errors import ValidationError


class FamilyRole(Enum):
    """Relationship of an invited family member to the patient."""
    PARENT = "parent"
    CHILD = "child"
    SPOUSE = "spouse"
    SIBLING = "sibling"
    GUARDIAN = "guardian"
    CAREGIVER = "caregiver"
    OTHER = "other"


@dataclass(frozen=True)
class AccessPermissions:
    can_view_medications: bool = False
    can_view_vitals: bool = False
    can_view_appointments: bool = False
    can_view_reports: bool = False
    can_view_emergency_contacts: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


FAMILY_ROLE_LABELS = {
    FamilyRole.PARENT: "Parent",
    FamilyRole.CHILD: "Child",
    FamilyRole.SPOUSE: "Spouse",
    FamilyRole.SIBLING: "Sibling",
    FamilyRole.GUARDIAN: "Guardian",
    FamilyRole.CAREGIVER: "Caregiver",
    FamilyRole.OTHER: "Other",
}

_FULL_ACCESS = AccessPermissions(
    can_view_medications=True,
    can_view_vitals=True,
    can_view_appointments=True,
    can_view_reports=True,
    can_view_emergency_contacts=True,
)

_VITALS_ONLY = AccessPermissions(can_view_vitals=True)

# Applied once, at acceptance time. Edits here never reach existing relationships.
DEFAULT_PERMISSIONS = {
    FamilyRole.PARENT: _FULL_ACCESS,
    FamilyRole.SPOUSE: _FULL_ACCESS,
    FamilyRole.GUARDIAN: _FULL_ACCESS,
    FamilyRole.CAREGIVER: AccessPermissions(
        can_view_medications=True,
        can_view_vitals=True,
        can_view_emergency_contacts=True,
    ),
    FamilyRole.CHILD: _VITALS_ONLY,
    FamilyRole.SIBLING: _VITALS_ONLY,
    FamilyRole.OTHER: _VITALS_ONLY,
}


def parse_role(value) -> FamilyRole:
    """Convert a role name (any case) into a FamilyRole."""
    if isinstance(value, FamilyRole):
        return value
    try:
        return FamilyRole(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(role.value for role in FamilyRole)
        raise ValidationError(f"Unknown family role '{value}'. Expected one of: {allowed}")


def resolve_permissions(role: FamilyRole) -> AccessPermissions:
    """Default permissions granted to a family member with this role."""
    return DEFAULT_PERMISSIONS[parse_role(role)]


def role_label(role: FamilyRole, custom_role: str | None = None) -> str:
    """Display name for a role, preferring the custom text for 'other'."""
    role = parse_role(role)
    if role == FamilyRole.OTHER and custom_role:
        return custom_role
    return FAMILY_ROLE_LABELS[role]
